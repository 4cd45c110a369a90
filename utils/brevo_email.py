from __future__ import annotations

import logging
import os
from typing import Optional

import requests


logger = logging.getLogger(__name__)

BREVO_URL = "https://api.brevo.com/v3/smtp/email"


def mask_email(addr: Optional[str]) -> str:
    if not addr:
        return ""
    if "@" in addr:
        user, dom = addr.split("@", 1)
        return f"{user[:1]}***@{dom}"
    return addr[:1] + "***"


class BrevoMailSender:
    """
    Sends email using Brevo Transactional Email API.
    Requires:
      - BREVO_API_KEY
    """

    def __init__(self, api_key: str, sender_name: str = "Email OTP", timeout: int = 15):
        if not api_key:
            raise RuntimeError("BREVO_API_KEY is not set")
        self.api_key = api_key
        self.sender_name = sender_name
        self.timeout = timeout

    def send(self, to: str, from_email: str, subject: str, body: str, html: Optional[str] = None) -> bool:
        payload = {
            "sender": {"email": from_email, "name": self.sender_name},
            "to": [{"email": to}],
            "subject": subject,
            "textContent": body,
        }
        if html:
            payload["htmlContent"] = html

        try:
            resp = requests.post(
                BREVO_URL,
                headers={
                    "accept": "application/json",
                    "api-key": self.api_key,
                    "content-type": "application/json",
                },
                json=payload,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error("Brevo send to %s failed: %r", mask_email(to), e)
            return False

        if resp.status_code >= 300:
            logger.error("Brevo send to %s failed (%s): %s", mask_email(to), resp.status_code, resp.text)
            return False
        logger.info("Mail sent to %s from %s", mask_email(to), from_email)
        return True


class LogMailSender:
    """Local/dev sender: writes the message to the log instead of sending it."""

    def __init__(self, keep: int = 20):
        self.keep = keep
        self.outbox: list[dict] = []

    def send(self, to: str, from_email: str, subject: str, body: str, html: Optional[str] = None) -> bool:
        logger.info("[DEV MAIL] to=%s from=%s subject=%r\n%s", to, from_email, subject, body)
        self.outbox.append({"to": to, "from": from_email, "subject": subject, "body": body})
        del self.outbox[:-self.keep]
        return True


_sender = None


def get_mail_sender():
    global _sender
    if _sender is None:
        api_key = os.getenv("BREVO_API_KEY")
        backend = (os.getenv("MAIL_BACKEND") or ("brevo" if api_key else "log")).strip().lower()
        if backend == "brevo":
            _sender = BrevoMailSender(api_key or "", sender_name=os.getenv("OTP_APP_NAME", "Email OTP"))
        else:
            _sender = LogMailSender()
        logger.info("Mail backend: %s", backend)
    return _sender
