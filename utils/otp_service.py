from __future__ import annotations

import logging
import secrets
import string
import time
from typing import Optional

from utils.brevo_email import mask_email
from utils.code_store import CodeRecord, CodeStore


logger = logging.getLogger(__name__)


class OTPError(Exception):
    """Base exception for OTP operations."""


class GenerationError(OTPError):
    """The random source produced a code of the wrong shape."""


def generate_code(length: int) -> str:
    if length <= 0:
        raise GenerationError(f"Invalid code length {length}")
    code = "".join(secrets.choice(string.digits) for _ in range(length))
    if len(code) != length or not code.isdigit():
        raise GenerationError(f"Generated code has length {len(code)}, expected {length}")
    return code


def resolve_from_address(configured: str, host: Optional[str], placeholder_domain: str) -> str:
    """
    Replace the placeholder domain of the configured sender with the serving
    host, e.g. noreply@example.com -> noreply@mail.acme.test.
    """
    if "@" not in configured or not host:
        return configured
    local, domain = configured.rsplit("@", 1)
    if domain.strip().lower() != (placeholder_domain or "").strip().lower():
        return configured
    hostname = host.split(":", 1)[0].strip().lower()
    if not hostname:
        return configured
    return f"{local}@{hostname}"


def render_message(code: str, ttl_seconds: int, app_name: str = "Email OTP") -> tuple[str, str, str]:
    minutes = max(1, ttl_seconds // 60)
    subject = f"{app_name} - Your verification code"
    text = (
        f"Your verification code is {code}\n\n"
        f"This code expires in {minutes} minute{'s' if minutes != 1 else ''}."
    )
    html = f"""
    <div style="font-family:Arial,sans-serif">
      <h2>{app_name}</h2>
      <p>Your verification code is:</p>
      <div style="font-size:28px;font-weight:700;letter-spacing:2px">{code}</div>
      <p>This code expires in {minutes} minute{'s' if minutes != 1 else ''}.</p>
    </div>
    """
    return subject, text, html


def issue_and_send(
    store: CodeStore,
    *,
    length: int,
    ttl_seconds: int,
    to_email: str,
    from_email: str,
    mail_sender,
    app_name: str = "Email OTP",
    now: Optional[float] = None,
) -> bool:
    """
    Issues a new code into `store` and mails it to `to_email`.
    The code stays in the store even if delivery fails.
    """
    code = generate_code(length)
    issued_at = time.time() if now is None else now
    store.append(CodeRecord(value=code, expires_at=issued_at + ttl_seconds))

    subject, text, html = render_message(code, ttl_seconds, app_name)
    ok = bool(mail_sender.send(to_email, from_email, subject, text, html=html))
    if ok:
        logger.info("Issued email code to %s", mask_email(to_email))
    else:
        logger.warning("Email code issued but delivery to %s failed", mask_email(to_email))
    return ok
