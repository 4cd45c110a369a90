"""
Email second-factor enrollment and login checks.

Enrollment state is never stored; it is derived from the settings fields:

    UNSET                 code_email empty
    PENDING_CONFIRMATION  code_email set, conf_email != code_email
    CONFIRMED             code_email set, conf_email == code_email

`conf_email` only changes when a submitted confirmation code validates.
Changing `code_email` after confirmation puts the user back into
PENDING_CONFIRMATION until the new address is confirmed.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, fields
from enum import Enum
from typing import Any, Callable, Mapping, Optional

from config import OTPConfig, from_env
from utils.brevo_email import get_mail_sender, mask_email
from utils.code_store import CodeStore, ValidationOutcome
from utils.otp_service import issue_and_send, resolve_from_address


logger = logging.getLogger(__name__)


class EnrollmentState(str, Enum):
    UNSET = "unset"
    PENDING_CONFIRMATION = "pending_confirmation"
    CONFIRMED = "confirmed"


@dataclass
class EnrollmentSettings:
    code_email: str = ""
    conf_email: str = ""
    conf_code: str = ""

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "EnrollmentSettings":
        known = {f.name for f in fields(cls)}
        return cls(**{k: str(v or "") for k, v in data.items() if k in known})


@dataclass(frozen=True)
class Notice:
    key: str
    level: str
    message: str


NOTICES = {
    "code_confirmed": Notice("code_confirmed", "confirmation", "Your email address has been confirmed."),
    "code_expired": Notice("code_expired", "error", "The code has expired. Request a new one."),
    "code_invalid": Notice("code_invalid", "error", "The code is invalid."),
    "code_sent": Notice("code_sent", "confirmation", "A confirmation code was sent to your email address."),
    "code_send_failed": Notice("code_send_failed", "error", "The confirmation code could not be sent."),
}


def enabled_for_user(settings: EnrollmentSettings) -> bool:
    return bool(settings.code_email) and settings.conf_email == settings.code_email


def state_of(settings: EnrollmentSettings) -> EnrollmentState:
    if not settings.code_email:
        return EnrollmentState.UNSET
    if enabled_for_user(settings):
        return EnrollmentState.CONFIRMED
    return EnrollmentState.PENDING_CONFIRMATION


def settings_for(user) -> EnrollmentSettings:
    return EnrollmentSettings(code_email=user.code_email or "", conf_email=user.conf_email or "")


def apply_settings(user, settings: EnrollmentSettings) -> None:
    user.code_email = settings.code_email or None
    user.conf_email = settings.conf_email or None


class EnrollmentController:
    def __init__(self, config: OTPConfig, mail_sender, clock: Callable[[], float] = time.time):
        self.config = config
        self.mail_sender = mail_sender
        self.clock = clock

    def enabled_for_user(self, settings: EnrollmentSettings) -> bool:
        return enabled_for_user(settings)

    def _from_address(self, host: Optional[str]) -> str:
        return resolve_from_address(
            self.config.email_from,
            self.config.server_hostname or host,
            self.config.placeholder_domain,
        )

    def _send(self, store: CodeStore, to_email: str, host: Optional[str]) -> bool:
        return issue_and_send(
            store,
            length=self.config.code_length,
            ttl_seconds=self.config.code_expire,
            to_email=to_email,
            from_email=self._from_address(host),
            mail_sender=self.mail_sender,
            app_name=self.config.app_name,
            now=self.clock(),
        )

    def is_valid_user_code(self, code: str, store: CodeStore) -> ValidationOutcome:
        code = (code or "").strip()
        if len(code) != self.config.code_length:
            return ValidationOutcome.INVALID
        return store.find_match(code, self.clock())

    def process(self, settings: EnrollmentSettings, store: CodeStore, host: Optional[str] = None) -> list[Notice]:
        """Advance the enrollment state machine; mutates `settings`."""
        if settings.conf_code:
            outcome = self.is_valid_user_code(settings.conf_code, store)
            settings.conf_code = ""
            if outcome is ValidationOutcome.VALID:
                settings.conf_email = settings.code_email
                logger.info("Confirmed second-factor email %s", mask_email(settings.code_email))
                return [NOTICES["code_confirmed"]]
            if outcome is ValidationOutcome.EXPIRED:
                return [NOTICES["code_expired"]]
            return [NOTICES["code_invalid"]]

        if settings.code_email and settings.code_email != settings.conf_email:
            if self._send(store, settings.code_email, host):
                return [NOTICES["code_sent"]]
            return [NOTICES["code_send_failed"]]

        return []

    def start_user(self, settings: EnrollmentSettings, store: CodeStore, host: Optional[str] = None) -> bool:
        if not settings.conf_email:
            logger.warning("Login challenge requested without a confirmed email")
            return False
        return self._send(store, settings.conf_email, host)


def get_controller() -> EnrollmentController:
    return EnrollmentController(from_env(), get_mail_sender())
