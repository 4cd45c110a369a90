from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional


DEFAULT_CODE_LENGTH = 6
DEFAULT_CODE_EXPIRE = 180
DEFAULT_PLACEHOLDER_DOMAIN = "example.com"


def _to_bool(val: str | None, default: bool = False) -> bool:
    if val is None:
        return default
    return str(val).strip().lower() in {"1", "true", "yes", "on"}


def _to_int(val: str | None, default: int) -> int:
    try:
        return int(val) if val is not None else default
    except ValueError:
        return default


def _positive(val: int, default: int) -> int:
    return val if val > 0 else default


@dataclass(frozen=True)
class OTPConfig:
    code_length: int = DEFAULT_CODE_LENGTH
    code_expire: int = DEFAULT_CODE_EXPIRE
    email_from: str = f"noreply@{DEFAULT_PLACEHOLDER_DOMAIN}"
    placeholder_domain: str = DEFAULT_PLACEHOLDER_DOMAIN
    app_name: str = "Email OTP"
    server_hostname: Optional[str] = None

    def __post_init__(self):
        # Frozen dataclass: normalise through object.__setattr__.
        object.__setattr__(self, "code_length", _positive(self.code_length, DEFAULT_CODE_LENGTH))
        object.__setattr__(self, "code_expire", _positive(self.code_expire, DEFAULT_CODE_EXPIRE))


def from_env() -> OTPConfig:
    placeholder = (os.getenv("OTP_PLACEHOLDER_DOMAIN") or DEFAULT_PLACEHOLDER_DOMAIN).strip().lower()
    return OTPConfig(
        code_length=_to_int(os.getenv("OTP_CODE_LENGTH"), DEFAULT_CODE_LENGTH),
        code_expire=_to_int(os.getenv("OTP_CODE_EXPIRE"), DEFAULT_CODE_EXPIRE),
        email_from=(os.getenv("OTP_EMAIL_FROM") or f"noreply@{placeholder}").strip(),
        placeholder_domain=placeholder,
        app_name=os.getenv("OTP_APP_NAME", "Email OTP"),
        server_hostname=(os.getenv("SERVER_HOSTNAME") or "").strip() or None,
    )


DEBUG = _to_bool(os.getenv("DEBUG"), False)
