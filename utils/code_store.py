"""
Bounded, expiring history of issued email codes for one session.

At most `MAX_CODES` records are kept, oldest first. Matching a code does not
consume it: a code stays usable until it expires or is pushed out by newer
codes.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from utils.session_store import SessionStore


SESSION_KEY = "email_otp_codes"
MAX_CODES = 3


class ValidationOutcome(str, Enum):
    VALID = "valid"
    EXPIRED = "expired"
    INVALID = "invalid"


@dataclass(frozen=True)
class CodeRecord:
    value: str
    expires_at: float

    def to_dict(self) -> dict[str, Any]:
        return {"value": self.value, "expires_at": self.expires_at}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CodeRecord":
        return cls(value=str(data["value"]), expires_at=float(data["expires_at"]))


class CodeStore:
    def __init__(self, session: SessionStore):
        self.session = session

    def records(self) -> list[CodeRecord]:
        out = []
        for item in self.session.get(SESSION_KEY, []) or []:
            try:
                out.append(CodeRecord.from_dict(item))
            except (KeyError, TypeError, ValueError):
                continue
        return out

    def append(self, record: CodeRecord) -> None:
        records = self.records()
        while len(records) >= MAX_CODES:
            records.pop(0)
        records.append(record)
        self.session.set(SESSION_KEY, [r.to_dict() for r in records])

    def find_match(self, submitted: str, now: float) -> ValidationOutcome:
        for record in self.records():
            if record.value == submitted:
                if now < record.expires_at:
                    return ValidationOutcome.VALID
                return ValidationOutcome.EXPIRED
        return ValidationOutcome.INVALID
