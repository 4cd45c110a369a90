from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, String

from database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)

    email = Column(String, unique=True, index=True, nullable=True)
    username = Column(String, unique=True, index=True, nullable=True)

    # Store password hash (bcrypt). Never store plaintext.
    password_hash = Column(String, nullable=False)

    name = Column(String, nullable=False, default="User")

    # Email second factor:
    # - code_email: address codes are sent to (may be unconfirmed)
    # - conf_email: last address confirmed with a code
    # The factor is enabled only while both are equal.
    code_email = Column(String, nullable=True)
    conf_email = Column(String, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
