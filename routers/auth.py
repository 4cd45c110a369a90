from __future__ import annotations

import logging
import os
from datetime import datetime, timedelta, timezone
from typing import NamedTuple, Optional

import bcrypt
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import BaseModel, EmailStr
from sqlalchemy.orm import Session

from database import get_db
from models import User
from utils.code_store import CodeStore, ValidationOutcome
from utils.enrollment import EnrollmentController, get_controller, settings_for
from utils.otp_service import GenerationError
from utils.session_store import get_session_backend, new_session_id


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])
bearer = HTTPBearer(auto_error=False)

JWT_SECRET = os.getenv("JWT_SECRET", "change_me")
JWT_ALG = os.getenv("JWT_ALG", "HS256")
JWT_EXP_MIN = int(os.getenv("JWT_EXP_MIN", "43200"))  # 30 days default
MFA_CHALLENGE_EXP_MIN = int(os.getenv("MFA_CHALLENGE_EXP_MIN", "10"))


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _create_token(*, user_id: int, session_id: str, typ: str = "access", minutes: int = JWT_EXP_MIN) -> str:
    payload = {
        "sub": str(user_id),
        "sid": session_id,
        "typ": typ,
        "iat": int(_now().timestamp()),
        "exp": int((_now() + timedelta(minutes=minutes)).timestamp()),
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALG)


def _decode_token(token: str, typ: str) -> tuple[int, str]:
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALG])
    except JWTError:
        raise HTTPException(401, "Invalid token")
    sub, sid = payload.get("sub"), payload.get("sid")
    if payload.get("typ") != typ or not sub or not sid:
        raise HTTPException(401, "Invalid token")
    return int(sub), str(sid)


def _hash_password(password: str) -> str:
    # Multi-byte safe password truncation for bcrypt (max 72 bytes)
    safe_password = password.strip().encode("utf-8")[:72]
    return bcrypt.hashpw(safe_password, bcrypt.gensalt()).decode("utf-8")


def _check_password(password: str, password_hash: str) -> bool:
    return bcrypt.checkpw(password.strip().encode("utf-8")[:72], password_hash.encode("utf-8"))


def request_host(request: Request) -> Optional[str]:
    return request.url.hostname


def code_store_for(session_id: str) -> CodeStore:
    return CodeStore(get_session_backend().session(session_id))


class AuthContext(NamedTuple):
    user: User
    session_id: str


def get_auth_context(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    db: Session = Depends(get_db),
) -> AuthContext:
    if not creds or not creds.credentials:
        raise HTTPException(401, "Missing Authorization token")
    user_id, session_id = _decode_token(creds.credentials, "access")
    user = db.get(User, user_id)
    if not user:
        raise HTTPException(401, "User not found")
    return AuthContext(user=user, session_id=session_id)


def get_current_user(ctx: AuthContext = Depends(get_auth_context)) -> User:
    return ctx.user


def _user_out(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "username": user.username,
        "name": user.name,
    }


def _lookup(db: Session, identifier: str) -> Optional[User]:
    ident = identifier.strip().lower()
    if "@" in ident:
        return db.query(User).filter(User.email == ident).first()
    return db.query(User).filter(User.username == ident).first()


class RegisterIn(BaseModel):
    email: EmailStr
    username: Optional[str] = None
    password: str
    name: str


@router.post("/register")
def register(payload: RegisterIn, db: Session = Depends(get_db)):
    username = (payload.username or "").strip().lower() or None
    email = str(payload.email).strip().lower()

    if username and len(username) < 3:
        raise HTTPException(400, "Username must be at least 3 characters.")
    if len(payload.password.strip()) < 6:
        raise HTTPException(400, "Password must be at least 6 characters.")
    if not payload.name.strip():
        raise HTTPException(400, "Name is required.")

    if db.query(User).filter(User.email == email).first():
        raise HTTPException(400, "entry already available")
    if username and db.query(User).filter(User.username == username).first():
        raise HTTPException(400, "entry already available")

    user = User(
        email=email,
        username=username,
        password_hash=_hash_password(payload.password),
        name=payload.name.strip(),
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return {"ok": True, "user_id": user.id}


def _start_challenge(controller: EnrollmentController, user: User, session_id: str, host: Optional[str]) -> None:
    try:
        ok = controller.start_user(settings_for(user), code_store_for(session_id), host)
    except GenerationError:
        logger.exception("Code generation failed for user %s", user.id)
        raise HTTPException(500, "Could not generate a login code.")
    if not ok:
        raise HTTPException(502, "Could not send the login code. Try again.")


class LoginIn(BaseModel):
    identifier: str  # email or username
    password: str


@router.post("/login")
def login(
    payload: LoginIn,
    request: Request,
    db: Session = Depends(get_db),
    controller: EnrollmentController = Depends(get_controller),
):
    if not payload.identifier.strip():
        raise HTTPException(400, "Identifier required")

    user = _lookup(db, payload.identifier)
    if not user:
        raise HTTPException(404, "Account not found.")
    if not _check_password(payload.password, user.password_hash):
        raise HTTPException(401, "Incorrect password.")

    session_id = new_session_id()
    if not controller.enabled_for_user(settings_for(user)):
        token = _create_token(user_id=user.id, session_id=session_id)
        return {"ok": True, "mfa_required": False, "access_token": token, "token_type": "bearer", "user": _user_out(user)}

    _start_challenge(controller, user, session_id, request_host(request))
    challenge = _create_token(user_id=user.id, session_id=session_id, typ="mfa", minutes=MFA_CHALLENGE_EXP_MIN)
    return {"ok": True, "mfa_required": True, "challenge_token": challenge, "message": "Code sent to your email."}


class LoginVerifyOtpIn(BaseModel):
    challenge_token: str
    otp: str


@router.post("/login/verify-otp")
def login_verify_otp(
    payload: LoginVerifyOtpIn,
    db: Session = Depends(get_db),
    controller: EnrollmentController = Depends(get_controller),
):
    user_id, session_id = _decode_token(payload.challenge_token, "mfa")
    user = db.get(User, user_id)
    if not user:
        raise HTTPException(404, "Account not found.")

    outcome = controller.is_valid_user_code(payload.otp, code_store_for(session_id))
    if outcome is ValidationOutcome.EXPIRED:
        raise HTTPException(401, "Code expired.")
    if outcome is not ValidationOutcome.VALID:
        raise HTTPException(401, "Invalid code.")

    token = _create_token(user_id=user.id, session_id=session_id)
    return {"ok": True, "access_token": token, "token_type": "bearer", "user": _user_out(user)}


class LoginResendOtpIn(BaseModel):
    challenge_token: str


@router.post("/login/resend-otp")
def login_resend_otp(
    payload: LoginResendOtpIn,
    request: Request,
    db: Session = Depends(get_db),
    controller: EnrollmentController = Depends(get_controller),
):
    user_id, session_id = _decode_token(payload.challenge_token, "mfa")
    user = db.get(User, user_id)
    if not user:
        raise HTTPException(404, "Account not found.")
    if not controller.enabled_for_user(settings_for(user)):
        raise HTTPException(400, "Email second factor is not enabled.")

    _start_challenge(controller, user, session_id, request_host(request))
    return {"ok": True, "message": "Code sent to your email."}
