from __future__ import annotations

import logging
from typing import Literal, Optional, Union

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, ConfigDict, EmailStr
from sqlalchemy.orm import Session

from database import get_db
from routers.auth import AuthContext, code_store_for, get_auth_context, request_host
from utils.enrollment import (
    EnrollmentController,
    EnrollmentSettings,
    EnrollmentState,
    apply_settings,
    get_controller,
    settings_for,
    state_of,
)
from utils.otp_service import GenerationError


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/2fa", tags=["2fa"])


def _status(settings: EnrollmentSettings, notices=()) -> dict:
    return {
        "ok": True,
        "code_email": settings.code_email,
        "conf_email": settings.conf_email,
        "state": state_of(settings).value,
        "enabled": state_of(settings) is EnrollmentState.CONFIRMED,
        "notices": [{"key": n.key, "level": n.level, "message": n.message} for n in notices],
    }


def _run(controller: EnrollmentController, ctx: AuthContext, settings: EnrollmentSettings, host, db: Session) -> dict:
    try:
        notices = controller.process(settings, code_store_for(ctx.session_id), host)
    except GenerationError:
        logger.exception("Code generation failed for user %s", ctx.user.id)
        raise HTTPException(500, "Could not generate a confirmation code.")

    apply_settings(ctx.user, settings)
    db.add(ctx.user)
    db.commit()
    db.refresh(ctx.user)
    return _status(settings, notices)


@router.get("/email")
def get_email_factor(ctx: AuthContext = Depends(get_auth_context)):
    return _status(settings_for(ctx.user))


class EmailFactorIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    code_email: Optional[Union[EmailStr, Literal[""]]] = None
    conf_code: Optional[str] = None


@router.put("/email")
def update_email_factor(
    payload: EmailFactorIn,
    request: Request,
    ctx: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
    controller: EnrollmentController = Depends(get_controller),
):
    settings = settings_for(ctx.user)
    settings.conf_code = (payload.conf_code or "").strip()
    if payload.code_email is not None:
        new_email = str(payload.code_email).strip().lower()
        if new_email != settings.code_email:
            # A code already in the session never proves the new address.
            settings.conf_code = ""
        settings.code_email = new_email
    return _run(controller, ctx, settings, request_host(request), db)


@router.post("/email/resend")
def resend_email_code(
    request: Request,
    ctx: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
    controller: EnrollmentController = Depends(get_controller),
):
    settings = settings_for(ctx.user)
    if state_of(settings) is not EnrollmentState.PENDING_CONFIRMATION:
        raise HTTPException(400, "No email address is waiting for confirmation.")
    result = _run(controller, ctx, settings, request_host(request), db)
    if any(n["key"] == "code_send_failed" for n in result["notices"]):
        raise HTTPException(502, "The confirmation code could not be sent.")
    return result
