from __future__ import annotations

import logging
import os

from apscheduler.schedulers.background import BackgroundScheduler
from fastapi import FastAPI

from config import DEBUG
from database import Base, engine
from routers.auth import router as auth_router
from routers.twofactor import router as twofactor_router
from utils.session_store import SESSION_TTL_SECONDS, get_session_backend


logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "DEBUG" if DEBUG else "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Email OTP Backend")

# Create tables (simple projects; for production use migrations).
Base.metadata.create_all(bind=engine)

app.include_router(auth_router, prefix="/api")
app.include_router(twofactor_router, prefix="/api")


def _purge_idle_sessions() -> int:
    """Drop in-memory sessions (and their codes) idle longer than the session TTL."""
    purged = get_session_backend().purge_idle(SESSION_TTL_SECONDS)
    if purged:
        logger.info("Purged %s idle sessions", purged)
    return purged


@app.on_event("startup")
def _start_scheduler():
    sched = BackgroundScheduler(timezone=os.getenv("TZ", "UTC"))
    sched.add_job(_purge_idle_sessions, "interval", minutes=10, id="purge_idle_sessions", replace_existing=True)
    sched.start()
    app.state._scheduler = sched


@app.on_event("shutdown")
def _stop_scheduler():
    sched = getattr(app.state, "_scheduler", None)
    if sched:
        sched.shutdown(wait=False)


@app.get("/")
def root():
    return {"status": "Backend running"}
