import os
import re

import pytest


# Ensure sensible defaults for tests before app import
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("MAIL_BACKEND", "log")
os.environ.pop("REDIS_URL", None)
os.environ.pop("SERVER_HOSTNAME", None)


class FakeMailSender:
    """Records every message; `ok` controls the reported delivery result."""

    def __init__(self, ok: bool = True):
        self.ok = ok
        self.sent = []

    def send(self, to, from_email, subject, body, html=None):
        self.sent.append({"to": to, "from": from_email, "subject": subject, "body": body, "html": html})
        return self.ok

    @property
    def last_code(self) -> str:
        m = re.search(r"code is (\d+)", self.sent[-1]["body"])
        assert m, self.sent[-1]["body"]
        return m.group(1)


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def mailer():
    return FakeMailSender()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def session():
    from utils.session_store import MemorySessionBackend

    return MemorySessionBackend().session("test-session")


@pytest.fixture
def store(session):
    from utils.code_store import CodeStore

    return CodeStore(session)


@pytest.fixture
def controller(mailer, clock):
    from config import OTPConfig
    from utils.enrollment import EnrollmentController

    return EnrollmentController(OTPConfig(), mailer, clock=clock)


@pytest.fixture
def client(controller, monkeypatch):
    from fastapi.testclient import TestClient

    import main
    from database import Base, engine
    from utils import session_store
    from utils.enrollment import get_controller

    monkeypatch.setattr(session_store, "_backend", session_store.MemorySessionBackend())
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    main.app.dependency_overrides[get_controller] = lambda: controller
    try:
        yield TestClient(main.app)
    finally:
        main.app.dependency_overrides.clear()
