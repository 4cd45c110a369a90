import time

import pytest
from jose import jwt

from routers import auth


@pytest.fixture
def eastern_tz(monkeypatch):
    monkeypatch.setenv("TZ", "Europe/Helsinki")
    time.tzset()
    yield
    monkeypatch.undo()
    time.tzset()


def test_challenge_token_lifetime_is_utc(eastern_tz):
    token = auth._create_token(user_id=1, session_id="sid", typ="mfa", minutes=10)
    claims = jwt.get_unverified_claims(token)
    assert abs(claims["iat"] - time.time()) < 5
    assert abs(claims["exp"] - (time.time() + 600)) < 5
    assert auth._decode_token(token, "mfa") == (1, "sid")


def test_login_with_email_factor_east_of_utc(eastern_tz, client, mailer):
    r = client.post("/api/auth/register", json={"email": "alice@x.com", "username": "alice", "password": "secret123", "name": "Alice"})
    assert r.status_code == 200
    token = client.post("/api/auth/login", json={"identifier": "alice", "password": "secret123"}).json()["access_token"]
    headers = {"Authorization": f"Bearer {token}"}
    client.put("/api/2fa/email", json={"code_email": "alice@x.com"}, headers=headers)
    client.put("/api/2fa/email", json={"conf_code": mailer.last_code}, headers=headers)

    challenge = client.post("/api/auth/login", json={"identifier": "alice", "password": "secret123"}).json()["challenge_token"]
    r = client.post("/api/auth/login/verify-otp", json={"challenge_token": challenge, "otp": mailer.last_code})
    assert r.status_code == 200, r.text
