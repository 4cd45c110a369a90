import pytest

from utils.code_store import ValidationOutcome
from utils.otp_service import GenerationError, generate_code, issue_and_send, render_message, resolve_from_address


@pytest.mark.parametrize("length", [1, 4, 6, 8, 12])
def test_generate_code_length_and_digits(length):
    for _ in range(50):
        code = generate_code(length)
        assert len(code) == length
        assert code.isdigit()


@pytest.mark.parametrize("length", [0, -3])
def test_generate_code_rejects_non_positive_length(length):
    with pytest.raises(GenerationError):
        generate_code(length)


def test_generate_code_faulty_random_source(monkeypatch):
    monkeypatch.setattr("utils.otp_service.secrets.choice", lambda seq: "12")
    with pytest.raises(GenerationError):
        generate_code(6)


def test_generation_failure_stores_nothing(monkeypatch, store, mailer):
    monkeypatch.setattr("utils.otp_service.secrets.choice", lambda seq: "")
    with pytest.raises(GenerationError):
        issue_and_send(store, length=6, ttl_seconds=180, to_email="a@x.com",
                       from_email="noreply@x.com", mail_sender=mailer, now=0)
    assert store.records() == []
    assert mailer.sent == []


def test_issue_and_send_stores_and_mails(store, mailer):
    ok = issue_and_send(store, length=6, ttl_seconds=180, to_email="a@x.com",
                        from_email="noreply@x.com", mail_sender=mailer, now=1000)
    assert ok is True
    [record] = store.records()
    assert record.expires_at == 1180
    msg = mailer.sent[0]
    assert msg["to"] == "a@x.com"
    assert msg["from"] == "noreply@x.com"
    assert record.value in msg["body"]
    assert record.value in msg["html"]


def test_delivery_failure_keeps_code(store, mailer):
    mailer.ok = False
    ok = issue_and_send(store, length=6, ttl_seconds=180, to_email="a@x.com",
                        from_email="noreply@x.com", mail_sender=mailer, now=0)
    assert ok is False
    [record] = store.records()
    assert store.find_match(record.value, now=10) is ValidationOutcome.VALID


@pytest.mark.parametrize(
    "configured,host,expected",
    [
        ("noreply@example.com", "mail.acme.test", "noreply@mail.acme.test"),
        ("noreply@EXAMPLE.com", "mail.acme.test:8443", "noreply@mail.acme.test"),
        ("otp@acme.test", "mail.acme.test", "otp@acme.test"),
        ("noreply@example.com", None, "noreply@example.com"),
        ("noreply@example.com", "", "noreply@example.com"),
        ("not-an-address", "mail.acme.test", "not-an-address"),
    ],
)
def test_resolve_from_address(configured, host, expected):
    assert resolve_from_address(configured, host, "example.com") == expected


def test_render_message_mentions_code_and_window():
    subject, text, html = render_message("123456", 180, "Acme")
    assert "Acme" in subject
    assert "123456" in text and "3 minutes" in text
    assert "123456" in html
    assert "1 minute." in render_message("123456", 30)[1]
