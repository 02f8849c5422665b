from __future__ import annotations

import re
from email.message import EmailMessage
from typing import List
from urllib.parse import parse_qs, urlsplit

import pytest
from api_helpers import count_rows, make_user

from parentwise.db import get_connection
from parentwise.emailing import get_mailer
from parentwise.errors import EmailDeliveryError
from parentwise.main import app


class RecordingMailer:
    def __init__(self) -> None:
        self.sent: List[EmailMessage] = []

    def send(self, message: EmailMessage) -> None:
        self.sent.append(message)


class FailingMailer:
    def send(self, message: EmailMessage) -> None:
        raise EmailDeliveryError()


@pytest.fixture
def mailer() -> RecordingMailer:
    recorder = RecordingMailer()
    app.dependency_overrides[get_mailer] = lambda: recorder
    return recorder


def _link_params(message: EmailMessage) -> dict:
    url = re.search(r"https?://\S+", message.get_content()).group(0)
    parts = urlsplit(url)
    assert parts.path == "/api/auth/email/callback"
    return {key: values[0] for key, values in parse_qs(parts.query).items()}


def test_magic_link_signs_up_new_user(client, mailer) -> None:
    resp = client.post("/api/auth/email", json={"email": "Fresh@Example.com"})
    assert resp.status_code == 200
    assert len(mailer.sent) == 1
    message = mailer.sent[0]
    assert message["To"] == "fresh@example.com"
    assert message["Subject"] == "Sign in to ParentWise"
    assert "expire in 24 hours" in message.get_content()

    params = _link_params(message)
    callback = client.get("/api/auth/email/callback", params=params)
    assert callback.status_code == 200
    data = callback.json()["data"]
    assert data["isNewUser"] is True
    assert data["user"]["email"] == "fresh@example.com"
    assert data["user"]["emailVerifiedAt"] is not None
    assert count_rows("audit_logs", "action = 'REGISTER'") == 1


def test_magic_link_for_existing_user(client, mailer) -> None:
    user = make_user()
    client.post("/api/auth/email", json={"email": user.email})
    callback = client.get("/api/auth/email/callback", params=_link_params(mailer.sent[0]))
    assert callback.status_code == 200
    assert callback.json()["data"]["isNewUser"] is False
    assert callback.json()["data"]["user"]["id"] == user.id


def test_magic_link_is_single_use(client, mailer) -> None:
    client.post("/api/auth/email", json={"email": "once@example.com"})
    params = _link_params(mailer.sent[0])
    assert client.get("/api/auth/email/callback", params=params).status_code == 200

    reused = client.get("/api/auth/email/callback", params=params)
    assert reused.status_code == 401
    assert reused.json() == {"error": "This sign-in link is invalid or has expired"}


def test_magic_link_token_is_bound_to_email(client, mailer) -> None:
    client.post("/api/auth/email", json={"email": "owner@example.com"})
    params = _link_params(mailer.sent[0])
    params["email"] = "attacker@example.com"
    assert client.get("/api/auth/email/callback", params=params).status_code == 401
    assert count_rows("users") == 0


def test_expired_magic_link_is_rejected(client, mailer) -> None:
    client.post("/api/auth/email", json={"email": "late@example.com"})
    with get_connection() as conn:
        conn.execute("UPDATE verification_tokens SET expires_at = '2000-01-01T00:00:00+00:00'")
        conn.commit()
    resp = client.get("/api/auth/email/callback", params=_link_params(mailer.sent[0]))
    assert resp.status_code == 401


def test_email_sign_in_without_smtp_is_unavailable(client) -> None:
    resp = client.post("/api/auth/email", json={"email": "someone@example.com"})
    assert resp.status_code == 503
    assert resp.json() == {"error": "Email sign-in is not configured."}


def test_failed_delivery_keeps_no_token(client) -> None:
    app.dependency_overrides[get_mailer] = lambda: FailingMailer()
    resp = client.post("/api/auth/email", json={"email": "someone@example.com"})
    assert resp.status_code == 503
    assert count_rows("verification_tokens") == 0


def test_invalid_email_address(client, mailer) -> None:
    resp = client.post("/api/auth/email", json={"email": "not-an-email"})
    assert resp.status_code == 400
    assert mailer.sent == []


class CommitCheckingMailer(RecordingMailer):
    def send(self, message: EmailMessage) -> None:
        # Runs outside the request's transaction, so a fresh connection sees the row.
        self.committed_tokens = count_rows("verification_tokens")
        super().send(message)


def test_token_is_committed_before_delivery(client) -> None:
    checking = CommitCheckingMailer()
    app.dependency_overrides[get_mailer] = lambda: checking
    resp = client.post("/api/auth/email", json={"email": "someone@example.com"})
    assert resp.status_code == 200
    assert checking.committed_tokens == 1


def test_new_link_prunes_expired_tokens(client, mailer) -> None:
    with get_connection() as conn:
        conn.executemany(
            "INSERT INTO verification_tokens (identifier, token_hash, expires_at) VALUES (?, ?, ?)",
            [
                ("stale@example.com", "old-hash", "2000-01-01T00:00:00+00:00"),
                ("other@example.com", "other-hash", "2000-01-01T00:00:00+00:00"),
            ],
        )
        conn.commit()

    client.post("/api/auth/email", json={"email": "stale@example.com"})
    assert count_rows("verification_tokens", "identifier = ?", ("stale@example.com",)) == 1
    assert count_rows("verification_tokens", "token_hash = 'old-hash'") == 0
    assert count_rows("verification_tokens", "identifier = ?", ("other@example.com",)) == 1
