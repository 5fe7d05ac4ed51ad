"""Tests for invitations and share links."""

from __future__ import annotations

from datetime import datetime, timedelta

import httpx
import pytest

from core.config import Settings
from core.errors import InvitationExpired, InvitationInvalid, NotFound
from core.services.invitations import (
    RESEND_API_URL,
    InvitationService,
    MailResult,
    ResendMailer,
    build_invite_link,
)

SETTINGS = Settings(database_url="sqlite://", site_url="https://app.example.com", resend_api_key="")
NOW = datetime(2024, 1, 1, 12, 0)


class RecordingMailer:
    def __init__(self, sent=True):
        self.sent = sent
        self.outbox: list[tuple[str, str, str]] = []

    def send_invitation(self, email, user_type, invite_link):
        self.outbox.append((email, user_type, invite_link))
        return MailResult(sent=self.sent, error=None if self.sent else "smtp down")


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture
def service(store, mailer):
    return InvitationService(store, mailer, SETTINGS)


def test_build_invite_link():
    assert build_invite_link("https://app.example.com/", "abc", "coach") == "https://app.example.com/register?token=abc&type=coach"


def test_create_invitation_expires_in_thirty_days(service, mailer):
    payload = service.create("New.Coach@Example.com", "coach", invited_by=None, now=NOW)
    assert payload["success"] is True
    assert payload["email"] == "new.coach@example.com"
    assert payload["expires_at"] == NOW + timedelta(days=30)
    assert payload["status"] == "pending"
    assert payload["email_sent"] is True
    assert mailer.outbox == [("new.coach@example.com", "coach", payload["invite_link"])]


def test_create_reports_mail_failure_without_failing(store):
    service = InvitationService(store, RecordingMailer(sent=False), SETTINGS)
    payload = service.create("x@example.com", "client", invited_by=None, now=NOW)
    assert payload["success"] is True
    assert payload["email_sent"] is False
    assert payload["email_error"] == "smtp down"


def test_validate_and_accept(service):
    payload = service.create("x@example.com", "client", invited_by=None, now=NOW)
    invitation = service.validate(payload["token"], email="X@example.com", now=NOW)
    assert invitation.user_type == "client"

    service.accept(payload["token"], email="x@example.com", now=NOW)
    with pytest.raises(InvitationInvalid, match="already been accepted"):
        service.validate(payload["token"], now=NOW)


def test_validate_rejects_other_email(service):
    payload = service.create("x@example.com", "client", invited_by=None, now=NOW)
    with pytest.raises(InvitationInvalid):
        service.validate(payload["token"], email="y@example.com", now=NOW)


def test_validate_rejects_expired_and_unknown(service):
    payload = service.create("x@example.com", "client", invited_by=None, now=NOW)
    with pytest.raises(InvitationExpired):
        service.validate(payload["token"], now=NOW + timedelta(days=31))
    with pytest.raises(InvitationInvalid):
        service.validate("no-such-token", now=NOW)


def test_share_link_is_reusable(service, mailer):
    payload = service.create_share_link("client", invited_by=None, now=NOW)
    assert payload["is_share_link"] is True
    assert payload["email"] is None
    assert mailer.outbox == []
    service.accept(payload["token"], email="a@example.com", now=NOW)
    service.accept(payload["token"], email="b@example.com", now=NOW)
    assert service.validate(payload["token"], now=NOW).accepted is False


def test_resend_extends_expiry_and_keeps_token(service, mailer):
    payload = service.create("x@example.com", "client", invited_by=None, now=NOW)
    later = NOW + timedelta(days=40)
    resent = service.resend(payload["id"], now=later)
    assert resent["token"] == payload["token"]
    assert resent["expires_at"] == later + timedelta(days=30)
    assert resent["status"] == "pending"
    assert len(mailer.outbox) == 2


def test_resend_unknown_invitation(service):
    with pytest.raises(NotFound):
        service.resend("missing", now=NOW)


def test_partition(service):
    pending = service.create("p@example.com", "client", invited_by=None, now=NOW)
    accepted = service.create("a@example.com", "client", invited_by=None, now=NOW)
    service.accept(accepted["token"], now=NOW)
    expired = service.create("e@example.com", "coach", invited_by=None, now=NOW - timedelta(days=60))

    buckets = service.partition(now=NOW)
    assert [i["id"] for i in buckets["pending"]] == [pending["id"]]
    assert [i["id"] for i in buckets["accepted"]] == [accepted["id"]]
    assert [i["id"] for i in buckets["expired"]] == [expired["id"]]


def test_resend_mailer_without_api_key():
    result = ResendMailer(SETTINGS).send_invitation("x@example.com", "client", "https://link")
    assert result.sent is False
    assert result.error == "Email delivery is not configured"


def test_resend_mailer_posts_to_api():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["Authorization"]
        return httpx.Response(200, json={"id": "msg_1"})

    settings = Settings(database_url="sqlite://", resend_api_key="re_test")
    with httpx.Client(transport=httpx.MockTransport(handler)) as client:
        result = ResendMailer(settings, client=client).send_invitation("x@example.com", "client", "https://link")

    assert result.sent is True
    assert result.provider_id == "msg_1"
    assert seen["url"] == RESEND_API_URL
    assert seen["auth"] == "Bearer re_test"


def test_resend_mailer_reports_rejection():
    settings = Settings(database_url="sqlite://", resend_api_key="re_test")
    transport = httpx.MockTransport(lambda request: httpx.Response(422, json={"message": "bad"}))
    with httpx.Client(transport=transport) as client:
        result = ResendMailer(settings, client=client).send_invitation("x@example.com", "client", "https://link")
    assert result.sent is False
    assert "422" in result.error
