"""Admin invitations and shareable registration links."""

from __future__ import annotations

import datetime as dt
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Optional, Protocol
from urllib.parse import urlencode

import httpx

from core.config import Settings, get_settings
from core.errors import InvitationExpired, InvitationInvalid, NotFound
from core.models import Invitation

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"


@dataclass
class MailResult:
    sent: bool
    error: Optional[str] = None
    provider_id: Optional[str] = None


class InvitationMailer(Protocol):
    def send_invitation(self, email: str, user_type: str, invite_link: str) -> MailResult: ...


class ResendMailer:
    """Sends invitation emails through the Resend HTTP API."""

    def __init__(self, settings: Optional[Settings] = None, client: Optional[httpx.Client] = None):
        self.settings = settings or get_settings()
        self._client = client

    def send_invitation(self, email: str, user_type: str, invite_link: str) -> MailResult:
        api_key = self.settings.resend_api_key
        if not api_key:
            return MailResult(sent=False, error="Email delivery is not configured")

        payload = {
            "from": self.settings.email_from,
            "to": [email],
            "subject": f"You're invited to join as a {user_type}",
            "html": (
                f"<p>You have been invited to join as a <strong>{user_type}</strong>.</p>"
                f'<p><a href="{invite_link}">Accept your invitation</a></p>'
                f"<p>This link expires in {self.settings.invitation_ttl_days} days.</p>"
            ),
        }
        headers = {"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"}
        client = self._client or httpx.Client(timeout=10.0)
        try:
            resp = client.post(RESEND_API_URL, json=payload, headers=headers)
            if resp.status_code >= 400:
                logger.warning("invitation_email_rejected", extra={"status_code": resp.status_code, "email": email})
                return MailResult(sent=False, error=f"Email provider returned {resp.status_code}")
            return MailResult(sent=True, provider_id=(resp.json() or {}).get("id"))
        except httpx.HTTPError as exc:
            logger.warning("invitation_email_failed", extra={"email": email, "error": str(exc)})
            return MailResult(sent=False, error=str(exc))
        finally:
            if self._client is None:
                client.close()


def build_invite_link(site_url: str, token: str, user_type: str) -> str:
    return f"{site_url.rstrip('/')}/register?{urlencode({'token': token, 'type': user_type})}"


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc).replace(tzinfo=None)


def is_expired(invitation: Invitation, now: Optional[dt.datetime] = None) -> bool:
    return invitation.expires_at <= (now or _utcnow())


def invitation_status(invitation: Invitation, now: Optional[dt.datetime] = None) -> str:
    if invitation.accepted and not invitation.is_share_link:
        return "accepted"
    if is_expired(invitation, now):
        return "expired"
    return "pending"


def invitation_payload(invitation: Invitation, settings: Settings, now: Optional[dt.datetime] = None) -> dict[str, Any]:
    return {
        "id": invitation.id,
        "email": invitation.email,
        "user_type": invitation.user_type,
        "token": invitation.token,
        "created_at": invitation.created_at,
        "expires_at": invitation.expires_at,
        "accepted": bool(invitation.accepted),
        "accepted_at": invitation.accepted_at,
        "is_share_link": bool(invitation.is_share_link),
        "share_link_type": invitation.share_link_type,
        "status": invitation_status(invitation, now),
        "invite_link": build_invite_link(settings.site_url, invitation.token, invitation.user_type),
    }


class InvitationService:
    def __init__(self, store, mailer: Optional[InvitationMailer] = None, settings: Optional[Settings] = None):
        self.store = store
        self.settings = settings or get_settings()
        self.mailer = mailer or ResendMailer(self.settings)

    def _expiry(self, now: dt.datetime) -> dt.datetime:
        return now + dt.timedelta(days=self.settings.invitation_ttl_days)

    def _response(self, invitation: Invitation, mail: Optional[MailResult], now: dt.datetime) -> dict[str, Any]:
        payload = invitation_payload(invitation, self.settings, now)
        payload["success"] = True
        payload["email_sent"] = bool(mail and mail.sent)
        if mail is not None and mail.error:
            payload["email_error"] = mail.error
        return payload

    def create(self, email: str, user_type: str, invited_by: Optional[str], now: Optional[dt.datetime] = None) -> dict[str, Any]:
        now = now or _utcnow()
        invitation = self.store.add_invitation(
            Invitation(
                email=email.strip().lower(),
                user_type=user_type,
                token=str(uuid.uuid4()),
                invited_by=invited_by,
                created_at=now,
                expires_at=self._expiry(now),
            )
        )
        link = build_invite_link(self.settings.site_url, invitation.token, user_type)
        mail = self.mailer.send_invitation(invitation.email, user_type, link)
        logger.info("invitation_created", extra={"invitation_id": invitation.id, "user_type": user_type, "email_sent": mail.sent})
        return self._response(invitation, mail, now)

    def create_share_link(self, user_type: str, invited_by: Optional[str], now: Optional[dt.datetime] = None) -> dict[str, Any]:
        now = now or _utcnow()
        invitation = self.store.add_invitation(
            Invitation(
                email=None,
                user_type=user_type,
                token=str(uuid.uuid4()),
                invited_by=invited_by,
                created_at=now,
                expires_at=self._expiry(now),
                is_share_link=True,
                share_link_type=user_type,
            )
        )
        logger.info("share_link_created", extra={"invitation_id": invitation.id, "user_type": user_type})
        return self._response(invitation, None, now)

    def resend(self, invitation_id: str, now: Optional[dt.datetime] = None) -> dict[str, Any]:
        """Extend the expiry of an invitation and mail it again; the token is kept."""
        now = now or _utcnow()
        invitation = self.store.get_invitation(invitation_id)
        if invitation is None:
            raise NotFound("Invitation not found")
        if invitation.accepted and not invitation.is_share_link:
            raise InvitationInvalid("Invitation has already been accepted")
        invitation.expires_at = self._expiry(now)
        mail = None
        if invitation.email and not invitation.is_share_link:
            link = build_invite_link(self.settings.site_url, invitation.token, invitation.user_type)
            mail = self.mailer.send_invitation(invitation.email, invitation.user_type, link)
        logger.info("invitation_resent", extra={"invitation_id": invitation.id})
        return self._response(invitation, mail, now)

    def validate(self, token: str, email: Optional[str] = None, now: Optional[dt.datetime] = None) -> Invitation:
        now = now or _utcnow()
        invitation = self.store.get_invitation_by_token(token)
        if invitation is None:
            raise InvitationInvalid("Invitation not found")
        if is_expired(invitation, now):
            raise InvitationExpired("Invitation has expired")
        if not invitation.is_share_link:
            if invitation.accepted:
                raise InvitationInvalid("Invitation has already been accepted")
            if email is not None and invitation.email and invitation.email != email.strip().lower():
                raise InvitationInvalid("Invitation was issued to a different email address")
        return invitation

    def accept(self, token: str, email: Optional[str] = None, now: Optional[dt.datetime] = None) -> Invitation:
        now = now or _utcnow()
        invitation = self.validate(token, email=email, now=now)
        if not invitation.is_share_link:
            invitation.accepted = True
            invitation.accepted_at = now
        logger.info("invitation_accepted", extra={"invitation_id": invitation.id})
        return invitation

    def partition(self, now: Optional[dt.datetime] = None) -> dict[str, list[dict[str, Any]]]:
        now = now or _utcnow()
        buckets: dict[str, list[dict[str, Any]]] = {"pending": [], "expired": [], "accepted": []}
        for invitation in self.store.list_invitations():
            payload = invitation_payload(invitation, self.settings, now)
            buckets[payload["status"]].append(payload)
        return buckets
