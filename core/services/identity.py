"""Local identity provider.

``LocalIdentityProvider`` issues and validates sessions against the
``profiles`` and ``auth_sessions`` tables. ``IdentityClient`` is the
per-caller handle on top of it: it remembers the current access token and
notifies auth-state listeners, the way a hosted auth SDK does.
"""

from __future__ import annotations

import asyncio
import datetime as dt
import logging
from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from sqlalchemy.orm import Session

from core.auth.tokens import decode_access_token, issue_access_token
from core.config import Settings, get_settings
from core.db import session_scope
from core.errors import AuthError, NotFound, ValidationFailed
from core.models import USER_TYPES, AuthSession, Profile
from core.security import hash_password, verify_password
from core.store import SqlStore

logger = logging.getLogger(__name__)

SIGNED_IN = "SIGNED_IN"
SIGNED_OUT = "SIGNED_OUT"


@dataclass(frozen=True)
class IdentityUser:
    id: str
    email: str
    user_metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class IdentitySession:
    access_token: str
    expires_at: dt.datetime
    user: IdentityUser


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc).replace(tzinfo=None)


def _user_from_profile(profile: Profile) -> IdentityUser:
    metadata = dict(profile.user_metadata or {})
    metadata.setdefault("user_type", profile.user_type)
    return IdentityUser(id=profile.id, email=profile.email, user_metadata=metadata)


def profile_payload(profile: Profile) -> dict[str, Any]:
    return {
        "id": profile.id,
        "email": profile.email,
        "user_type": profile.user_type,
        "first_name": profile.first_name,
        "last_name": profile.last_name,
        "created_at": profile.created_at,
    }


class LocalIdentityProvider:
    def __init__(
        self,
        scope: Callable[[], AbstractContextManager[Session]] = session_scope,
        settings: Optional[Settings] = None,
    ):
        self._scope = scope
        self._settings = settings

    @property
    def settings(self) -> Settings:
        return self._settings or get_settings()

    def _open_session(self, store: SqlStore, profile: Profile) -> IdentitySession:
        expires_at = _utcnow() + dt.timedelta(minutes=self.settings.access_token_minutes)
        row = store.add_auth_session(AuthSession(user_id=profile.id, expires_at=expires_at))
        token = issue_access_token(
            user_id=profile.id,
            email=profile.email,
            user_type=profile.user_type,
            session_id=row.id,
            expires_at=expires_at,
        )
        return IdentitySession(access_token=token, expires_at=expires_at, user=_user_from_profile(profile))

    def get_session(self, access_token: Optional[str]) -> Optional[IdentitySession]:
        """Resolve a token to its live session; None when absent, expired or revoked."""
        if not access_token:
            return None
        try:
            claims = decode_access_token(access_token)
        except AuthError:
            return None
        with self._scope() as s:
            store = SqlStore(s)
            row = store.get_auth_session(claims.session_id)
            if row is None or row.revoked_at is not None or row.expires_at <= _utcnow():
                return None
            profile = store.get_profile(claims.user_id)
            if profile is None:
                return None
            return IdentitySession(access_token=access_token, expires_at=row.expires_at, user=_user_from_profile(profile))

    def sign_in(self, email: str, password: str) -> IdentitySession:
        with self._scope() as s:
            store = SqlStore(s)
            profile = store.get_profile_by_email(email)
            if profile is None or not verify_password(password, profile.password_hash):
                logger.info("sign_in_rejected", extra={"email": email})
                raise AuthError("Invalid login credentials")
            session = self._open_session(store, profile)
        logger.info("sign_in", extra={"user_id": session.user.id})
        return session

    def sign_up(self, email: str, password: str, metadata: dict[str, Any]) -> IdentitySession:
        user_type = metadata.get("user_type")
        if user_type not in USER_TYPES:
            raise ValidationFailed(f"user_type must be one of {list(USER_TYPES)}")
        with self._scope() as s:
            store = SqlStore(s)
            if store.get_profile_by_email(email) is not None:
                raise AuthError("User already registered")
            profile = store.add_profile(
                Profile(
                    email=email.strip().lower(),
                    password_hash=hash_password(password),
                    user_type=user_type,
                    first_name=metadata.get("first_name"),
                    last_name=metadata.get("last_name"),
                    user_metadata=dict(metadata),
                )
            )
            session = self._open_session(store, profile)
        logger.info("sign_up", extra={"user_id": session.user.id, "user_type": user_type})
        return session

    def sign_out(self, access_token: Optional[str]) -> None:
        if not access_token:
            return
        claims = decode_access_token(access_token)
        with self._scope() as s:
            row = SqlStore(s).get_auth_session(claims.session_id)
            if row is not None and row.revoked_at is None:
                row.revoked_at = _utcnow()
        logger.info("sign_out", extra={"user_id": claims.user_id})

    def fetch_profile(self, user_id: str) -> dict[str, Any]:
        with self._scope() as s:
            profile = SqlStore(s).get_profile(user_id)
            if profile is None:
                raise NotFound("Profile not found")
            return profile_payload(profile)


class IdentityClient:
    """Stateful handle holding one caller's access token.

    Provider calls hit the database and bcrypt, so they run in a worker
    thread; listeners are always called back on the event loop.
    """

    def __init__(self, provider: LocalIdentityProvider, access_token: Optional[str] = None):
        self.provider = provider
        self.access_token = access_token
        self._listeners: list[Callable[[str, Optional[IdentitySession]], None]] = []

    def on_auth_state_change(self, callback: Callable[[str, Optional[IdentitySession]], None]) -> Callable[[], None]:
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _emit(self, event: str, session: Optional[IdentitySession]) -> None:
        for listener in list(self._listeners):
            listener(event, session)

    async def get_current_session(self) -> Optional[IdentitySession]:
        return await asyncio.to_thread(self.provider.get_session, self.access_token)

    async def sign_in(self, email: str, password: str) -> IdentitySession:
        session = await asyncio.to_thread(self.provider.sign_in, email, password)
        self.access_token = session.access_token
        self._emit(SIGNED_IN, session)
        return session

    async def sign_up(self, email: str, password: str, metadata: dict[str, Any]) -> IdentitySession:
        session = await asyncio.to_thread(self.provider.sign_up, email, password, metadata)
        self.access_token = session.access_token
        self._emit(SIGNED_IN, session)
        return session

    async def sign_out(self) -> None:
        """Revoke the session; the local token is dropped even if revocation fails."""
        token, self.access_token = self.access_token, None
        try:
            await asyncio.to_thread(self.provider.sign_out, token)
        finally:
            self._emit(SIGNED_OUT, None)

    async def fetch_profile(self, user_id: str) -> dict[str, Any]:
        return await asyncio.to_thread(self.provider.fetch_profile, user_id)
