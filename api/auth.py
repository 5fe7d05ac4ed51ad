from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from api.deps import get_identity_provider
from core.errors import AuthError, PermissionDenied
from core.services.identity import LocalIdentityProvider
from core.store import SqlStore

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class AuthPrincipal:
    user_id: str
    email: str
    user_type: str
    access_token: str


def get_access_token(credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)) -> str:
    if credentials is None or not credentials.credentials:
        raise AuthError("No authorization token provided")
    return credentials.credentials


def get_current_principal(
    token: str = Depends(get_access_token),
    provider: LocalIdentityProvider = Depends(get_identity_provider),
) -> AuthPrincipal:
    session = provider.get_session(token)
    if session is None:
        raise AuthError("Authentication failed")
    return AuthPrincipal(
        user_id=session.user.id,
        email=session.user.email,
        user_type=str(session.user.user_metadata.get("user_type") or ""),
        access_token=token,
    )


def require_roles(*allowed_roles: str) -> Callable[[AuthPrincipal], AuthPrincipal]:
    allowed = {r.lower() for r in allowed_roles}

    def _dependency(principal: AuthPrincipal = Depends(get_current_principal)) -> AuthPrincipal:
        role = principal.user_type.lower()
        # Admins pass every role check.
        if role != "admin" and role not in allowed:
            raise PermissionDenied(f"Requires one of: {', '.join(sorted(allowed))}")
        return principal

    return _dependency


def ensure_can_view_client(principal: AuthPrincipal, client_id: str, store: SqlStore) -> None:
    """Clients see only their own data, coaches see the clients they coach, admins see everyone."""
    if principal.user_type == "admin" or principal.user_id == client_id:
        return
    if principal.user_type == "coach" and store.is_coach_for_client(principal.user_id, client_id):
        return
    raise PermissionDenied("Cannot access another client's data")
