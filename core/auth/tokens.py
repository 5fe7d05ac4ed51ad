from __future__ import annotations

import datetime as dt
from dataclasses import dataclass

from jose import ExpiredSignatureError, JWTError, jwt

from core.config import get_settings
from core.errors import AuthError


@dataclass(frozen=True)
class TokenClaims:
    user_id: str
    email: str
    user_type: str
    session_id: str
    exp: int


def issue_access_token(*, user_id: str, email: str, user_type: str, session_id: str, expires_at: dt.datetime) -> str:
    settings = get_settings()
    payload = {
        "sub": str(user_id),
        "email": str(email),
        "user_type": str(user_type),
        "sid": str(session_id),
        "exp": int(expires_at.replace(tzinfo=dt.timezone.utc).timestamp()),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> TokenClaims:
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except ExpiredSignatureError as exc:
        raise AuthError("Session expired") from exc
    except JWTError as exc:
        raise AuthError("Invalid session token") from exc

    try:
        return TokenClaims(
            user_id=str(payload["sub"]),
            email=str(payload["email"]),
            user_type=str(payload["user_type"]),
            session_id=str(payload["sid"]),
            exp=int(payload["exp"]),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise AuthError("Invalid session token") from exc
