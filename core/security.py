from __future__ import annotations

import re

from passlib.context import CryptContext

from core.errors import ValidationFailed

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

PASSWORD_REGEX = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[^A-Za-z\d]).{10,72}$")


def validate_password_policy(password: str) -> tuple[bool, str]:
    if not PASSWORD_REGEX.match(password):
        return False, "Password must be 10+ chars with upper, lower, number, and symbol"
    return True, "ok"


def hash_password(password: str) -> str:
    valid, msg = validate_password_policy(password)
    if not valid:
        raise ValidationFailed(msg)
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return pwd_context.verify(password, password_hash)
    except (ValueError, TypeError):
        return False
