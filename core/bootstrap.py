from __future__ import annotations

import logging

from sqlalchemy import select

from core.db import create_schema, session_scope
from core.models import Profile
from core.security import hash_password

logger = logging.getLogger(__name__)


def ensure_demo_seeded() -> bool:
    """Create the schema and demo data when the admin account is missing.

    Returns True when seeding ran.
    """
    create_schema()
    with session_scope() as s:
        admin = s.execute(select(Profile.id).where(Profile.email == "admin@demo.moai")).scalar_one_or_none()
    if admin is not None:
        reconcile_demo_credentials()
        return False

    from db.seed import seed_demo

    ids = seed_demo()
    logger.info("demo_seeded", extra={"program_id": ids["program"]})
    return True


def reconcile_demo_credentials() -> None:
    """Reset demo passwords so the documented logins keep working on a drifted database."""
    from db.seed import DEMO_PASSWORDS

    with session_scope() as s:
        for email, password in DEMO_PASSWORDS.items():
            profile = s.execute(select(Profile).where(Profile.email == email)).scalar_one_or_none()
            if profile is not None:
                profile.password_hash = hash_password(password)
