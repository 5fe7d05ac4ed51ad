from __future__ import annotations

from collections.abc import Generator
from contextlib import nullcontext

from fastapi import Depends
from sqlalchemy.orm import Session

from core.db import get_session_factory
from core.services.identity import LocalIdentityProvider
from core.services.invitations import InvitationMailer, ResendMailer
from core.store import SqlStore


def get_db() -> Generator[Session, None, None]:
    session = get_session_factory()()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_store(db: Session = Depends(get_db)) -> SqlStore:
    return SqlStore(db)


def get_identity_provider(db: Session = Depends(get_db)) -> LocalIdentityProvider:
    # Identity writes join the request transaction.
    return LocalIdentityProvider(scope=lambda: nullcontext(db))


def get_mailer() -> InvitationMailer:
    return ResendMailer()
