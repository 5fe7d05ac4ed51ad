from __future__ import annotations

from core.bootstrap import ensure_demo_seeded
from core.db import session_scope
from core.security import verify_password
from core.store import SqlStore
from db.seed import DEMO_PASSWORDS


def main() -> int:
    ensure_demo_seeded()
    all_ok = True
    with session_scope() as s:
        store = SqlStore(s)
        for email, password in DEMO_PASSWORDS.items():
            profile = store.get_profile_by_email(email)
            ok = bool(profile and verify_password(password, profile.password_hash))
            all_ok = all_ok and ok
            print(f"{email} exists={bool(profile)} password_ok={ok}")
    return 0 if all_ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
