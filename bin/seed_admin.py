# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20260206v1
# ---------------------------------------------------------------------------
"""
Create the first admin account.

    alembic upgrade head
    python bin/seed_admin.py

Email and password come from FIRST_ADMIN_EMAIL / FIRST_ADMIN_PASSWORD in
etc/app.conf or the environment; the application ignores them afterwards.
Because that password sits in a config file, the account is flagged
``is_password_temporary`` and the admin is expected to change it through
PUT /auth/change-password.

Exit status: 0 when the admin exists afterwards, 1 when nothing is configured.
"""

import sys
from pathlib import Path

# bin/  →  project root  →  backend/
_BACKEND_DIR = Path(__file__).resolve().parent.parent / "backend"
if str(_BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(_BACKEND_DIR))

from core.config import settings          # noqa: E402
from core.logger import get_logger        # noqa: E402
from database import session_scope        # noqa: E402
from users.service import UserConflict, UsersService  # noqa: E402

log = get_logger("seed")


def seed(email: str, password: str) -> bool:
    """Insert the admin; returns False when the email is already taken."""
    with session_scope() as db:
        try:
            admin, _ = UsersService(db).create(
                email, first_name="Admin", password=password, role="admin"
            )
        except UserConflict:
            log.info("admin %s already exists, skipping", email)
            return False
        admin.is_password_temporary = True
    log.info("admin %s created", email)
    return True


def main() -> int:
    if not settings.first_admin_email or not settings.first_admin_password:
        log.warning("FIRST_ADMIN_EMAIL or FIRST_ADMIN_PASSWORD not set, nothing to do")
        return 1
    seed(settings.first_admin_email, settings.first_admin_password)
    return 0


if __name__ == "__main__":
    sys.exit(main())
