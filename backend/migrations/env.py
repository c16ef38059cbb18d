# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20260206v1
# ---------------------------------------------------------------------------
"""
Alembic environment.

Migrations run against the application's own ``database.engine`` so the URL
has a single source (``settings.database_url``); alembic.ini carries none.

    alembic upgrade head                 # online, from the project root
    alembic upgrade head --sql > up.sql  # offline, emits SQL only
"""

import sys
from pathlib import Path

# alembic.ini prepends backend/ as well; this covers running env.py directly
_BACKEND_DIR = Path(__file__).resolve().parent.parent
if str(_BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(_BACKEND_DIR))

from alembic import context  # noqa: E402

from core.config import settings  # noqa: E402
from database import Base, engine  # noqa: E402

# every model module must be imported for autogenerate to see its table
import models.user  # noqa: F401, E402

target_metadata = Base.metadata


def _options(dialect_name: str) -> dict:
    return {
        "target_metadata": target_metadata,
        "compare_type": True,
        # SQLite has no ALTER COLUMN; batch mode rebuilds the table instead
        "render_as_batch": dialect_name == "sqlite",
    }


def run_migrations_online():
    with engine.connect() as conn:
        context.configure(connection=conn, **_options(conn.dialect.name))
        with context.begin_transaction():
            context.run_migrations()


def run_migrations_offline():
    context.configure(
        url=settings.database_url,
        literal_binds=True,
        **_options(engine.dialect.name),
    )
    with context.begin_transaction():
        context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
