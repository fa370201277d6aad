"""
groupledger/migrations/env.py — Alembic environment.

Reads DATABASE_URL (or TEST_DATABASE_URL when TEST_RUN=1) from the
environment / .env file and uses it for migrations.
"""

from __future__ import annotations

import os
from logging.config import fileConfig

from alembic import context
from dotenv import find_dotenv, load_dotenv
from sqlalchemy import engine_from_config, pool

load_dotenv(find_dotenv(usecwd=True))

from groupledger.app.extensions import db  # noqa: E402
from groupledger.app.models import (  # noqa: E402,F401
    expense_split,
    group,
    group_balance,
    membership,
    settlement,
    shared_expense,
    user,
)
from groupledger.config import _normalise_db_url  # noqa: E402

target_metadata = db.metadata

# ── Pick the right database URL ───────────────────────────────────────────
if os.getenv("TEST_RUN"):
    db_url = _normalise_db_url(os.environ["TEST_DATABASE_URL"])
else:
    db_url = _normalise_db_url(os.environ["DATABASE_URL"])

# ── Alembic config ────────────────────────────────────────────────────────
config = context.config
config.set_main_option("sqlalchemy.url", db_url.replace("%", "%%"))  # configparser escaping

if config.config_file_name is not None:
    fileConfig(config.config_file_name)


# SQLite cannot ALTER most constraints in place; batch mode rebuilds tables.
render_as_batch = db_url.startswith("sqlite")


def run_migrations_offline() -> None:
    context.configure(
        url=db_url,
        render_as_batch=render_as_batch,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            render_as_batch=render_as_batch,
            compare_type=True,
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
