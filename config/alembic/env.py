"""Alembic environment for the canonical city store.

The database URL comes from ``ALEMBIC_DATABASE_URL`` when set, otherwise
from ``CITY_SYNC_DATABASE_URL_SYNC`` via the application settings, so
migrations and stages read the same configuration.
"""

import os
import sys
from logging.config import fileConfig
from pathlib import Path

from alembic import context
from sqlalchemy import create_engine, pool

project_root = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(project_root / "src"))

from city_sync.config.settings import get_settings  # noqa: E402
from city_sync.models import Base  # noqa: E402

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def migration_url() -> str:
    return os.environ.get("ALEMBIC_DATABASE_URL") or get_settings().database_url_sync


def run_migrations_offline() -> None:
    context.configure(
        url=migration_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = create_engine(migration_url(), poolclass=pool.NullPool)
    with connectable.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
