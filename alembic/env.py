"""
Alembic environment for the scheduler schema.

Migrations run on a synchronous driver: DATABASE_URL_SYNC when set,
otherwise DATABASE_URL with its async driver suffix removed.
"""

from __future__ import annotations

import sys
from logging.config import fileConfig
from pathlib import Path

from alembic import context
from sqlalchemy import engine_from_config, pool

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from core.config import settings  # noqa: E402
from core.database import Base  # noqa: E402
import core.models  # noqa: F401, E402  (registers tables on Base.metadata)

ASYNC_DRIVER_SUFFIXES = ("+asyncpg", "+aiosqlite")

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def sync_database_url() -> str:
    if settings.database_url_sync:
        return settings.database_url_sync
    url = settings.database_url
    for suffix in ASYNC_DRIVER_SUFFIXES:
        url = url.replace(suffix, "")
    return url


config.set_main_option("sqlalchemy.url", sync_database_url())

# Enum and CHECK changes on subscription/competitor should show up in autogenerate.
COMPARE_OPTIONS = {"compare_type": True, "compare_server_default": True}


def run_migrations_offline() -> None:
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **COMPARE_OPTIONS,
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
        context.configure(connection=connection, target_metadata=target_metadata, **COMPARE_OPTIONS)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
