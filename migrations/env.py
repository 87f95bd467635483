"""Alembic environment for campusrun.

The app passes its own connection in via ``config.attributes`` at startup;
the CLI (``alembic upgrade head``) builds a sync engine from settings.
Batch mode is always on because SQLite cannot ALTER most constraints.
"""

from __future__ import annotations

from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool
from sqlmodel import SQLModel

from campusrun.db_models import *  # noqa: F401, F403

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = SQLModel.metadata


def _sync_url() -> str:
    url = config.get_main_option("sqlalchemy.url")
    if url:
        return url
    from campusrun.config import settings

    if settings.database_url.startswith("sqlite"):
        return settings.database_url.replace("sqlite+aiosqlite", "sqlite")
    return f"sqlite:///{settings.database_url}"


def _run(connection) -> None:
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        render_as_batch=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_offline() -> None:
    context.configure(
        url=_sync_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    injected = config.attributes.get("connection")
    if injected is not None:
        _run(injected)
        return

    config.set_main_option("sqlalchemy.url", _sync_url())
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        _run(connection)


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
