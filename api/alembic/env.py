from __future__ import annotations

import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine, make_url
from sqlalchemy.engine import Engine

from sharebuddy import models  # noqa: F401  registers every table on Base.metadata
from sharebuddy.db import Base, engine, postgres_url

config = context.config

if config.config_file_name:
    fileConfig(config.config_file_name, disable_existing_loggers=False)

target_metadata = Base.metadata


def migration_url() -> str | None:
    """
    URL of a role allowed to run DDL, when one is configured.

    None means migrations run through the application's own engine.
    """
    url = config.get_main_option("sqlalchemy.url") or os.getenv("DB_ADMIN_URL")
    if url:
        return url

    admin_user = os.getenv("DB_ADMIN_USER")
    admin_pass = os.getenv("DB_ADMIN_PASSWORD")
    db_name = os.getenv("DB_DATABASE")
    if admin_user and admin_pass and db_name:
        return postgres_url(admin_user, admin_pass, db_name)
    return None


def _configure(**kwargs) -> None:
    dialect = kwargs.pop("dialect_name")
    context.configure(
        target_metadata=target_metadata,
        compare_type=True,
        # SQLite cannot ALTER most columns in place
        render_as_batch=dialect == "sqlite",
        **kwargs,
    )


def run_migrations_offline() -> None:
    url = migration_url() or engine.url.render_as_string(hide_password=False)
    _configure(
        url=url,
        dialect_name=make_url(url).get_backend_name(),
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    url = migration_url()
    connectable: Engine = create_engine(url, pool_pre_ping=True) if url else engine

    with connectable.connect() as connection:
        _configure(connection=connection, dialect_name=connection.dialect.name)

        with context.begin_transaction():
            context.run_migrations()

    if connectable is not engine:
        connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
