from __future__ import annotations

import os
from contextlib import contextmanager
from typing import Generator, Iterator
from urllib.parse import quote_plus

from sqlalchemy import create_engine, event
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool


def postgres_url(user: str, password: str, database: str) -> str:
    """psycopg URL for DB_HOST/DB_PORT, with the password URL-encoded."""
    host = os.getenv("DB_HOST", "db")
    port = os.getenv("DB_PORT", "5432")
    return f"postgresql+psycopg://{user}:{quote_plus(password)}@{host}:{port}/{database}"


def get_database_url() -> str:
    """Get the database URL for API operations."""
    url = os.getenv("DATABASE_URL")
    if url:
        return url

    db_user = os.getenv("DB_USER")
    db_pass = os.getenv("DB_PASSWORD")
    db_name = os.getenv("DB_DATABASE")
    if db_user and db_pass and db_name:
        return postgres_url(db_user, db_pass, db_name)

    raise RuntimeError(
        "DATABASE_URL must be set, or DB_USER, DB_PASSWORD, and DB_DATABASE must all be set."
    )


DATABASE_URL = get_database_url()


class Base(DeclarativeBase):
    """Base class for SQLAlchemy models."""


def _engine_options(url: str) -> dict:
    options: dict = {
        "future": True,
        "echo": os.getenv("LOG_LEVEL", "INFO").upper() == "DEBUG",
    }
    if url.startswith("sqlite"):
        options["connect_args"] = {"check_same_thread": False}
        if ":memory:" in url or url.rstrip("/") == "sqlite:":
            # One shared connection so every session sees the same in-memory database
            options["poolclass"] = StaticPool
    else:
        options["pool_pre_ping"] = True
    return options


engine = create_engine(DATABASE_URL, **_engine_options(DATABASE_URL))

if engine.dialect.name == "sqlite":

    @event.listens_for(engine, "connect")
    def _sqlite_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


def get_session() -> Generator[Session, None, None]:
    session: Session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def is_postgres(db: Session) -> bool:
    """True when the session is bound to PostgreSQL (full-text search, row locks)."""
    return db.get_bind().dialect.name == "postgresql"


@contextmanager
def atomic(db: Session) -> Iterator[Session]:
    """
    Run a block of writes as one unit.

    Commits when the block finishes, rolls back and re-raises on any error.
    Services only flush; the caller wraps them in ``atomic`` to decide where
    the transaction ends.
    """
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
