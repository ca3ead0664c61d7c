from __future__ import annotations

import os
import tempfile
from typing import Callable, Generator

# Configure the app before it is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-that-is-long-enough-for-hs256")
os.environ["RUN_MIGRATIONS_ON_STARTUP"] = "false"
os.environ["REDIS_URL"] = "redis://localhost:6399/0"
os.environ["UPLOAD_LOCATION"] = tempfile.mkdtemp(prefix="sharebuddy-uploads-")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from sharebuddy import cache, models
from sharebuddy.auth import create_access_token
from sharebuddy.db import Base, SessionLocal, engine
from sharebuddy.main import app
from sharebuddy.routers import system
from sharebuddy.services import moderation, previews, rate_limit
from sharebuddy.services.accounts import hash_password

PASSWORD = "correct-horse-battery"


@pytest.fixture(autouse=True)
def database() -> Generator[None, None, None]:
    """Fresh tables for every test."""
    Base.metadata.create_all(bind=engine)
    try:
        yield
    finally:
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def no_redis(monkeypatch: pytest.MonkeyPatch) -> None:
    """Run without Redis: cache misses and rate limits always allow."""
    monkeypatch.setattr(cache, "get_redis_client", lambda: None)
    monkeypatch.setattr(rate_limit, "get_redis_client", lambda: None)
    monkeypatch.setattr(system, "get_redis_client", lambda: None)


@pytest.fixture(autouse=True)
def queued(monkeypatch: pytest.MonkeyPatch) -> dict[str, list[int]]:
    """Record queued background jobs instead of sending them to Celery."""
    calls: dict[str, list[int]] = {"moderation": [], "preview": []}

    def fake_moderation(document_id: int) -> bool:
        calls["moderation"].append(document_id)
        return True

    def fake_preview(document_id: int) -> bool:
        calls["preview"].append(document_id)
        return True

    monkeypatch.setattr(moderation, "enqueue_moderation", fake_moderation)
    monkeypatch.setattr(previews, "enqueue_preview", fake_preview)
    return calls


@pytest.fixture()
def client() -> TestClient:
    return TestClient(app)


@pytest.fixture()
def db() -> Generator[Session, None, None]:
    """Create a database session for testing."""
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture()
def make_user(db: Session) -> Callable[..., models.User]:
    counter = {"n": 0}

    def _make(
        username: str | None = None,
        role: str = "user",
        credits: int = 0,
        **fields,
    ) -> models.User:
        counter["n"] += 1
        username = username or f"user{counter['n']}"
        user = models.User(
            email=f"{username}@example.com",
            username=username,
            password_hash=hash_password(PASSWORD),
            role=role,
            credits=credits,
            **fields,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture()
def make_document(db: Session) -> Callable[..., models.Document]:
    counter = {"n": 0}

    def _make(author: models.User, status: str = "approved", credit_cost: int = 0, **fields) -> models.Document:
        counter["n"] += 1
        fields.setdefault("title", f"Lecture notes {counter['n']}")
        fields.setdefault("file_path", f"documents/aa/bb/cc/doc{counter['n']}.pdf")
        fields.setdefault("file_name", f"notes{counter['n']}.pdf")
        fields.setdefault("file_size", 2048)
        fields.setdefault("file_type", "pdf")
        document = models.Document(author_id=author.id, status=status, credit_cost=credit_cost, **fields)
        db.add(document)
        db.commit()
        db.refresh(document)
        return document

    return _make


def auth_headers(user: models.User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}
