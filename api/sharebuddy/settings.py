"""Centralized environment-driven settings.

Keep this module lightweight: stdlib and dotenv only, no app imports, to avoid circular deps.
"""

from __future__ import annotations

import os

from dotenv import load_dotenv

load_dotenv()


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _csv_env(name: str) -> tuple[str, ...]:
    raw = os.getenv(name) or ""
    return tuple(word.strip().lower() for word in raw.split(",") if word.strip())


LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")

# Run Alembic on application startup (disabled in tests, which build tables from metadata)
RUN_MIGRATIONS_ON_STARTUP: bool = _bool_env("RUN_MIGRATIONS_ON_STARTUP", True)

# Uploaded documents, previews and thumbnails live under this root.
UPLOAD_LOCATION: str = os.getenv("UPLOAD_LOCATION", "uploads")

# Maximum size for a single document upload (bytes).
# Configured via .env: MAX_UPLOAD_BYTES=52428800  (50 MiB)
MAX_UPLOAD_BYTES: int = _int_env("MAX_UPLOAD_BYTES", 50 * 1024 * 1024)

ALLOWED_FILE_TYPES: tuple[str, ...] = ("pdf", "doc", "docx", "ppt", "pptx", "xls", "xlsx", "txt")

# Number of leading pages copied into a PDF preview
PREVIEW_PAGES: int = _int_env("PREVIEW_PAGES", 5)

# Trending window for the feed (days)
TRENDING_WINDOW_DAYS: int = _int_env("TRENDING_WINDOW_DAYS", 7)

STRIPE_SECRET_KEY: str | None = os.getenv("STRIPE_SECRET_KEY")
STRIPE_PUBLISHABLE_KEY: str | None = os.getenv("STRIPE_PUBLISHABLE_KEY")
STRIPE_WEBHOOK_SECRET: str | None = os.getenv("STRIPE_WEBHOOK_SECRET")

# Shared secret expected in X-Webhook-Secret from the external moderation service
MODERATION_WEBHOOK_SECRET: str = os.getenv("MODERATION_WEBHOOK_SECRET", "")

# VND per USD, used when a package is bought in VND (Stripe charges USD)
VND_PER_USD: int = _int_env("VND_PER_USD", 23000)

# Comma-separated words added to / removed from the stock profanity list
PROFANITY_EXTRA_WORDS: tuple[str, ...] = _csv_env("PROFANITY_EXTRA_WORDS")
PROFANITY_ALLOWED_WORDS: tuple[str, ...] = _csv_env("PROFANITY_ALLOWED_WORDS")
