from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from alembic import command
from alembic.config import Config
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from . import settings, storage
from .errors import register_exception_handlers
from .middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware
from .routers import (
    admin,
    auth,
    comments,
    documents,
    feed,
    payment,
    preview,
    questions,
    ratings,
    recommendations,
    search,
    social,
    system,
    users,
    verified_author,
    webhooks,
)
from .seed import ensure_seed_data

logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

_STARTUP_COMPLETE = False


def _alembic_config() -> Config:
    base_dir = Path(__file__).resolve().parent.parent
    cfg = Config(str(base_dir / "alembic.ini"))
    cfg.set_main_option("script_location", str(base_dir / "alembic"))
    return cfg


def run_migrations() -> None:
    logger.info("run_migrations: Starting...")
    try:
        alembic_cfg = _alembic_config()

        # Check current revision first to avoid unnecessary upgrade calls
        from alembic.runtime.migration import MigrationContext
        from alembic.script import ScriptDirectory

        from .db import engine

        try:
            with engine.connect() as connection:
                context = MigrationContext.configure(connection)
                current_heads = context.get_current_heads()
                heads = ScriptDirectory.from_config(alembic_cfg).get_heads()
                if current_heads and set(current_heads) == set(heads):
                    logger.info(f"Database is up to date (revision: {current_heads[0]}), skipping migrations.")
                    return
                logger.info(f"Current revision(s): {current_heads}, target: {heads}. Running migrations...")
        finally:
            # Ensure connection is closed before calling command.upgrade
            engine.dispose()

        command.upgrade(alembic_cfg, "head")
        logger.info("run_migrations: Completed successfully.")
    except Exception as e:
        logger.error(f"run_migrations: Error occurred: {e}", exc_info=True)
        raise


def run_startup_tasks() -> None:
    global _STARTUP_COMPLETE
    if _STARTUP_COMPLETE:
        logger.info("run_startup_tasks: Already completed, skipping.")
        return
    try:
        if settings.RUN_MIGRATIONS_ON_STARTUP:
            run_migrations()
        else:
            logger.info("run_startup_tasks: Migrations disabled, skipping.")
        ensure_seed_data()
        _STARTUP_COMPLETE = True
        logger.info("Startup tasks completed.")
    except Exception as e:
        logger.error(f"Startup tasks failed: {e}", exc_info=True)
        raise


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting application...")
    # Server won't start until these complete
    run_startup_tasks()
    logger.info("ShareBuddy API server ready")
    yield
    logger.info("Shutting down application...")


app = FastAPI(
    title="ShareBuddy API",
    version="1.0.0",
    description="Study document sharing with credits, ratings and Q&A",
    lifespan=lifespan,
)

# In production, set CORS_ORIGINS environment variable to comma-separated list of allowed origins
cors_origins_str = os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost")
if cors_origins_str == "*":
    logger.warning(
        "CORS is configured to allow all origins. "
        "This is insecure for production. Set CORS_ORIGINS to specific domains."
    )
cors_origins = [origin.strip() for origin in cors_origins_str.split(",")]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "Accept", "Origin", "X-Requested-With", "Stripe-Signature"],
    max_age=600,  # Cache preflight requests for 10 minutes
)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestLoggingMiddleware)

register_exception_handlers(app)

app.include_router(system.router)
app.include_router(auth.router)
app.include_router(users.router)
app.include_router(documents.router)
app.include_router(ratings.router)
app.include_router(comments.router)
app.include_router(questions.router)
app.include_router(social.router)
app.include_router(feed.router)
app.include_router(search.router)
app.include_router(recommendations.router)
app.include_router(verified_author.router)
app.include_router(payment.router)
app.include_router(preview.router)
app.include_router(webhooks.router)
app.include_router(admin.router)


# Uploaded documents, previews and thumbnails
upload_root = storage.get_storage_root()
upload_root.mkdir(parents=True, exist_ok=True)
app.mount("/uploads", StaticFiles(directory=str(upload_root)), name="uploads")
logger.info(f"Mounted uploads at /uploads from {upload_root}")
