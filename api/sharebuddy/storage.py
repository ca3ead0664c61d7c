"""Local file storage for uploaded documents, previews and thumbnails.

Files are stored under UPLOAD_LOCATION using a hash-based folder structure
derived from a random storage key, so no single folder grows too large.

Example:
    key "a1b2c3d4..." for a PDF is stored at
    UPLOAD_LOCATION/documents/a1/b2/c3/a1b2c3d4....pdf
and served at /uploads/documents/a1/b2/c3/a1b2c3d4....pdf
"""

from __future__ import annotations

import logging
import os
import uuid
from pathlib import Path

from . import settings

logger = logging.getLogger(__name__)

DOCUMENTS_DIR = "documents"
PREVIEWS_DIR = "previews"
THUMBNAILS_DIR = "thumbnails"


def get_storage_root() -> Path:
    """Storage root from the environment (read on every call so tests can redirect it)."""
    return Path(os.environ.get("UPLOAD_LOCATION") or settings.UPLOAD_LOCATION)


def new_storage_key() -> str:
    return uuid.uuid4().hex


def _sharded(kind: str, key: str, extension: str) -> str:
    ext = extension.lower().lstrip(".")
    return f"{kind}/{key[0:2]}/{key[2:4]}/{key[4:6]}/{key}.{ext}"


def file_extension(filename: str | None) -> str:
    """Lower-case extension without the dot, '' when there is none."""
    if not filename or "." not in filename:
        return ""
    return filename.rsplit(".", 1)[1].lower()


def absolute_path(relative_path: str) -> Path:
    """
    Resolve a stored relative path under the storage root.

    Raises:
        ValueError: If the path escapes the storage root
    """
    root = get_storage_root().resolve()
    path = (root / relative_path).resolve()
    if root != path and root not in path.parents:
        raise ValueError(f"Path escapes storage root: {relative_path}")
    return path


def save_file(kind: str, content: bytes, extension: str, key: str | None = None) -> str:
    """
    Write bytes under the storage root.

    Args:
        kind: Top-level folder (documents, previews, thumbnails)
        content: Raw bytes
        extension: File extension without the dot
        key: Storage key; a random one is generated when omitted

    Returns:
        The path relative to the storage root
    """
    relative = _sharded(kind, key or new_storage_key(), extension)
    path = absolute_path(relative)
    path.parent.mkdir(parents=True, exist_ok=True)

    try:
        with open(path, "wb") as f:
            f.write(content)
    except OSError as e:
        logger.error(f"Failed to write {relative}: {e}")
        raise

    logger.info(f"Stored {len(content)} bytes at {relative}")
    return relative


def save_document(content: bytes, extension: str) -> str:
    return save_file(DOCUMENTS_DIR, content, extension)


def read_file(relative_path: str) -> bytes:
    with open(absolute_path(relative_path), "rb") as f:
        return f.read()


def delete_file(relative_path: str | None) -> bool:
    """
    Delete a stored file.

    Returns:
        True if the file was deleted, False if it didn't exist
    """
    if not relative_path:
        return False
    path = absolute_path(relative_path)
    if path.exists():
        path.unlink()
        logger.info(f"Deleted stored file {relative_path}")
        return True
    logger.warning(f"Stored file {relative_path} not found")
    return False


def public_url(relative_path: str) -> str:
    """URL path the /uploads static mount serves the file from."""
    return f"/uploads/{relative_path}"
