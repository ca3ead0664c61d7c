"""PDF previews and thumbnails."""

from __future__ import annotations

import io
import logging
import textwrap

from PIL import Image, ImageDraw, ImageFont
from pypdf import PdfReader, PdfWriter
from pypdf.errors import PdfReadError
from sqlalchemy.orm import Session

from .. import models, settings, storage
from ..errors import ValidationFailedError

logger = logging.getLogger(__name__)

THUMBNAIL_SIZE = (300, 400)
BACKGROUND = (245, 247, 250)
FOREGROUND = (33, 37, 41)
ACCENT = (13, 110, 253)


def build_pdf_preview(content: bytes, max_pages: int) -> tuple[bytes, int]:
    """
    Copy the first ``max_pages`` pages of a PDF into a new PDF.

    Returns:
        The preview bytes and the number of pages copied

    Raises:
        ValidationFailedError: If the PDF cannot be read or has no pages
    """
    try:
        reader = PdfReader(io.BytesIO(content))
        page_count = len(reader.pages)
    except (PdfReadError, ValueError, OSError) as e:
        raise ValidationFailedError(f"Could not read PDF: {e}")

    if page_count == 0:
        raise ValidationFailedError("PDF has no pages")

    writer = PdfWriter()
    copied = min(page_count, max_pages)
    for index in range(copied):
        writer.add_page(reader.pages[index])

    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue(), copied


def render_thumbnail(title: str, file_type: str) -> bytes:
    """A PNG title card for a document."""
    image = Image.new("RGB", THUMBNAIL_SIZE, BACKGROUND)
    draw = ImageDraw.Draw(image)
    font = ImageFont.load_default()

    width, height = THUMBNAIL_SIZE
    draw.rectangle([0, 0, width, 48], fill=ACCENT)
    draw.text((16, 16), file_type.upper(), fill=(255, 255, 255), font=font)

    y = 72
    for line in textwrap.wrap(title, width=32)[:10]:
        draw.text((16, y), line, fill=FOREGROUND, font=font)
        y += 18

    draw.rectangle([0, 0, width - 1, height - 1], outline=(206, 212, 218))

    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def generate_preview(db: Session, document: models.Document) -> models.Document:
    """
    Write a preview PDF (PDFs only) and a thumbnail for a document.

    Replaces any earlier preview files. Flushes only.
    """
    if document.file_type != "pdf":
        raise ValidationFailedError("Previews are only available for PDF documents")

    content = storage.read_file(document.file_path)
    preview_bytes, pages = build_pdf_preview(content, settings.PREVIEW_PAGES)

    key = storage.new_storage_key()
    preview_path = storage.save_file(storage.PREVIEWS_DIR, preview_bytes, "pdf", key=key)
    thumbnail_path = storage.save_file(
        storage.THUMBNAILS_DIR, render_thumbnail(document.title, document.file_type), "png", key=key
    )

    old_paths = (document.preview_path, document.thumbnail_path)
    document.preview_path = preview_path
    document.preview_pages = pages
    document.thumbnail_path = thumbnail_path
    db.flush()

    for old in old_paths:
        if old and old not in (preview_path, thumbnail_path):
            storage.delete_file(old)

    logger.info(f"Preview generated for document {document.id} ({pages} pages)")
    return document


def preview_info(document: models.Document) -> dict:
    return {
        "document_id": document.id,
        "has_preview": bool(document.preview_path),
        "preview_pages": document.preview_pages or 0,
        "preview_url": storage.public_url(document.preview_path) if document.preview_path else None,
        "thumbnail_url": storage.public_url(document.thumbnail_path) if document.thumbnail_path else None,
        "max_preview_pages": settings.PREVIEW_PAGES,
    }


def enqueue_preview(document_id: int) -> bool:
    """Best-effort background preview generation."""
    try:
        from ..tasks import generate_document_preview

        generate_document_preview.delay(document_id)
        return True
    except Exception as e:
        logger.warning(f"Could not queue preview for document {document_id}: {e}")
        return False
