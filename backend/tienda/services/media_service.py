# Overview: Storage for uploaded product images.

from __future__ import annotations

import os
import uuid
from contextlib import contextmanager
from pathlib import Path

from flask import current_app
from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

from ..validation import ValidationError

ALLOWED_IMAGE_EXTENSIONS = {"png", "jpg", "jpeg", "gif", "webp"}


def _upload_root() -> Path:
    folder = Path(current_app.config["UPLOAD_FOLDER"])
    if not folder.is_absolute():
        folder = Path(current_app.instance_path) / folder
    return folder


def _checked_filename(file_storage: FileStorage) -> str:
    """Secure name of an acceptable upload; raises ValidationError on field "image"."""
    filename = secure_filename(file_storage.filename)
    ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    if ext not in ALLOWED_IMAGE_EXTENSIONS:
        raise ValidationError(
            f"image must be one of: {', '.join(sorted(ALLOWED_IMAGE_EXTENSIONS))}",
            "image",
        )

    file_storage.stream.seek(0, os.SEEK_END)
    size = file_storage.stream.tell()
    file_storage.stream.seek(0)
    max_bytes = current_app.config.get("MAX_IMAGE_BYTES", 2 * 1024 * 1024)
    if size > max_bytes:
        raise ValidationError(f"image exceeds {max_bytes // 1024} KB", "image")

    return filename


def store_product_image(file_storage: FileStorage | None) -> str | None:
    """
    Save an uploaded image and return its reference ("products/<file>").

    Returns None when no file was sent. Nothing is written when the file
    is rejected. The reference is stored on the product as an opaque string.
    """
    if not file_storage or not file_storage.filename:
        return None

    filename = _checked_filename(file_storage)

    dest_dir = _upload_root() / "products"
    dest_dir.mkdir(parents=True, exist_ok=True)

    unique_name = f"{uuid.uuid4().hex}_{filename}"
    file_storage.save(dest_dir / unique_name)
    return f"products/{unique_name}"


def delete_product_image(reference: str | None) -> None:
    """Remove a stored image. Unknown references and paths outside the upload root are ignored."""
    if not reference:
        return

    root = _upload_root().resolve()
    path = (root / reference).resolve()
    if root not in path.parents:
        current_app.logger.warning("Refusing to delete image outside upload root: %r", reference)
        return

    path.unlink(missing_ok=True)


@contextmanager
def staged_product_image(file_storage: FileStorage | None):
    """
    Save an upload for the duration of a catalog write.

    Yields the stored reference (or None). If the block raises, the file is
    removed again so rejected requests leave nothing in UPLOAD_FOLDER.
    """
    reference = store_product_image(file_storage)
    try:
        yield reference
    except Exception:
        delete_product_image(reference)
        raise
