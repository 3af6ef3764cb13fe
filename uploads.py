"""
uploads.py - Upload Storage
Validates uploaded CT scan images and keeps them in the uploads folder
"""

import io
import logging
import os
import random
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import List

from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)

ALLOWED_TYPES = ("image/jpeg", "image/jpg", "image/png")
IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg")


class UploadError(ValueError):
    """Raised when an uploaded file is rejected."""


def _extension(filename: str, content_type: str) -> str:
    suffix = os.path.splitext(filename or "")[1].lower()
    if suffix in IMAGE_EXTENSIONS:
        return suffix
    return ".png" if content_type == "image/png" else ".jpg"


def validate_image(contents: bytes, content_type: str, max_bytes: int) -> None:
    """
    Check MIME type, size and that the bytes decode as an image

    Raises:
        UploadError: With a user-facing reason
    """
    if content_type not in ALLOWED_TYPES:
        raise UploadError("Invalid file type. Only PNG, JPG, and JPEG are allowed.")
    if not contents:
        raise UploadError("Uploaded file is empty")
    if len(contents) > max_bytes:
        raise UploadError(f"File too large. Maximum size is {max_bytes // (1024 * 1024)}MB")
    try:
        Image.open(io.BytesIO(contents)).verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        raise UploadError(f"Uploaded file is not a valid image: {e}")


def save_upload(contents: bytes, filename: str, content_type: str, upload_dir: Path, max_bytes: int) -> Path:
    """
    Validate and store an uploaded scan

    Args:
        contents: Raw file bytes
        filename: Original client filename (used for its extension only)
        content_type: MIME type reported by the client
        upload_dir: Destination folder, created if missing
        max_bytes: Size limit

    Returns:
        Path of the stored file
    """
    validate_image(contents, content_type, max_bytes)

    upload_dir = Path(upload_dir)
    upload_dir.mkdir(parents=True, exist_ok=True)
    unique_suffix = f"{int(time.time() * 1000)}-{random.randint(0, 10**9)}"
    path = upload_dir / f"ct-scan-{unique_suffix}{_extension(filename, content_type)}"
    path.write_bytes(contents)

    logger.info("CT scan uploaded: %s (%.2f KB)", path.name, len(contents) / 1024)
    return path


def remove_upload(path: Path) -> None:
    try:
        Path(path).unlink()
    except FileNotFoundError:
        pass


def list_uploads(upload_dir: Path) -> List[dict]:
    """Stored scans, newest first."""
    upload_dir = Path(upload_dir)
    if not upload_dir.is_dir():
        return []

    entries = []
    for path in upload_dir.iterdir():
        if not path.is_file() or path.suffix.lower() not in IMAGE_EXTENSIONS:
            continue
        stats = path.stat()
        entries.append({
            "fileName": path.name,
            "imagePath": f"/uploads/{path.name}",
            "uploadedAt": datetime.fromtimestamp(stats.st_mtime, tz=timezone.utc).isoformat(),
            "size": stats.st_size,
            "_mtime": stats.st_mtime,
        })

    entries.sort(key=lambda e: e["_mtime"], reverse=True)
    for entry in entries:
        del entry["_mtime"]
    return entries
