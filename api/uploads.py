"""
Upload handling for photos posted to the API.

Uploaded files are stored under storage.uploads_dir with a random name that
keeps the original extension, and served back under /uploads.
"""

import logging
import uuid
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

UPLOADS_URL_PREFIX = "/uploads"


def save_upload(filename: Optional[str], data: bytes, uploads_dir: Path) -> Path:
    """
    Write uploaded bytes to the uploads directory.

    Args:
        filename: Client-side file name; only its extension is kept.
        data: File content.
        uploads_dir: Destination directory.

    Returns:
        Path of the stored file.
    """
    suffix = Path(filename or "").suffix.lower()
    destination = uploads_dir / f"{uuid.uuid4().hex}{suffix}"

    destination.write_bytes(data)

    logger.info(f"Stored upload {filename!r} as {destination.name} ({len(data)} bytes)")
    return destination


def upload_url(path: Optional[str]) -> Optional[str]:
    """URL path under which a stored upload is served."""
    if not path:
        return None
    return f"{UPLOADS_URL_PREFIX}/{Path(path).name}"
