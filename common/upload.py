"""
Farm2Home - File Upload Utilities
=====================================
Image validation and optimization before handing bytes to object storage.
"""

import io
import logging
import os
import uuid
from dataclasses import dataclass
from typing import Optional, Tuple

from fastapi import UploadFile
from PIL import Image, UnidentifiedImageError

from config.settings import ALLOWED_IMAGE_EXTENSIONS, MAX_FILE_SIZE, DEFAULT_IMAGE_MAX_SIZE
from common.exceptions import ValidationError

logger = logging.getLogger("farm2home.upload")

_CONTENT_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
}
_PIL_FORMATS = {".jpg": "JPEG", ".jpeg": "JPEG", ".png": "PNG", ".webp": "WEBP"}


@dataclass
class PreparedImage:
    """An image ready for upload: optimized bytes plus a collision-free name."""
    filename: str
    data: bytes
    content_type: str

    @property
    def ext(self) -> str:
        return os.path.splitext(self.filename)[1].lower()


def prepare_image(
    filename: str,
    raw: bytes,
    max_size: Tuple[int, int] = DEFAULT_IMAGE_MAX_SIZE,
) -> PreparedImage:
    """
    Validate and shrink an uploaded image.

    Args:
        filename: Original client filename (only its extension is kept)
        raw: File contents
        max_size: Maximum dimensions (width, height) to resize to

    Raises:
        ValidationError on an oversized, mistyped or unreadable file
    """
    if len(raw) > MAX_FILE_SIZE:
        raise ValidationError(
            {"image": f"File is too large (max {MAX_FILE_SIZE // (1024 * 1024)} MB)"}
        )

    ext = os.path.splitext(filename)[1].lower()
    if ext not in ALLOWED_IMAGE_EXTENSIONS:
        allowed = ", ".join(sorted(ALLOWED_IMAGE_EXTENSIONS))
        raise ValidationError({"image": f"Unsupported file type. Allowed: {allowed}"})

    try:
        img = Image.open(io.BytesIO(raw))
        img.thumbnail(max_size)
        out = io.BytesIO()
        if ext in (".jpg", ".jpeg"):
            img.convert("RGB").save(out, format="JPEG", optimize=True, quality=80)
        else:
            img.save(out, format=_PIL_FORMATS[ext])
    except (UnidentifiedImageError, OSError) as e:
        logger.warning(f"Rejected unreadable image {filename!r}: {e}")
        raise ValidationError({"image": "The file is not a readable image"})

    return PreparedImage(
        filename=f"{uuid.uuid4().hex}{ext}",
        data=out.getvalue(),
        content_type=_CONTENT_TYPES[ext],
    )


async def read_upload(upload_file: Optional[UploadFile]) -> Optional[PreparedImage]:
    """Read a multipart upload; returns None when no file was chosen."""
    if not upload_file or not upload_file.filename:
        return None
    raw = await upload_file.read()
    if not raw:
        return None
    return prepare_image(upload_file.filename, raw)
