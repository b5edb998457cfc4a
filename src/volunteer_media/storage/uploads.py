"""
Validation and preprocessing for uploaded files.

Images are checked by size, extension and magic number before Pillow
decodes them; documents (PDF/DOCX) by size, extension and signature.
"""

import io
import logging
import os
import re
from typing import Tuple

from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)

MAX_IMAGE_SIZE = 10 * 1024 * 1024
MAX_HERO_IMAGE_SIZE = 5 * 1024 * 1024
MAX_DOCUMENT_SIZE = 20 * 1024 * 1024
MIN_IMAGE_BYTES = 100

MAX_IMAGE_DIMENSION = 1200
JPEG_QUALITY = 85

ALLOWED_IMAGE_TYPES = {
    ".jpg": ("image/jpeg", "image/jpg"),
    ".jpeg": ("image/jpeg", "image/jpg"),
    ".png": ("image/png",),
    ".gif": ("image/gif",),
    ".webp": ("image/webp",),
    ".heic": ("image/heic", "image/heif"),
    ".heif": ("image/heic", "image/heif"),
}

DOCUMENT_TYPES = {
    ".pdf": "application/pdf",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
}

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9_\- ]")


class UploadValidationError(ValueError):
    """Raised when an uploaded file fails validation."""


def _extension(filename: str) -> str:
    return os.path.splitext(filename or "")[1].lower()


def _check_size(data: bytes, max_size: int):
    if len(data) > max_size:
        raise UploadValidationError(
            f"file size exceeds maximum limit: file size is {len(data)} bytes, maximum is {max_size} bytes"
        )


def sniff_image_type(data: bytes) -> str:
    """Return the MIME type implied by the image's magic number, or ''."""
    if data.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if data.startswith(b"\x89PNG"):
        return "image/png"
    if data.startswith(b"GIF"):
        return "image/gif"
    if data.startswith(b"RIFF") and len(data) > 12 and data[8:12] == b"WEBP":
        return "image/webp"
    if len(data) > 12 and data[4:8] == b"ftyp":
        return "image/heic"
    return ""


def validate_image_content(data: bytes):
    """Reject payloads that are too small or carry no known image signature."""
    if len(data) < MIN_IMAGE_BYTES:
        raise UploadValidationError("invalid or corrupted file: file too small to be a valid image")
    if not sniff_image_type(data):
        raise UploadValidationError("invalid or corrupted file: unrecognized image format")


def validate_image_upload(filename: str, data: bytes, max_size: int = MAX_IMAGE_SIZE):
    """
    Validate an uploaded image.

    Raises:
        UploadValidationError: On oversized files, disallowed extensions or
            content that is not an image
    """
    _check_size(data, max_size)

    ext = _extension(filename)
    if ext not in ALLOWED_IMAGE_TYPES:
        raise UploadValidationError(f"file type not allowed: extension {ext or '(none)'} is not allowed")

    validate_image_content(data)


def validate_document_upload(filename: str, data: bytes, max_size: int = MAX_DOCUMENT_SIZE) -> str:
    """
    Validate an uploaded protocol document.

    Returns:
        str: The document's MIME type

    Raises:
        UploadValidationError: On oversized, empty or mislabelled documents
    """
    _check_size(data, max_size)

    ext = _extension(filename)
    if ext not in DOCUMENT_TYPES:
        raise UploadValidationError(f"file type not allowed: extension {ext or '(none)'} is not allowed")

    if not data:
        raise UploadValidationError("invalid or corrupted file: document is empty")

    if ext == ".pdf" and not data.startswith(b"%PDF"):
        raise UploadValidationError("file type not allowed: file does not appear to be a valid PDF document")
    if ext == ".docx" and not data.startswith(b"PK"):
        raise UploadValidationError("file type not allowed: file does not appear to be a valid DOCX document")

    return DOCUMENT_TYPES[ext]


def sanitize_filename(filename: str) -> str:
    """Replace unsafe characters in the stem and cap it at 100 characters."""
    base = os.path.basename(filename or "")
    stem, ext = os.path.splitext(base)
    stem = _UNSAFE_FILENAME_CHARS.sub("-", stem)[:100]
    return stem + ext


def process_image(data: bytes, max_dimension: int = MAX_IMAGE_DIMENSION) -> Tuple[bytes, int, int]:
    """
    Decode, downscale and re-encode an image as JPEG.

    Args:
        data: Raw uploaded bytes
        max_dimension: Longest side after resizing

    Returns:
        Tuple of (jpeg bytes, width, height)

    Raises:
        UploadValidationError: If Pillow cannot decode the image
    """
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            logger.debug(f"Received {img.format} image {img.width}x{img.height}")

            if img.width > max_dimension or img.height > max_dimension:
                img.thumbnail((max_dimension, max_dimension), Image.Resampling.LANCZOS)
                logger.debug(f"Image resized to {img.width}x{img.height}")

            if img.mode != "RGB":
                img = img.convert("RGB")

            buf = io.BytesIO()
            img.save(buf, format="JPEG", quality=JPEG_QUALITY)
            return buf.getvalue(), img.width, img.height
    except (UnidentifiedImageError, OSError) as e:
        raise UploadValidationError(f"Invalid image file: {e}")
