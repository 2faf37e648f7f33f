"""File-based image acquisition for the sell form."""

from __future__ import annotations

import base64
import io
import logging
import mimetypes
from pathlib import Path

from PIL import Image, UnidentifiedImageError

from . import config
from .models import ImagePayload

logger = logging.getLogger(__name__)


class UnsupportedInput(ValueError):
    """Raised when a selected file cannot be used as an item image."""


def guess_mime_type(path: str | Path) -> str | None:
    mime_type, _ = mimetypes.guess_type(str(path))
    return mime_type


def encode_image_bytes(
    raw: bytes,
    *,
    max_bytes: int = config.MAX_IMAGE_BYTES,
    quality: int = config.JPEG_QUALITY,
) -> ImagePayload:
    """Decode ``raw`` as an image and re-encode it as a base64 JPEG payload.

    Every payload leaves this function as JPEG so uploads look the same as
    camera captures to the enrichment service.
    """

    if not raw:
        raise UnsupportedInput("Die Datei ist leer.")
    if max_bytes and len(raw) > max_bytes:
        raise UnsupportedInput(
            f"Die Datei ist zu groß ({len(raw)} Bytes, erlaubt sind {max_bytes})."
        )

    try:
        with Image.open(io.BytesIO(raw)) as image:
            image.load()
            rgb = image.convert("RGB")
    except (UnidentifiedImageError, OSError, Image.DecompressionBombError) as exc:
        raise UnsupportedInput("Die Datei konnte nicht als Bild gelesen werden.") from exc

    buffer = io.BytesIO()
    rgb.save(buffer, format="JPEG", quality=quality)
    encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
    logger.debug("Bild kodiert: %sx%s Pixel, %s Bytes JPEG", rgb.width, rgb.height, buffer.tell())
    return ImagePayload(data=encoded, mime_type="image/jpeg")


def load_image_file(
    path: str | Path,
    *,
    max_bytes: int = config.MAX_IMAGE_BYTES,
) -> ImagePayload:
    """Read a user-selected file fully into memory and encode it."""

    file_path = Path(path)
    mime_type = guess_mime_type(file_path)
    if mime_type and not mime_type.startswith("image/"):
        raise UnsupportedInput(f"Kein Bildformat: {file_path.name} ({mime_type})")

    try:
        size = file_path.stat().st_size
    except OSError as exc:
        raise UnsupportedInput(f"Datei nicht lesbar: {file_path}") from exc
    if max_bytes and size > max_bytes:
        raise UnsupportedInput(
            f"Die Datei ist zu groß ({size} Bytes, erlaubt sind {max_bytes})."
        )

    try:
        raw = file_path.read_bytes()
    except OSError as exc:
        raise UnsupportedInput(f"Datei nicht lesbar: {file_path}") from exc

    logger.info("Lese Bilddatei: %s", file_path)
    return encode_image_bytes(raw, max_bytes=max_bytes)
