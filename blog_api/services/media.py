"""
Image storage for uploaded post pictures.

Every upload is scaled to ``MAX_WIDTH`` pixels wide (aspect ratio kept)
and re-encoded before it is written under ``upload_dir`` with a random
UUID name that keeps the original extension.  Files are addressed by the
public path ``/uploads/<name>`` served by the static files mount in
``main.py``.
"""
import asyncio
import io
import logging
import uuid
from dataclasses import dataclass
from pathlib import Path

import aiofiles
import aiofiles.os
from PIL import Image

from blog_api.exceptions import InternalError

logger = logging.getLogger(__name__)

PUBLIC_PREFIX = "/uploads"
MAX_WIDTH = 800
QUALITY = 80

# Formats written back as themselves; anything else is stored as PNG.
KEPT_FORMATS = {"JPEG", "PNG", "WEBP", "GIF"}


@dataclass(frozen=True)
class ImageUpload:
    """An uploaded file already read into memory."""

    content: bytes
    filename: str | None = None


def resize_image(content: bytes, width: int = MAX_WIDTH) -> bytes:
    """Scale *content* to *width* pixels wide and re-encode it."""
    with Image.open(io.BytesIO(content)) as img:
        source_format = img.format
        height = max(1, round(img.height * width / img.width))
        resized = img.resize((width, height), Image.Resampling.LANCZOS)

    output_format = source_format if source_format in KEPT_FORMATS else "PNG"
    buffer = io.BytesIO()
    if output_format in ("JPEG", "WEBP"):
        resized.save(buffer, format=output_format, quality=QUALITY)
    else:
        resized.save(buffer, format=output_format, optimize=True)
    return buffer.getvalue()


class ImageStorage:
    def __init__(self, upload_dir: str | Path, max_width: int = MAX_WIDTH) -> None:
        self.upload_dir = Path(upload_dir).resolve()
        self.upload_dir.mkdir(parents=True, exist_ok=True)
        self.max_width = max_width

    def _new_name(self, original_name: str | None) -> str:
        extension = Path(original_name or "").suffix.lower()
        return f"{uuid.uuid4()}{extension}"

    async def store(self, upload: ImageUpload) -> str:
        """Resize and persist *upload*, returning its public reference path."""
        name = self._new_name(upload.filename)
        target = self.upload_dir / name
        try:
            # Pillow decoding is CPU bound; keep it off the event loop.
            data = await asyncio.to_thread(resize_image, upload.content, self.max_width)
            async with aiofiles.open(target, "wb") as f:
                await f.write(data)
        except (OSError, ValueError, Image.DecompressionBombError) as exc:
            logger.error("Failed to store upload %s: %s", target, exc)
            raise InternalError("Ошибка при сохранении файла") from exc
        logger.info("Stored upload %s (%d bytes)", name, len(data))
        return f"{PUBLIC_PREFIX}/{name}"

    async def discard(self, reference: str) -> None:
        """
        Remove a file previously returned by :meth:`store`.

        Used to clean up after a failed database write.  A missing or
        undeletable file is logged, never raised, so the original
        failure reaches the caller unchanged.
        """
        target = self.upload_dir / Path(reference).name
        try:
            await aiofiles.os.remove(target)
        except OSError as exc:
            logger.warning("Could not remove orphaned upload %s: %s", target, exc)
            return
        logger.info("Removed orphaned upload %s", target.name)
