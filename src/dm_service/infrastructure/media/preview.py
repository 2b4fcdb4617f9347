"""Local image thumbnails for staged attachments."""
from __future__ import annotations

import asyncio
import logging
from io import BytesIO

from PIL import Image, ImageOps, UnidentifiedImageError

from dm_service.domain.entities.message import AttachmentSource

logger = logging.getLogger(__name__)

DEFAULT_MAX_SIZE = 256


class ImagePreviewer:
    """Builds a PNG thumbnail off the event loop. Non-images yield None."""

    def __init__(self, max_size: int = DEFAULT_MAX_SIZE) -> None:
        self._max_size = max_size

    async def __call__(self, source: AttachmentSource) -> bytes | None:
        return await asyncio.to_thread(self.render, source.content)

    def render(self, content: bytes) -> bytes | None:
        try:
            with Image.open(BytesIO(content)) as image:
                image = ImageOps.exif_transpose(image)
                image.thumbnail((self._max_size, self._max_size))
                if image.mode not in ("RGB", "RGBA"):
                    image = image.convert("RGBA")
                out = BytesIO()
                image.save(out, format="PNG")
                return out.getvalue()
        except (UnidentifiedImageError, OSError):
            logger.debug("Not a decodable image, no preview")
            return None
