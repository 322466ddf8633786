from __future__ import annotations

import asyncio
import logging

from PIL import Image, UnidentifiedImageError

from ..config import Settings, get_settings
from ..exceptions import ExtractionFailedError
from .images import recompress_jpeg
from .llm import LLMService
from .rasterizer import PageImage

logger = logging.getLogger(__name__)


class PageExtractor:
    """Sends one page image with the document-class prompt to the vision model."""

    def __init__(self, settings: Settings | None = None, *, llm: LLMService | None = None) -> None:
        self.settings = settings or get_settings()
        self.llm = llm or LLMService(self.settings)

    async def _load_image(self, page: PageImage) -> bytes:
        try:
            data = await asyncio.to_thread(page.read_bytes)
        except OSError as exc:
            raise ExtractionFailedError(f"Page {page.index + 1}: cannot read image: {exc}") from exc
        if not self.settings.IMAGE_RECOMPRESS:
            return data
        try:
            smaller = await asyncio.to_thread(
                recompress_jpeg, data, self.settings.IMAGE_MAX_WIDTH, self.settings.IMAGE_JPEG_QUALITY
            )
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
            raise ExtractionFailedError(f"Page {page.index + 1}: unreadable image") from exc
        logger.debug("Page %d recompressed %d -> %d bytes", page.index + 1, len(data), len(smaller))
        return smaller

    async def extract(self, page: PageImage, prompt: str) -> str:
        """Return the model's raw reply for `page` ("" if it gave none)."""
        image = await self._load_image(page)
        logger.info("Sending page %d to %s (%d bytes)", page.index + 1, self.llm.provider, len(image))
        return await self.llm.complete_with_image(prompt, image, page.mime_type)
