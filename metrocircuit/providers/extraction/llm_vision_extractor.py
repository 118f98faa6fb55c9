"""Vision-model transcription of rendered pages.

Scanned single line diagrams rarely have a text layer, and Tesseract
struggles with rotated labels and dense symbol legends.  A multimodal model
reading the rendered page recovers designators, ratings and connections
far better, at the cost of one LLM call per page.
"""

from __future__ import annotations

import asyncio

import structlog

from metrocircuit.interfaces.llm_provider import ILLMProvider
from metrocircuit.interfaces.text_extractor import ITextExtractor
from metrocircuit.providers.extraction.page_images import RENDERABLE_TYPES, is_image, render_pages
from metrocircuit.utils.errors import ExtractionShortfallError

logger = structlog.get_logger(logger_name=__name__)

_VISION_PROMPT = (
    "Transcribe all text on this electrical drawing page. Keep panel names, "
    "equipment designators (e.g. ACB Q1, TR-2), ratings, cable sizes and "
    "voltages exactly as written. Describe each drawn connection on its own "
    "line as 'FROM -> TO (label)'. Return plain text only."
)


class LLMVisionExtractor(ITextExtractor):
    """Sends each rendered page to the LLM's vision endpoint."""

    def __init__(
        self,
        llm: ILLMProvider,
        max_bytes: int = 20 * 1024 * 1024,
        max_pages: int = 20,
        dpi: int = 150,
    ) -> None:
        self._llm = llm
        self._max_bytes = max_bytes
        self._max_pages = max_pages
        self._dpi = dpi

    async def extract(self, data: bytes, mime_type: str) -> str:
        images = await asyncio.to_thread(render_pages, data, mime_type, self._dpi, self._max_pages)
        if not images:
            raise ExtractionShortfallError("No pages to render", provider_name=self.get_name())
        pages: list[str] = []
        for number, image in enumerate(images, start=1):
            text = await self._llm.vision_extract(image, _VISION_PROMPT)
            pages.append(text.strip())
            logger.debug("vision_page_transcribed", page=number, chars=len(text))
        return "\f".join(pages)

    def supports(self, mime_type: str) -> bool:
        return mime_type in RENDERABLE_TYPES or is_image(mime_type)

    @property
    def max_bytes(self) -> int:
        return self._max_bytes

    def get_name(self) -> str:
        return "llm_vision"

    def is_available(self) -> bool:
        return self._llm.is_available() and self._llm.supports_vision()
