"""Tesseract OCR over rendered pages.

Each page image is converted to grayscale and auto-contrasted with Pillow
before ``pytesseract.image_to_string``; line drawings scanned at low contrast
otherwise lose most of their small labels.
"""

from __future__ import annotations

import asyncio
import io

import structlog
from PIL import Image, ImageOps

from metrocircuit.interfaces.text_extractor import ITextExtractor
from metrocircuit.providers.extraction.page_images import RENDERABLE_TYPES, is_image, render_pages

logger = structlog.get_logger(logger_name=__name__)

# pytesseract needs the Tesseract binary as well; when either is missing
# is_available() returns False and the extraction chain skips this strategy.
try:
    import pytesseract

    _PYTESSERACT_AVAILABLE = True
except ImportError:
    pytesseract = None  # type: ignore[assignment]
    _PYTESSERACT_AVAILABLE = False


class TesseractExtractor(ITextExtractor):
    """OCR strategy backed by Google Tesseract via pytesseract."""

    def __init__(self, max_bytes: int = 30 * 1024 * 1024, max_pages: int = 30, dpi: int = 200) -> None:
        self._max_bytes = max_bytes
        self._max_pages = max_pages
        self._dpi = dpi

    async def extract(self, data: bytes, mime_type: str) -> str:
        return await asyncio.to_thread(self._ocr_document, data, mime_type)

    def supports(self, mime_type: str) -> bool:
        return mime_type in RENDERABLE_TYPES or is_image(mime_type)

    @property
    def max_bytes(self) -> int:
        return self._max_bytes

    def get_name(self) -> str:
        return "tesseract_ocr"

    def is_available(self) -> bool:
        """Check that pytesseract is installed and the Tesseract binary exists."""
        if not _PYTESSERACT_AVAILABLE:
            return False
        try:
            pytesseract.get_tesseract_version()
            return True
        except Exception:
            return False

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _ocr_document(self, data: bytes, mime_type: str) -> str:
        pages: list[str] = []
        for png in render_pages(data, mime_type, self._dpi, self._max_pages):
            with Image.open(io.BytesIO(png)) as image:
                prepared = self._prepare(image)
            pages.append(pytesseract.image_to_string(prepared).strip())
        logger.debug("ocr_complete", pages=len(pages), chars=sum(len(p) for p in pages))
        return "\f".join(pages)

    @staticmethod
    def _prepare(image: Image.Image) -> Image.Image:
        gray = ImageOps.grayscale(image)
        return ImageOps.autocontrast(gray, cutoff=1)
