"""Abstract base class for text-extraction strategies.

The :class:`~metrocircuit.services.text_extraction_service.TextExtractionService`
tries strategies in a fixed priority order and keeps the first whose output
clears the minimum length threshold.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations: PdfTextExtractor, LLMVisionExtractor,
# TesseractExtractor, FormatConverter
# Located in: metrocircuit/providers/extraction/
class ITextExtractor(ABC):
    """One way of turning document bytes into text.

    Multi-page output separates pages with a form feed (``\\f``) so the
    segmenter's page splitter can recover the original page boundaries.
    """

    @abstractmethod
    async def extract(self, data: bytes, mime_type: str) -> str:
        """Return the extracted text; raise on failure."""

    @abstractmethod
    def supports(self, mime_type: str) -> bool:
        """Return ``True`` if this strategy can handle *mime_type*."""

    @property
    @abstractmethod
    def max_bytes(self) -> int:
        """Largest input size, in bytes, this strategy will attempt."""

    @abstractmethod
    def get_name(self) -> str:
        """Return a short identifier used in logs and status messages."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the strategy's dependencies and credentials are present."""
