"""Text extraction with an ordered strategy chain.

Strategies are tried in priority order (native text layer → LLM vision →
OCR → format conversion).  A strategy is skipped when it does not support the
MIME type, its dependencies are missing, or the input exceeds its byte
ceiling.  The first strategy whose output reaches ``min_chars`` of
non-whitespace text wins.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

import structlog

from metrocircuit.interfaces.text_extractor import ITextExtractor
from metrocircuit.utils.errors import AllAttemptsFailedError, ExtractionShortfallError
from metrocircuit.utils.fallback import Attempt, first_success

logger = structlog.get_logger(logger_name=__name__)


@dataclass(frozen=True)
class ExtractedText:
    text: str
    strategy: str


def _meaningful_length(text: str) -> int:
    return len("".join(text.split()))


class TextExtractionService:
    """Runs extraction strategies until one yields enough text.

    Parameters
    ----------
    strategies:
        Extraction strategies in priority order.
    min_chars:
        Minimum count of non-whitespace characters for a result to count.
    """

    def __init__(self, strategies: Sequence[ITextExtractor], min_chars: int = 50) -> None:
        self._strategies = list(strategies)
        self._min_chars = min_chars

    async def extract(self, data: bytes, mime_type: str) -> ExtractedText:
        """Return the first acceptable extraction.

        Raises
        ------
        ExtractionShortfallError
            When no eligible strategy produced at least ``min_chars`` of text.
        """
        eligible = [s for s in self._strategies if self._eligible(s, data, mime_type)]
        attempts = [
            Attempt(name=s.get_name(), run=lambda s=s: s.extract(data, mime_type))
            for s in eligible
        ]
        try:
            result = await first_success(
                attempts,
                accept=lambda text: _meaningful_length(text) >= self._min_chars,
                label="text_extraction",
            )
        except AllAttemptsFailedError as exc:
            tried = ", ".join(exc.failures) or "none applicable"
            raise ExtractionShortfallError(
                f"No extraction strategy produced at least {self._min_chars} characters of text "
                f"(tried: {tried}). The file may be image-only or an unsupported format ({mime_type})."
            ) from exc

        logger.info(
            "text_extracted",
            strategy=result.attempt_name,
            chars=len(result.value),
            skipped=list(result.failures),
        )
        return ExtractedText(text=result.value, strategy=result.attempt_name)

    def _eligible(self, strategy: ITextExtractor, data: bytes, mime_type: str) -> bool:
        if not strategy.supports(mime_type):
            return False
        if not strategy.is_available():
            logger.debug("extraction_strategy_unavailable", strategy=strategy.get_name())
            return False
        if len(data) > strategy.max_bytes:
            logger.info(
                "extraction_strategy_oversized",
                strategy=strategy.get_name(),
                size=len(data),
                max_bytes=strategy.max_bytes,
            )
            return False
        return True
