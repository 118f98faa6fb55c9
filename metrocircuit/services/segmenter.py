"""Domain-aware segmentation of document text into pages and fragments.

Two passes share the same shape, a prioritized list of splitting strategies
where the first strategy yielding more than one piece wins:

``split_into_pages``
    page markers (form feed, ``--- Page N ---``) → numbered headings →
    fixed-size windows snapped back to a newline.

``segment_page``
    section-marker lines (PANEL, FEEDER, BUSBAR, ...) → blank lines →
    single lines, followed by greedy accumulation to the target size.
    Each flushed buffer donates its last ``overlap`` characters to the
    start of the next fragment so neighbouring fragments share context.
    A fragment longer than twice the target is hard-split on fixed windows
    with a smaller overlap.

Both passes are pure: identical input and configuration always produce
identical output.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass

import structlog

from metrocircuit.config.domain_knowledge import (
    NUMBERED_HEADING_RE,
    PAGE_MARKER_RE,
    SECTION_MARKER_RE,
)
from metrocircuit.models.ingestion import Fragment, Page
from metrocircuit.utils.errors import ConfigurationError

logger = structlog.get_logger(logger_name=__name__)


@dataclass(frozen=True)
class SplitStrategy:
    """A named way of cutting text into pieces."""

    name: str
    split: Callable[[str], list[str]]


def _non_blank(parts: Sequence[str]) -> list[str]:
    return [p.strip() for p in parts if p and p.strip()]


def split_on_section_markers(text: str) -> list[str]:
    return _non_blank(SECTION_MARKER_RE.split(text))


def split_on_blank_lines(text: str) -> list[str]:
    return _non_blank(re.split(r"\n\s*\n", text))


def split_on_lines(text: str) -> list[str]:
    return _non_blank(text.splitlines())


def split_on_page_markers(text: str) -> list[str]:
    return _non_blank(PAGE_MARKER_RE.split(text))


def split_on_numbered_headings(text: str) -> list[str]:
    return _non_blank(NUMBERED_HEADING_RE.split(text))


FRAGMENT_STRATEGIES: tuple[SplitStrategy, ...] = (
    SplitStrategy("section_markers", split_on_section_markers),
    SplitStrategy("blank_lines", split_on_blank_lines),
    SplitStrategy("single_lines", split_on_lines),
)


class Segmenter:
    """Splits extracted text into pages and pages into overlapping fragments.

    Parameters
    ----------
    target_chars:
        Size a fragment grows to before it is flushed.
    overlap_chars:
        Trailing characters of a flushed fragment repeated at the start of
        the next one.
    hard_split_overlap_chars:
        Overlap used when an oversized fragment is cut on fixed windows.
    page_window_chars:
        Window size for the last-resort page splitter.
    """

    def __init__(
        self,
        target_chars: int = 1200,
        overlap_chars: int = 200,
        hard_split_overlap_chars: int = 100,
        page_window_chars: int = 3000,
    ) -> None:
        if target_chars <= 0 or page_window_chars <= 0:
            raise ConfigurationError("Segment and page window sizes must be positive")
        if not 0 <= overlap_chars < target_chars:
            raise ConfigurationError("overlap_chars must be in [0, target_chars)")
        if not 0 <= hard_split_overlap_chars < target_chars:
            raise ConfigurationError("hard_split_overlap_chars must be in [0, target_chars)")
        self._target = target_chars
        self._overlap = overlap_chars
        self._hard_overlap = hard_split_overlap_chars
        self._page_window = page_window_chars
        self._page_strategies: tuple[SplitStrategy, ...] = (
            SplitStrategy("page_markers", split_on_page_markers),
            SplitStrategy("numbered_headings", split_on_numbered_headings),
            SplitStrategy("fixed_windows", self._split_fixed_windows),
        )

    @property
    def max_body_chars(self) -> int:
        """Upper bound on a fragment body (the content minus its page marker)."""
        return 2 * self._target

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def split_into_pages(self, text: str) -> list[Page]:
        """Split a whole document's text into numbered logical pages."""
        if not text or not text.strip():
            return []
        pieces, strategy = self._first_split(text, self._page_strategies)
        pages = [Page(number=i, text=piece) for i, piece in enumerate(pieces, start=1)]
        logger.debug("pages_split", strategy=strategy, page_count=len(pages))
        return pages

    def segment_page(self, page_text: str, page_number: int) -> list[Fragment]:
        """Segment one page into fragments, each prefixed with its page marker.

        Whitespace-only input yields no fragments; any other input yields at
        least one.
        """
        if not page_text or not page_text.strip():
            return []

        pieces, _ = self._first_split(page_text, FRAGMENT_STRATEGIES)
        fragments: list[Fragment] = []
        for body, overlap in self._accumulate(pieces):
            if len(body) > 2 * self._target:
                for window, window_overlap in self._hard_split(body, overlap):
                    fragments.append(
                        Fragment(page_number=page_number, body=window, overlap_chars=window_overlap)
                    )
            else:
                fragments.append(Fragment(page_number=page_number, body=body, overlap_chars=overlap))
        return fragments

    # ------------------------------------------------------------------
    # Strategy selection
    # ------------------------------------------------------------------

    @staticmethod
    def _first_split(
        text: str, strategies: Sequence[SplitStrategy]
    ) -> tuple[list[str], str]:
        """Return the pieces of the first strategy that yields more than one."""
        for strategy in strategies:
            pieces = strategy.split(text)
            if len(pieces) > 1:
                return pieces, strategy.name
        return [text.strip()], "whole"

    def _split_fixed_windows(self, text: str) -> list[str]:
        """Cut *text* into windows, ending each at the last newline in its second half."""
        pieces: list[str] = []
        start = 0
        length = len(text)
        while start < length:
            end = min(start + self._page_window, length)
            if end < length:
                newline = text.rfind("\n", start + self._page_window // 2, end)
                if newline != -1:
                    end = newline + 1
            pieces.append(text[start:end])
            start = end
        return _non_blank(pieces)

    # ------------------------------------------------------------------
    # Fragment accumulation
    # ------------------------------------------------------------------

    def _accumulate(self, pieces: list[str]) -> list[tuple[str, int]]:
        """Greedily pack pieces into ``(body, overlap_chars)`` buffers."""
        buffers: list[tuple[str, int]] = []
        buffer = ""
        overlap = 0

        for piece in pieces:
            if buffer and len(buffer) + 1 + len(piece) > self._target:
                buffers.append((buffer, overlap))
                tail = buffer[-self._overlap :] if self._overlap else ""
                if tail:
                    buffer = f"{tail}\n{piece}"
                    overlap = len(tail) + 1
                else:
                    buffer = piece
                    overlap = 0
            else:
                buffer = f"{buffer}\n{piece}" if buffer else piece

        if buffer:
            buffers.append((buffer, overlap))
        return buffers

    def _hard_split(self, body: str, overlap: int) -> list[tuple[str, int]]:
        """Cut an oversized body on fixed windows of the target size."""
        windows: list[tuple[str, int]] = []
        start = 0
        while True:
            end = min(start + self._target, len(body))
            windows.append((body[start:end], overlap if start == 0 else self._hard_overlap))
            if end >= len(body):
                break
            start = end - self._hard_overlap
        return windows
