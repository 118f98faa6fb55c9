"""Format-specific conversion for text-like and office sources.

Last in the chain: plain text, CSV and markdown are decoded, HTML is
flattened with BeautifulSoup and JSON is pretty-printed so keys and values
become searchable lines.  Word documents are read natively with python-docx;
cable and load schedules usually live in their tables, so table rows are
kept in document order with cells joined by `` | ``.
"""

from __future__ import annotations

import asyncio
import io
import json

import structlog
from bs4 import BeautifulSoup
from docx import Document as open_docx
from docx.table import Table

from metrocircuit.interfaces.text_extractor import ITextExtractor

logger = structlog.get_logger(logger_name=__name__)

DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

_TEXT_TYPES = frozenset({"text/plain", "text/csv", "text/markdown", "text/x-markdown"})
_HTML_TYPES = frozenset({"text/html", "application/xhtml+xml"})
_JSON_TYPES = frozenset({"application/json"})
_OFFICE_TYPES = frozenset({DOCX_MIME})


class FormatConverter(ITextExtractor):
    """Decodes text, HTML and JSON documents and reads DOCX natively."""

    def __init__(self, max_bytes: int = 10 * 1024 * 1024) -> None:
        self._max_bytes = max_bytes

    async def extract(self, data: bytes, mime_type: str) -> str:
        if mime_type in _OFFICE_TYPES:
            return await asyncio.to_thread(_docx_text, data)
        text = _decode(data)
        if mime_type in _HTML_TYPES:
            soup = BeautifulSoup(text, "html.parser")
            for tag in soup(["script", "style"]):
                tag.decompose()
            return soup.get_text("\n")
        if mime_type in _JSON_TYPES:
            return json.dumps(json.loads(text), indent=2, ensure_ascii=False)
        return text

    def supports(self, mime_type: str) -> bool:
        return (
            mime_type in _TEXT_TYPES
            or mime_type in _HTML_TYPES
            or mime_type in _JSON_TYPES
            or mime_type in _OFFICE_TYPES
        )

    @property
    def max_bytes(self) -> int:
        return self._max_bytes

    def get_name(self) -> str:
        return "format_conversion"

    def is_available(self) -> bool:
        return True


def _decode(data: bytes) -> str:
    """UTF-8 (with or without BOM), falling back to Latin-1 which never fails."""
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError:
        return data.decode("latin-1")


def _docx_text(data: bytes) -> str:
    """Paragraphs and table rows of a DOCX body, in document order."""
    document = open_docx(io.BytesIO(data))
    blocks: list[str] = []
    tables = 0
    for item in document.iter_inner_content():
        if isinstance(item, Table):
            tables += 1
            blocks.extend(_table_rows(item))
        elif item.text.strip():
            blocks.append(item.text.strip())
    logger.info("docx_converted", blocks=len(blocks), tables=tables)
    return "\n".join(blocks)


def _table_rows(table: Table) -> list[str]:
    rows: list[str] = []
    for row in table.rows:
        cells: list[str] = []
        for cell in row.cells:
            text = " ".join(cell.text.split())
            # Merged cells repeat the same text in every grid position.
            if text and (not cells or cells[-1] != text):
                cells.append(text)
        if cells:
            rows.append(" | ".join(cells))
    return rows
