"""Document source backed by a folder on the local filesystem.

Refs are POSIX paths relative to the source root (``drawings/sld-01.pdf``).
Refs that resolve outside the root are rejected.
"""

from __future__ import annotations

import asyncio
import mimetypes
from pathlib import Path, PurePosixPath

import structlog

from metrocircuit.interfaces.document_source import IDocumentSource
from metrocircuit.utils.errors import SourceError

logger = structlog.get_logger(logger_name=__name__)

_SUPPORTED_SUFFIXES = frozenset(
    {
        ".pdf", ".epub", ".xps", ".txt", ".csv", ".md", ".html", ".htm", ".json",
        ".png", ".jpg", ".jpeg", ".tif", ".tiff", ".docx",
    }
)

mimetypes.add_type("application/vnd.openxmlformats-officedocument.wordprocessingml.document", ".docx")


class LocalFolderSource(IDocumentSource):
    """Reads documents from *root*, refusing files above *max_bytes*."""

    def __init__(self, root: str | Path, max_bytes: int = 50 * 1024 * 1024) -> None:
        self._root = Path(root)
        self._max_bytes = max_bytes

    async def fetch_bytes(self, ref: str) -> tuple[bytes, str]:
        path = self._resolve(ref)
        if not path.is_file():
            raise SourceError(f"Source file '{ref}' does not exist", provider_name=self.get_provider_name())
        size = path.stat().st_size
        if size > self._max_bytes:
            raise SourceError(
                f"Source file '{ref}' is {size} bytes, above the {self._max_bytes} byte limit",
                provider_name=self.get_provider_name(),
            )
        try:
            data = await asyncio.to_thread(path.read_bytes)
        except OSError as exc:
            raise SourceError(
                f"Source file '{ref}' could not be read: {exc.strerror or exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        return data, self.describe(ref)[1]

    async def list_new_files(self, folder_ref: str | None = None) -> list[str]:
        root = self._root.resolve()
        base = self._resolve(folder_ref) if folder_ref else root
        if not base.is_dir():
            raise SourceError(f"Source folder '{folder_ref or base}' does not exist", self.get_provider_name())
        refs = sorted(
            PurePosixPath(p.relative_to(root)).as_posix()
            for p in base.rglob("*")
            if p.is_file() and p.suffix.lower() in _SUPPORTED_SUFFIXES
        )
        logger.debug("source_listed", folder=str(base), files=len(refs))
        return refs

    def describe(self, ref: str) -> tuple[str, str]:
        mime_type, _ = mimetypes.guess_type(ref)
        return PurePosixPath(ref).name, mime_type or "application/octet-stream"

    def get_provider_name(self) -> str:
        return "local-folder"

    def _resolve(self, ref: str) -> Path:
        root = self._root.resolve()
        path = (root / ref).resolve()
        if path != root and root not in path.parents:
            raise SourceError(f"Source ref '{ref}' escapes the source folder", self.get_provider_name())
        return path
