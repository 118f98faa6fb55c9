"""Abstract base class for document sources (where original files live)."""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations: LocalFolderSource
# Located in: metrocircuit/providers/source/
class IDocumentSource(ABC):
    """Contract for fetching document bytes and discovering new files."""

    @abstractmethod
    async def fetch_bytes(self, ref: str) -> tuple[bytes, str]:
        """Return ``(data, mime_type)`` for the file at *ref*.

        Raises
        ------
        metrocircuit.utils.errors.SourceError
            If the file is missing, unreadable or above the size ceiling.
        """

    @abstractmethod
    async def list_new_files(self, folder_ref: str | None = None) -> list[str]:
        """Return refs of every file under *folder_ref* (default: the source root)."""

    @abstractmethod
    def describe(self, ref: str) -> tuple[str, str]:
        """Return ``(display_name, mime_type)`` for *ref* without reading it."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier, e.g. ``"local-folder"``."""
