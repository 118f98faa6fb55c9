"""Registers files from a document source as documents ready for processing."""

from __future__ import annotations

import structlog

from metrocircuit.interfaces.document_source import IDocumentSource
from metrocircuit.models.document import Document
from metrocircuit.services.repository import CorpusRepository

logger = structlog.get_logger(logger_name=__name__)


class SyncService:
    """Creates a :class:`Document` for every source file not yet registered."""

    def __init__(self, repository: CorpusRepository, source: IDocumentSource) -> None:
        self._repo = repository
        self._source = source

    async def sync(self, folder_ref: str | None = None, folder_id: str | None = None) -> list[Document]:
        """Register new files under *folder_ref*; return the documents created.

        ``folder_id`` defaults to ``folder_ref`` so queries can be scoped to
        the folder the files came from.
        """
        refs = await self._source.list_new_files(folder_ref)
        created: list[Document] = []
        for ref in refs:
            if await self._repo.find_document_by_source(ref) is not None:
                continue
            name, mime_type = self._source.describe(ref)
            document = Document(
                name=name,
                source_ref=ref,
                mime_type=mime_type,
                folder_id=folder_id or folder_ref,
            )
            created.append(await self._repo.add_document(document))

        logger.info(
            "source_synced",
            source=self._source.get_provider_name(),
            folder=folder_ref or "",
            listed=len(refs),
            created=len(created),
        )
        return created
