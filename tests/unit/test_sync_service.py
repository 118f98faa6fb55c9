"""Unit tests for SyncService."""

from __future__ import annotations

import pytest

from metrocircuit.interfaces.document_source import IDocumentSource
from metrocircuit.models.document import Document, DocumentStatus
from metrocircuit.services.repository import CorpusRepository
from metrocircuit.services.sync_service import SyncService


class TestSyncService:
    @pytest.mark.asyncio()
    async def test_registers_new_files(
        self, repository: CorpusRepository, mock_document_source: IDocumentSource
    ) -> None:
        mock_document_source.list_new_files.return_value = ["line2/sld-01.pdf", "line2/schedule.csv"]

        created = await SyncService(repository, mock_document_source).sync("line2")

        assert [d.name for d in created] == ["sld-01.pdf", "schedule.csv"]
        assert all(d.status is DocumentStatus.UPLOADED for d in created)
        assert all(d.folder_id == "line2" for d in created)
        mock_document_source.list_new_files.assert_awaited_once_with("line2")
        assert len(await repository.list_documents()) == 2

    @pytest.mark.asyncio()
    async def test_skips_known_sources(
        self, repository: CorpusRepository, mock_document_source: IDocumentSource
    ) -> None:
        await repository.add_document(Document(name="sld-01.pdf", source_ref="line2/sld-01.pdf"))
        mock_document_source.list_new_files.return_value = ["line2/sld-01.pdf", "line2/sld-02.pdf"]
        service = SyncService(repository, mock_document_source)

        created = await service.sync()
        again = await service.sync()

        assert [d.source_ref for d in created] == ["line2/sld-02.pdf"]
        assert again == []

    @pytest.mark.asyncio()
    async def test_explicit_folder_id(
        self, repository: CorpusRepository, mock_document_source: IDocumentSource
    ) -> None:
        mock_document_source.list_new_files.return_value = ["a.txt"]
        [document] = await SyncService(repository, mock_document_source).sync(folder_id="depot")
        assert document.folder_id == "depot"
        assert document.mime_type == "text/plain"
