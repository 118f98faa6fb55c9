"""Unit tests for CorpusRepository and page-group packing."""

from __future__ import annotations

import json
from collections.abc import Callable

import pytest

from metrocircuit.models.document import Chunk, Document, DocumentStatus, QueryLog
from metrocircuit.models.ingestion import IngestionPhase, IngestionState, Page, PageGroup
from metrocircuit.providers.store.memory_row_store import MemoryRowStore
from metrocircuit.services.repository import (
    PAGE_GROUPS,
    QUERY_LOGS,
    CorpusRepository,
    pack_page_groups,
    unpack_page_groups,
)
from metrocircuit.utils.errors import ConfigurationError, DocumentNotFoundError


def _groups_as_models(groups: list[list[tuple[int, str]]]) -> list[PageGroup]:
    return [
        PageGroup(id=f"d:{i}", document_id="d", index=i, entries=entries)
        for i, entries in enumerate(groups)
    ]


class TestPageGroupPacking:
    def test_small_pages_share_one_group(self) -> None:
        pages = [Page(number=n, text=f"FEEDER F{n}") for n in range(1, 6)]
        groups = pack_page_groups(pages, max_bytes=1000)
        assert len(groups) == 1
        assert [number for number, _ in groups[0]] == [1, 2, 3, 4, 5]

    def test_groups_respect_byte_ceiling(self) -> None:
        pages = [Page(number=n, text=f"Résistance de terre ≤ 1Ω, panel DB-{n} " * 6) for n in range(1, 21)]
        groups = pack_page_groups(pages, max_bytes=600)

        assert len(groups) > 1
        for group in groups:
            assert len(json.dumps(group, ensure_ascii=False).encode("utf-8")) <= 600

    def test_oversized_page_split_and_rejoined(self) -> None:
        big = Page(number=2, text="BUSBAR 2500A copper µΩ " * 200)
        pages = [Page(number=1, text="title sheet"), big, Page(number=3, text="notes")]
        groups = pack_page_groups(pages, max_bytes=512)

        for group in groups:
            assert len(json.dumps(group, ensure_ascii=False).encode("utf-8")) <= 512
        assert sum(1 for g in groups for number, _ in g if number == 2) > 1
        assert unpack_page_groups(_groups_as_models(groups)) == pages

    def test_unpack_orders_by_group_index(self) -> None:
        pages = [Page(number=n, text="x" * 300) for n in range(1, 5)]
        models = _groups_as_models(pack_page_groups(pages, max_bytes=400))
        assert unpack_page_groups(reversed(models)) == pages

    def test_ceiling_too_small(self) -> None:
        with pytest.raises(ConfigurationError):
            pack_page_groups([Page(number=1, text="x")], max_bytes=100)

    def test_no_pages(self) -> None:
        assert pack_page_groups([], max_bytes=1000) == []


class TestDocuments:
    @pytest.mark.asyncio()
    async def test_add_get_update(self, repository: CorpusRepository, sample_document: Document) -> None:
        await repository.add_document(sample_document)

        updated = await repository.update_document(
            sample_document.id, status=DocumentStatus.PROCESSING, page_count=4
        )
        assert updated.status is DocumentStatus.PROCESSING
        assert updated.page_count == 4
        assert (await repository.get_document(sample_document.id)) == updated

    @pytest.mark.asyncio()
    async def test_require_unknown_document(self, repository: CorpusRepository) -> None:
        with pytest.raises(DocumentNotFoundError):
            await repository.require_document("nope")
        with pytest.raises(DocumentNotFoundError):
            await repository.update_document("nope", status=DocumentStatus.ERROR)

    @pytest.mark.asyncio()
    async def test_list_and_find(self, repository: CorpusRepository) -> None:
        await repository.add_document(Document(name="a.pdf", source_ref="line1/a.pdf", folder_id="line1"))
        await repository.add_document(Document(name="b.pdf", source_ref="line2/b.pdf", folder_id="line2"))

        assert [d.name for d in await repository.list_documents()] == ["a.pdf", "b.pdf"]
        assert [d.name for d in await repository.list_documents(folder_id="line2")] == ["b.pdf"]
        assert (await repository.find_document_by_source("line1/a.pdf")).name == "a.pdf"
        assert await repository.find_document_by_source("line3/c.pdf") is None

    @pytest.mark.asyncio()
    async def test_delete_cascades(
        self,
        repository: CorpusRepository,
        memory_store: MemoryRowStore,
        sample_document: Document,
        make_chunk: Callable[..., Chunk],
    ) -> None:
        await repository.add_document(sample_document)
        await repository.append_chunks([make_chunk("a", page_number=1), make_chunk("b", page_number=2)])
        await repository.save_state(IngestionState(document_id=sample_document.id, total_pages=2))
        await repository.save_pages(sample_document.id, [Page(number=1, text="a")], max_bytes=1000)

        assert await repository.delete_document(sample_document.id) == 2
        assert await repository.get_document(sample_document.id) is None
        assert await repository.get_state(sample_document.id) is None
        assert await memory_store.scan(PAGE_GROUPS) == []


class TestChunks:
    @pytest.mark.asyncio()
    async def test_round_trip_keeps_tags(
        self, repository: CorpusRepository, make_chunk: Callable[..., Chunk]
    ) -> None:
        chunk = make_chunk(
            "TR-1 -> BUSBAR",
            panel="LT PANEL-2",
            components=["TRANSFORMER TR-1"],
            connections=[("TR-1", "BUSBAR", "3.5C x 300mm2")],
        )
        await repository.append_chunks([chunk])

        [stored] = await repository.chunks_for_document(chunk.document_id)
        assert stored == chunk
        assert stored.extracted_tags.connections[0].label == "3.5C x 300mm2"

    @pytest.mark.asyncio()
    async def test_chunks_sorted_by_page_then_sequence(
        self, repository: CorpusRepository, make_chunk: Callable[..., Chunk]
    ) -> None:
        await repository.append_chunks(
            [
                make_chunk("c", page_number=2, sequence=2),
                make_chunk("a", page_number=1, sequence=0),
                make_chunk("b", page_number=1, sequence=1),
            ]
        )
        chunks = await repository.chunks_for_document("doc-sld-01")
        assert [c.sequence for c in chunks] == [0, 1, 2]

    @pytest.mark.asyncio()
    async def test_delete_by_page(self, repository: CorpusRepository, make_chunk: Callable[..., Chunk]) -> None:
        await repository.append_chunks([make_chunk("a", page_number=1), make_chunk("b", page_number=2)])

        assert await repository.delete_chunks("doc-sld-01", page_number=2) == 1
        assert [c.page_number for c in await repository.chunks_for_document("doc-sld-01")] == [1]

    @pytest.mark.asyncio()
    async def test_all_chunks_scoped(self, repository: CorpusRepository, make_chunk: Callable[..., Chunk]) -> None:
        await repository.append_chunks(
            [make_chunk("a", document_id="d1"), make_chunk("b", document_id="d2")]
        )
        assert len(await repository.all_chunks()) == 2
        assert [c.document_id for c in await repository.all_chunks(["d2"])] == ["d2"]

    @pytest.mark.asyncio()
    async def test_set_embedding(self, repository: CorpusRepository, make_chunk: Callable[..., Chunk]) -> None:
        chunk = make_chunk("a")
        await repository.append_chunks([chunk])
        await repository.set_chunk_embedding(chunk.id, [0.5, 0.5])

        [stored] = await repository.chunks_for_document(chunk.document_id)
        assert stored.has_embedding


class TestStateAndPages:
    @pytest.mark.asyncio()
    async def test_save_state_upserts(self, repository: CorpusRepository) -> None:
        state = IngestionState(document_id="d1", total_pages=10, phase=IngestionPhase.BATCHING)
        await repository.save_state(state)
        await repository.save_state(state.model_copy(update={"processed_pages": 4, "total_chunks": 9}))

        stored = await repository.get_state("d1")
        assert stored.processed_pages == 4
        assert stored.total_chunks == 9
        assert stored.phase is IngestionPhase.BATCHING

    @pytest.mark.asyncio()
    async def test_save_pages_replaces_previous(self, repository: CorpusRepository) -> None:
        await repository.save_pages("d1", [Page(number=n, text="old") for n in range(1, 4)], 1000)
        count = await repository.save_pages("d1", [Page(number=1, text="new")], 1000)

        assert count == 1
        assert await repository.load_pages("d1") == [Page(number=1, text="new")]

    @pytest.mark.asyncio()
    async def test_query_log_appended(self, repository: CorpusRepository, memory_store: MemoryRowStore) -> None:
        await repository.append_query_log(QueryLog(query="What feeds DB-2?", answer="TR-1", match_count=3))
        [row] = await memory_store.scan(QUERY_LOGS)
        assert row["query"] == "What feeds DB-2?"
        assert row["match_count"] == 3
