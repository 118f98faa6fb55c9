"""Unit tests for QueryService: the full route → retrieve → draft pipeline."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any
from unittest.mock import AsyncMock, patch

import pytest

from metrocircuit.interfaces.embedding_provider import IEmbeddingProvider
from metrocircuit.interfaces.llm_provider import ILLMProvider
from metrocircuit.models.document import Chunk, Document
from metrocircuit.models.query import OutputMode, QueryIntent, QueryRequest, SearchMode
from metrocircuit.providers.store.memory_row_store import MemoryRowStore
from metrocircuit.services.embedding_client import EmbeddingClient
from metrocircuit.services.query.answer_drafter import NO_MATCHES_ANSWER, AnswerDrafter
from metrocircuit.services.query.query_service import QueryService, _search_terms
from metrocircuit.services.query.reranker_agent import RerankerAgent
from metrocircuit.services.query.router_agent import RouterAgent
from metrocircuit.services.query.verification_agent import VerificationAgent
from metrocircuit.services.repository import QUERY_LOGS, CorpusRepository
from metrocircuit.services.scorer import Scorer
from metrocircuit.utils.errors import DocumentNotFoundError, EmbeddingError


def _service(
    repository: CorpusRepository,
    llm: ILLMProvider | None = None,
    embedding_providers: list[IEmbeddingProvider] | None = None,
    router_config: dict[str, Any] | None = None,
) -> QueryService:
    return QueryService(
        repository=repository,
        scorer=Scorer(),
        embedding_client=EmbeddingClient(embedding_providers or []),
        router=RouterAgent(llm, router_config),
        reranker=RerankerAgent(llm),
        drafter=AnswerDrafter(llm, attempts=1),
        verifier=VerificationAgent(llm),
    )


@pytest.fixture
def busbar_chunks(make_chunk: Callable[..., Chunk]) -> list[Chunk]:
    return [
        make_chunk("MAIN BUSBAR rating 2500A copper", page_number=1, panel="LT PANEL-2", voltage="415V",
                   embedding=[1.0, 0.0, 0.0]),
        make_chunk("Busbar trunking to DB-9 rating 800A", page_number=2, sequence=1, panel="DB-9",
                   voltage="415V", embedding=[0.0, 1.0, 0.0]),
        make_chunk("UPS battery autonomy 30 minutes", page_number=3, sequence=2, panel="UPS PANEL",
                   voltage="230V"),
    ]


class TestRetrieval:
    @pytest.mark.asyncio()
    async def test_embedding_failure_degrades_to_lexical(
        self,
        repository: CorpusRepository,
        mock_embedding_provider: IEmbeddingProvider,
        busbar_chunks: list[Chunk],
    ) -> None:
        await repository.append_chunks(busbar_chunks)
        mock_embedding_provider.embed_single.side_effect = EmbeddingError("quota exceeded")
        service = _service(repository, embedding_providers=[mock_embedding_provider])

        result = await service.answer(QueryRequest(query="busbar rating"))

        assert result.search_mode is SearchMode.LEXICAL
        assert result.answer
        assert {m.chunk.page_number for m in result.matches} == {1, 2}
        assert all(m.vector_score is None for m in result.matches)

    @pytest.mark.asyncio()
    async def test_hybrid_when_query_embedded(
        self,
        repository: CorpusRepository,
        mock_embedding_provider: IEmbeddingProvider,
        busbar_chunks: list[Chunk],
    ) -> None:
        await repository.append_chunks(busbar_chunks)
        service = _service(repository, embedding_providers=[mock_embedding_provider])

        result = await service.answer(QueryRequest(query="busbar rating"))

        assert result.search_mode is SearchMode.HYBRID
        assert result.matches[0].chunk.page_number == 1
        assert result.matches[0].vector_score == pytest.approx(1.0)

    @pytest.mark.asyncio()
    async def test_panel_and_voltage_filters(
        self, repository: CorpusRepository, busbar_chunks: list[Chunk]
    ) -> None:
        await repository.append_chunks(busbar_chunks)
        service = _service(repository)

        by_panel = await service.answer(QueryRequest(query="busbar rating", filter_panel="panel-2"))
        by_voltage = await service.answer(QueryRequest(query="busbar rating", filter_voltage="230v"))

        assert [m.chunk.page_number for m in by_panel.matches] == [1]
        assert by_voltage.matches == []
        assert by_voltage.answer == NO_MATCHES_ANSWER

    @pytest.mark.asyncio()
    async def test_document_scope(
        self, repository: CorpusRepository, sample_document: Document, make_chunk: Callable[..., Chunk]
    ) -> None:
        await repository.add_document(sample_document)
        await repository.append_chunks(
            [make_chunk("feeder F1 busbar"), make_chunk("feeder F1 busbar", document_id="other")]
        )

        result = await _service(repository).answer(
            QueryRequest(query="feeder busbar", document_id=sample_document.id)
        )
        assert [m.chunk.document_id for m in result.matches] == [sample_document.id]

    @pytest.mark.asyncio()
    async def test_folder_scope(self, repository: CorpusRepository, make_chunk: Callable[..., Chunk]) -> None:
        doc = await repository.add_document(Document(name="a.pdf", source_ref="line1/a.pdf", folder_id="line1"))
        await repository.append_chunks(
            [make_chunk("incomer ACB", document_id=doc.id), make_chunk("incomer ACB", document_id="elsewhere")]
        )

        result = await _service(repository).answer(QueryRequest(query="incomer", folder_id="line1"))
        assert [m.chunk.document_id for m in result.matches] == [doc.id]

    @pytest.mark.asyncio()
    async def test_unknown_document(self, repository: CorpusRepository) -> None:
        with pytest.raises(DocumentNotFoundError):
            await _service(repository).answer(QueryRequest(query="q", document_id="missing"))

    @pytest.mark.asyncio()
    async def test_match_count_limits_results(
        self, repository: CorpusRepository, busbar_chunks: list[Chunk]
    ) -> None:
        await repository.append_chunks(busbar_chunks)
        result = await _service(repository).answer(QueryRequest(query="busbar rating", match_count=1))
        assert len(result.matches) == 1
        assert result.reranked is False


class TestAgentsWired:
    @pytest.mark.asyncio()
    async def test_llm_stages_in_order(
        self,
        repository: CorpusRepository,
        mock_llm_provider: ILLMProvider,
        busbar_chunks: list[Chunk],
        router_config: dict[str, Any],
    ) -> None:
        await repository.append_chunks(busbar_chunks)
        mock_llm_provider.complete.side_effect = [
            '{"intent": "detail_lookup", "keywords": ["busbar"]}',
            "[1]",
            "The main busbar is rated 2500A (p. 1).",
            '{"verdict": "corrected", "answer": "The main busbar is rated 2500A copper (p. 1)."}',
        ]
        service = _service(repository, llm=mock_llm_provider, router_config=router_config)

        result = await service.answer(QueryRequest(query="busbar rating", match_count=1))

        assert result.intent is QueryIntent.DETAIL_LOOKUP
        assert "rating" in result.expanded_keywords
        assert result.reranked is True
        assert result.verified is True
        assert result.corrected is True
        assert result.answer == "The main busbar is rated 2500A copper (p. 1)."
        assert len(result.matches) == 1
        assert result.matches[0].score == pytest.approx(1.0)
        assert mock_llm_provider.complete.await_count == 4

    @pytest.mark.asyncio()
    async def test_schematic_skips_verification(
        self,
        repository: CorpusRepository,
        mock_llm_provider: ILLMProvider,
        make_chunk: Callable[..., Chunk],
    ) -> None:
        await repository.append_chunks(
            [make_chunk("TR-1 -> BUSBAR", components=["TRANSFORMER TR-1", "BUSBAR"])]
        )
        mock_llm_provider.complete.side_effect = [
            '{"intent": "diagram_structure", "keywords": []}',
            '{"components": ["TRANSFORMER TR-1"], "connections": []}',
        ]
        service = _service(repository, llm=mock_llm_provider)

        result = await service.answer(QueryRequest(query="transformer busbar", output_mode=OutputMode.SCHEMATIC))

        assert result.output_mode is OutputMode.SCHEMATIC
        assert result.verified is False
        assert mock_llm_provider.complete.await_count == 2


class TestQueryLog:
    @pytest.mark.asyncio()
    async def test_every_query_logged(
        self, repository: CorpusRepository, memory_store: MemoryRowStore, busbar_chunks: list[Chunk]
    ) -> None:
        await repository.append_chunks(busbar_chunks)
        result = await _service(repository).answer(QueryRequest(query="busbar rating"))

        [row] = await memory_store.scan(QUERY_LOGS)
        assert row["query"] == "busbar rating"
        assert row["match_count"] == len(result.matches)
        assert row["search_mode"] == "lexical"
        assert row["output_mode"] == "text"

    @pytest.mark.asyncio()
    async def test_log_failure_does_not_fail_query(self, repository: CorpusRepository) -> None:
        with patch.object(repository, "append_query_log", AsyncMock(side_effect=RuntimeError("disk full"))):
            result = await _service(repository).answer(QueryRequest(query="busbar"))
        assert result.answer == NO_MATCHES_ANSWER


class TestSearchTerms:
    def test_keywords_appended_once(self) -> None:
        terms = _search_terms("busbar rating", ["Busbar", "short  circuit", ""])
        assert terms[-1] == "short circuit"
        assert terms.count("busbar") == 1
