"""Shared pytest fixtures for the MetroCircuit test suite."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from metrocircuit.interfaces.document_source import IDocumentSource
from metrocircuit.interfaces.embedding_provider import IEmbeddingProvider
from metrocircuit.interfaces.llm_provider import ILLMProvider
from metrocircuit.models.document import Chunk, Connection, Document, ExtractedTags
from metrocircuit.models.query import ScoredChunk
from metrocircuit.providers.store.memory_row_store import MemoryRowStore
from metrocircuit.services.repository import CorpusRepository

# ---------------------------------------------------------------------------
# Configuration fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def router_config() -> dict[str, Any]:
    """The ``router`` section as shipped in config/config.yaml."""
    return {
        "detail_lookup_keywords": ["cable", "rating", "size", "mm2", "terminal", "ferrule"],
        "diagram_structure_keywords": ["incomer", "outgoing", "busbar", "feeder", "breaker"],
    }


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


# ---------------------------------------------------------------------------
# Mock provider fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_llm_provider() -> ILLMProvider:
    """Mock ILLMProvider that returns configurable responses.

    Override with ``mock_llm_provider.complete.return_value = "..."`` or
    ``mock_llm_provider.complete.side_effect = [...]`` in specific tests.
    """
    mock = MagicMock(spec=ILLMProvider)
    mock.get_provider_name.return_value = "mock-llm"
    mock.is_available.return_value = True
    mock.supports_vision.return_value = False
    mock.complete = AsyncMock(return_value='{"result": "ok"}')
    mock.vision_extract = AsyncMock(return_value="PANEL LT-1")
    return mock


@pytest.fixture
def mock_embedding_provider() -> IEmbeddingProvider:
    """Mock IEmbeddingProvider returning a fixed 3-dimensional vector."""
    mock = MagicMock(spec=IEmbeddingProvider)
    mock.get_provider_name.return_value = "mock-embedding"
    mock.is_available.return_value = True
    mock.get_dimension.return_value = 3
    mock.embed_single = AsyncMock(return_value=[1.0, 0.0, 0.0])
    mock.embed = AsyncMock(return_value=[[1.0, 0.0, 0.0]])
    return mock


@pytest.fixture
def mock_document_source() -> IDocumentSource:
    """Mock IDocumentSource serving a short plain-text document."""
    mock = MagicMock(spec=IDocumentSource)
    mock.get_provider_name.return_value = "mock-source"
    mock.fetch_bytes = AsyncMock(return_value=(b"PANEL LT-1 incomer 1600A ACB", "text/plain"))
    mock.list_new_files = AsyncMock(return_value=[])
    mock.describe.side_effect = lambda ref: (ref.rsplit("/", 1)[-1], "text/plain")
    return mock


# ---------------------------------------------------------------------------
# Storage fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def memory_store() -> MemoryRowStore:
    return MemoryRowStore()


@pytest.fixture
def repository(memory_store: MemoryRowStore) -> CorpusRepository:
    return CorpusRepository(memory_store)


@pytest.fixture
def sample_document() -> Document:
    return Document(
        id="doc-sld-01",
        name="sld-01.txt",
        source_ref="line2/sld-01.txt",
        mime_type="text/plain",
        folder_id="line2",
    )


# ---------------------------------------------------------------------------
# Chunk builders
# ---------------------------------------------------------------------------


@pytest.fixture
def make_chunk() -> Callable[..., Chunk]:
    """Factory for chunks with optional tags and embedding."""

    def _make(
        content: str,
        page_number: int = 1,
        document_id: str = "doc-sld-01",
        sequence: int = 0,
        panel: str = "",
        voltage: str = "",
        components: list[str] | None = None,
        connections: list[tuple[str, str, str]] | None = None,
        embedding: list[float] | None = None,
    ) -> Chunk:
        tags = ExtractedTags(
            panel=panel,
            voltage=voltage,
            components=components or [],
            connections=[Connection(from_=a, to=b, label=c) for a, b, c in connections or []],
        )
        return Chunk(
            document_id=document_id,
            content=f"[Page {page_number}] {content}",
            page_number=page_number,
            sequence=sequence,
            extracted_tags=tags,
            embedding=embedding or [],
        )

    return _make


@pytest.fixture
def make_scored(make_chunk: Callable[..., Chunk]) -> Callable[..., list[ScoredChunk]]:
    """Build ``count`` scored chunks with descending scores."""

    def _make(count: int) -> list[ScoredChunk]:
        return [
            ScoredChunk(
                chunk=make_chunk(f"excerpt {i} about feeder F{i}", page_number=i + 1, sequence=i),
                score=round(1.0 - i * 0.1, 2),
                lexical_score=round(1.0 - i * 0.1, 2),
                retrieval_rank=i,
            )
            for i in range(count)
        ]

    return _make
