"""Unit tests for EmbeddingClient: priority order and the empty-vector fallback."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from metrocircuit.interfaces.embedding_provider import IEmbeddingProvider
from metrocircuit.services.embedding_client import EmbeddingClient
from metrocircuit.utils.errors import EmbeddingError


def _provider(name: str, result: list[float] | Exception, available: bool = True) -> MagicMock:
    mock = MagicMock(spec=IEmbeddingProvider)
    mock.get_provider_name.return_value = name
    mock.is_available.return_value = available
    if isinstance(result, Exception):
        mock.embed_single = AsyncMock(side_effect=result)
    else:
        mock.embed_single = AsyncMock(return_value=result)
    return mock


class TestEmbeddingClient:
    @pytest.mark.asyncio()
    async def test_first_provider_wins(self) -> None:
        first = _provider("gemini-embedding", [0.1, 0.2])
        second = _provider("openai_embedding", [0.9, 0.9])

        vector = await EmbeddingClient([first, second]).embed("busbar rating")

        assert vector == [0.1, 0.2]
        second.embed_single.assert_not_awaited()

    @pytest.mark.asyncio()
    async def test_falls_through_on_error(self) -> None:
        first = _provider("gemini-embedding", EmbeddingError("HTTP 404"))
        second = _provider("openai_embedding", [0.5, 0.5])

        assert await EmbeddingClient([first, second]).embed("busbar") == [0.5, 0.5]

    @pytest.mark.asyncio()
    async def test_empty_vector_counts_as_failure(self) -> None:
        first = _provider("gemini-embedding", [])
        second = _provider("openai_embedding", [0.3])

        assert await EmbeddingClient([first, second]).embed("busbar") == [0.3]

    @pytest.mark.asyncio()
    async def test_all_providers_failing_returns_empty(self) -> None:
        client = EmbeddingClient(
            [
                _provider("gemini-embedding", EmbeddingError("HTTP 500")),
                _provider("openai_embedding", RuntimeError("connection reset")),
            ]
        )
        assert await client.embed("busbar") == []

    @pytest.mark.asyncio()
    async def test_unavailable_provider_skipped(self) -> None:
        offline = _provider("gemini-embedding", [0.1], available=False)
        online = _provider("openai_embedding", [0.2])

        assert await EmbeddingClient([offline, online]).embed("busbar") == [0.2]
        offline.embed_single.assert_not_awaited()

    @pytest.mark.asyncio()
    async def test_input_truncated(self) -> None:
        provider = _provider("gemini-embedding", [0.1])
        await EmbeddingClient([provider], max_chars=10).embed("x" * 50)
        provider.embed_single.assert_awaited_once_with("x" * 10)

    @pytest.mark.asyncio()
    async def test_blank_text_not_sent(self) -> None:
        provider = _provider("gemini-embedding", [0.1])
        assert await EmbeddingClient([provider]).embed("  \n ") == []
        provider.embed_single.assert_not_awaited()

    def test_is_configured(self) -> None:
        assert EmbeddingClient([_provider("a", [0.1])]).is_configured is True
        assert EmbeddingClient([_provider("a", [0.1], available=False)]).is_configured is False
        assert EmbeddingClient([]).is_configured is False
