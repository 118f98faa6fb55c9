"""Unit tests for configuration loading and application wiring."""

from __future__ import annotations

from pathlib import Path

import httpx
import pytest

from metrocircuit.api.dispatcher import ActionDispatcher
from metrocircuit.config.loader import load_config
from metrocircuit.config.settings import Settings
from metrocircuit.main import _build_all, _build_llm_provider, _build_row_store
from metrocircuit.providers.llm.chained_provider import ChainedLLMProvider
from metrocircuit.providers.llm.gemini_provider import GeminiLLMProvider
from metrocircuit.providers.store.memory_row_store import MemoryRowStore
from metrocircuit.providers.store.sqlite_row_store import SQLiteRowStore
from metrocircuit.utils.errors import ConfigurationError


def _settings(**overrides) -> Settings:
    base = {"gemini_api_key": "", "openai_api_key": "", "row_store_backend": "memory"}
    base.update(overrides)
    return Settings(_env_file=None, **base)


class TestLoadConfig:
    def test_defaults_without_file(self, tmp_path: Path) -> None:
        config = load_config(str(tmp_path / "missing.yaml"), _settings())
        assert config["scoring"]["phrase"] == 0.35
        assert "busbar" in config["router"]["diagram_structure_keywords"]
        assert config["llm"]["available_providers"] == []

    def test_partial_override_keeps_other_keys(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text("scoring:\n  floor: 0.2\nrerank:\n  preview_chars: 250\n")

        config = load_config(str(path), _settings(gemini_api_key="g-key"))

        assert config["scoring"]["floor"] == 0.2
        assert config["scoring"]["vector_weight"] == 0.6
        assert config["rerank"]["preview_chars"] == 250
        assert config["llm"]["available_providers"] == ["gemini"]

    @pytest.mark.parametrize("content", ["- just\n- a list\n", "scoring: [unclosed\n"])
    def test_invalid_files(self, tmp_path: Path, content: str) -> None:
        path = tmp_path / "config.yaml"
        path.write_text(content)
        with pytest.raises(ConfigurationError):
            load_config(str(path), _settings())


class TestWiring:
    @pytest.mark.asyncio()
    async def test_no_keys_builds_local_only_graph(self) -> None:
        components = _build_all(_settings(), app_config=load_config("missing.yaml", _settings()))
        try:
            registry = components["provider_registry"]
            assert components["primary_llm"] is None
            assert isinstance(components["dispatcher"], ActionDispatcher)
            assert isinstance(components["row_store"], MemoryRowStore)
            assert registry["llm_available"] is False
            assert registry["embedding_available"] is False
            assert registry["embedding"] == []
            assert "format_conversion" in registry["extraction"]
            assert "llm_vision" not in registry["extraction"]
            assert components["dispatcher"].health().status == "degraded"
        finally:
            await components["http_client"].aclose()

    @pytest.mark.asyncio()
    async def test_both_keys_chain_providers(self) -> None:
        components = _build_all(
            _settings(gemini_api_key="g-key", openai_api_key="sk-test"),
            app_config=load_config("missing.yaml", _settings()),
        )
        try:
            llm = components["primary_llm"]
            assert isinstance(llm, ChainedLLMProvider)
            assert llm.get_provider_name() == "gemini+openai"
            assert components["provider_registry"]["embedding"] == ["gemini-embedding", "openai_embedding"]
            assert components["dispatcher"].health().status == "healthy"
        finally:
            await components["http_client"].aclose()

    @pytest.mark.asyncio()
    async def test_single_key_not_chained(self) -> None:
        async with httpx.AsyncClient() as client:
            assert isinstance(_build_llm_provider(_settings(gemini_api_key="g-key"), client), GeminiLLMProvider)
            assert _build_llm_provider(_settings(), client) is None

    def test_row_store_backends(self, tmp_path: Path) -> None:
        assert isinstance(
            _build_row_store(_settings(row_store_backend="sqlite", sqlite_db_path=str(tmp_path / "x.db"))),
            SQLiteRowStore,
        )
        with pytest.raises(ConfigurationError):
            _build_row_store(_settings(row_store_backend="postgres"))
