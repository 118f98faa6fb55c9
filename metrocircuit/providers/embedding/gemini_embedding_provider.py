"""Gemini embedding provider over the public REST API.

Endpoints are tried in a fixed priority order: each configured embedding
model on each API version (``v1beta/text-embedding-004``,
``v1/text-embedding-004``, ``v1beta/embedding-001``, ...).
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from metrocircuit.config.settings import Settings
from metrocircuit.interfaces.embedding_provider import IEmbeddingProvider
from metrocircuit.utils.errors import AllAttemptsFailedError, EmbeddingError
from metrocircuit.utils.fallback import Attempt, first_success

logger = structlog.get_logger(logger_name=__name__)

_GEMINI_DIMENSION = 768


class GeminiEmbeddingProvider(IEmbeddingProvider):
    """Embedding provider backed by Gemini ``embedContent``."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient) -> None:
        self._api_key = settings.gemini_api_key
        self._base_url = settings.gemini_base_url.rstrip("/")
        self._models = list(settings.gemini_embedding_models)
        self._versions = list(settings.gemini_api_versions)
        self._timeout = settings.llm_timeout_seconds
        self._http = http_client

    # ------------------------------------------------------------------
    # IEmbeddingProvider implementation
    # ------------------------------------------------------------------

    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Embed each text in turn; one failed text fails the batch."""
        return [await self.embed_single(text) for text in texts]

    async def embed_single(self, text: str) -> list[float]:
        if not self._api_key:
            raise EmbeddingError("GEMINI_API_KEY is not configured", provider_name=self.get_provider_name())
        attempts = [
            Attempt(
                name=f"{version}/{model}",
                run=lambda version=version, model=model: self._post(version, model, text),
            )
            for model in self._models
            for version in self._versions
        ]
        try:
            result = await first_success(attempts, label="gemini_embed")
        except AllAttemptsFailedError as exc:
            raise EmbeddingError(message=exc.message, provider_name=self.get_provider_name()) from exc
        return result.value

    def get_dimension(self) -> int:
        return _GEMINI_DIMENSION

    def get_provider_name(self) -> str:
        return "gemini-embedding"

    def is_available(self) -> bool:
        return bool(self._api_key)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _post(self, version: str, model: str, text: str) -> list[float]:
        url = f"{self._base_url}/{version}/models/{model}:embedContent"
        body: dict[str, Any] = {"model": f"models/{model}", "content": {"parts": [{"text": text}]}}
        try:
            response = await self._http.post(
                url,
                json=body,
                headers={"x-goog-api-key": self._api_key},
                timeout=self._timeout,
            )
        except httpx.HTTPError as exc:
            raise EmbeddingError(
                message=f"{version}/{model} request failed: {type(exc).__name__}",
                provider_name=self.get_provider_name(),
            ) from exc

        if response.status_code != 200:
            raise EmbeddingError(
                message=f"{version}/{model} returned HTTP {response.status_code}",
                provider_name=self.get_provider_name(),
            )

        values = (response.json().get("embedding") or {}).get("values") or []
        if not values:
            raise EmbeddingError(
                message=f"{version}/{model} returned an empty embedding",
                provider_name=self.get_provider_name(),
            )
        logger.debug("gemini_embedding", model=model, api_version=version, dimension=len(values))
        return [float(v) for v in values]
