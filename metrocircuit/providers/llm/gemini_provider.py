"""Google Gemini LLM provider over the public REST API.

Talks to ``generativelanguage.googleapis.com`` with a shared
``httpx.AsyncClient``.  Model availability differs between API surfaces
(``v1beta`` vs ``v1``) and changes over time, so every call walks the
configured ``model × api_version`` combinations and treats any non-success
response as recoverable.  ``LLMError`` is raised only after every
combination failed.
"""

from __future__ import annotations

import base64
from typing import Any

import httpx
import structlog

from metrocircuit.config.settings import Settings
from metrocircuit.interfaces.llm_provider import ILLMProvider
from metrocircuit.utils.errors import AllAttemptsFailedError, LLMError
from metrocircuit.utils.fallback import Attempt, first_success

logger = structlog.get_logger(logger_name=__name__)


class GeminiLLMProvider(ILLMProvider):
    """LLM provider backed by Gemini ``generateContent``.

    Parameters
    ----------
    settings:
        Supplies the API key, base URL, model list and API versions.
    http_client:
        Shared async client; its lifecycle is owned by the application.
    """

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient) -> None:
        self._api_key = settings.gemini_api_key
        self._base_url = settings.gemini_base_url.rstrip("/")
        self._models = list(settings.gemini_text_models)
        self._versions = list(settings.gemini_api_versions)
        self._timeout = settings.llm_timeout_seconds
        self._http = http_client

    # ------------------------------------------------------------------
    # ILLMProvider implementation
    # ------------------------------------------------------------------

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.3,
        max_tokens: int = 4000,
    ) -> str:
        """Generate text, trying each model on each API version in order."""
        parts = [{"text": system_prompt}, {"text": user_prompt}]
        return await self._generate(parts, temperature, max_tokens)

    async def vision_extract(self, image_bytes: bytes, prompt: str) -> str:
        """Read a PNG page render; Gemini text models are multimodal."""
        parts = [
            {"text": prompt},
            {
                "inlineData": {
                    "mimeType": "image/png",
                    "data": base64.b64encode(image_bytes).decode("ascii"),
                }
            },
        ]
        return await self._generate(parts, temperature=0.0, max_tokens=4000)

    def supports_vision(self) -> bool:
        return True

    def is_available(self) -> bool:
        return bool(self._api_key)

    def get_provider_name(self) -> str:
        return "gemini"

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _generate(self, parts: list[dict[str, Any]], temperature: float, max_tokens: int) -> str:
        if not self._api_key:
            raise LLMError("GEMINI_API_KEY is not configured", provider_name=self.get_provider_name())

        body = {
            "contents": [{"role": "user", "parts": parts}],
            "generationConfig": {"temperature": temperature, "maxOutputTokens": max_tokens},
        }
        attempts = [
            Attempt(
                name=f"{version}/{model}",
                run=lambda version=version, model=model: self._post(version, model, body),
            )
            for model in self._models
            for version in self._versions
        ]
        try:
            result = await first_success(attempts, label="gemini_generate")
        except AllAttemptsFailedError as exc:
            raise LLMError(message=exc.message, provider_name=self.get_provider_name()) from exc
        return result.value

    async def _post(self, version: str, model: str, body: dict[str, Any]) -> str:
        url = f"{self._base_url}/{version}/models/{model}:generateContent"
        try:
            response = await self._http.post(
                url,
                json=body,
                headers={"x-goog-api-key": self._api_key},
                timeout=self._timeout,
            )
        except httpx.HTTPError as exc:
            raise LLMError(
                message=f"{version}/{model} request failed: {type(exc).__name__}",
                provider_name=self.get_provider_name(),
            ) from exc

        if response.status_code != 200:
            raise LLMError(
                message=f"{version}/{model} returned HTTP {response.status_code}",
                provider_name=self.get_provider_name(),
            )

        text = _candidate_text(response.json())
        if not text:
            raise LLMError(
                message=f"{version}/{model} returned no text",
                provider_name=self.get_provider_name(),
            )
        logger.info("gemini_completion", model=model, api_version=version, chars=len(text))
        return text


def _candidate_text(payload: dict[str, Any]) -> str:
    """Join the text parts of the first candidate, or return ``""``."""
    candidates = payload.get("candidates") or []
    if not candidates:
        return ""
    parts = (candidates[0].get("content") or {}).get("parts") or []
    return "".join(part.get("text", "") for part in parts if isinstance(part, dict)).strip()
