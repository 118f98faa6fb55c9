"""OpenAI-compatible LLM provider adapter.

Wraps the ``openai`` async client to implement :class:`ILLMProvider`.  When
``openai_base_url`` is set, the same adapter talks to any OpenAI-compatible
server.  Text completions walk the configured model list in order and only
fail once every model has failed.
"""

from __future__ import annotations

import base64

import openai
import structlog

from metrocircuit.config.settings import Settings
from metrocircuit.interfaces.llm_provider import ILLMProvider
from metrocircuit.utils.errors import AllAttemptsFailedError, LLMError, ProviderUnavailableError
from metrocircuit.utils.fallback import Attempt, first_success

logger = structlog.get_logger(logger_name=__name__)


class OpenAILLMProvider(ILLMProvider):
    """LLM provider backed by an OpenAI-compatible chat completions API."""

    def __init__(self, settings: Settings) -> None:
        self._api_key = settings.openai_api_key

        client_kwargs: dict = {
            "api_key": self._api_key,
            "timeout": openai.Timeout(settings.llm_timeout_seconds, connect=5.0),
            "max_retries": 0,
        }
        if settings.openai_base_url:
            client_kwargs["base_url"] = settings.openai_base_url

        self._client = openai.AsyncOpenAI(**client_kwargs)
        self._text_models = list(settings.openai_text_models) or ["gpt-4o-mini"]
        self._vision_model = settings.openai_vision_model
        self._provider_label = "openai-compatible" if settings.openai_base_url else "openai"

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
        """Generate a completion, trying each configured model in order."""
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]
        attempts = [
            Attempt(
                name=model,
                run=lambda model=model: self._chat(model, messages, temperature, max_tokens),
            )
            for model in self._text_models
        ]
        try:
            result = await first_success(attempts, label=f"{self._provider_label}_models")
        except AllAttemptsFailedError as exc:
            raise LLMError(message=exc.message, provider_name=self.get_provider_name()) from exc
        return result.value

    async def vision_extract(self, image_bytes: bytes, prompt: str) -> str:
        """Read a PNG page render with the configured vision model."""
        if not self.supports_vision():
            raise ProviderUnavailableError(
                message="No vision model configured",
                provider_name=self.get_provider_name(),
            )
        b64 = base64.b64encode(image_bytes).decode("utf-8")
        messages = [
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": prompt},
                    {"type": "image_url", "image_url": {"url": f"data:image/png;base64,{b64}"}},
                ],
            }
        ]
        return await self._chat(self._vision_model, messages, temperature=0.0, max_tokens=4000)

    def supports_vision(self) -> bool:
        return bool(self._vision_model)

    def is_available(self) -> bool:
        """Return ``True`` if an API key is configured (doesn't verify it works)."""
        return bool(self._api_key)

    def get_provider_name(self) -> str:
        return self._provider_label

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _chat(
        self,
        model: str,
        messages: list[dict],
        temperature: float,
        max_tokens: int,
    ) -> str:
        try:
            response = await self._client.chat.completions.create(
                model=model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except openai.APITimeoutError as exc:
            raise LLMError(
                message=f"{self._provider_label} model {model} timed out",
                provider_name=self.get_provider_name(),
            ) from exc
        except openai.APIError as exc:
            raise LLMError(
                message=f"{self._provider_label} model {model} API error: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise LLMError(
                message=f"{self._provider_label} model {model} returned empty response",
                provider_name=self.get_provider_name(),
            )
        logger.info(
            "openai_completion",
            model=model,
            provider=self._provider_label,
            tokens=response.usage.total_tokens if response.usage else None,
        )
        return content
