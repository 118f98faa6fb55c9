"""LLM provider that falls through a priority list of other providers."""

from __future__ import annotations

from collections.abc import Sequence

from metrocircuit.interfaces.llm_provider import ILLMProvider
from metrocircuit.utils.errors import (
    AllAttemptsFailedError,
    ConfigurationError,
    LLMError,
    ProviderUnavailableError,
)
from metrocircuit.utils.fallback import Attempt, first_success


class ChainedLLMProvider(ILLMProvider):
    """Presents several providers as one; the first success wins.

    Used when both Gemini and OpenAI keys are configured, so an outage of
    one provider degrades to the other instead of to local fallbacks.
    """

    def __init__(self, providers: Sequence[ILLMProvider]) -> None:
        if not providers:
            raise ConfigurationError("ChainedLLMProvider needs at least one provider")
        self._providers = list(providers)

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.3,
        max_tokens: int = 4000,
    ) -> str:
        attempts = [
            Attempt(
                name=p.get_provider_name(),
                run=lambda p=p: p.complete(system_prompt, user_prompt, temperature, max_tokens),
            )
            for p in self._providers
        ]
        try:
            return (await first_success(attempts, label="llm_providers")).value
        except AllAttemptsFailedError as exc:
            raise LLMError(message=exc.message, provider_name=self.get_provider_name()) from exc

    async def vision_extract(self, image_bytes: bytes, prompt: str) -> str:
        vision = [p for p in self._providers if p.supports_vision()]
        if not vision:
            raise ProviderUnavailableError("No vision-capable provider configured", self.get_provider_name())
        attempts = [
            Attempt(name=p.get_provider_name(), run=lambda p=p: p.vision_extract(image_bytes, prompt))
            for p in vision
        ]
        try:
            return (await first_success(attempts, label="llm_vision_providers")).value
        except AllAttemptsFailedError as exc:
            raise LLMError(message=exc.message, provider_name=self.get_provider_name()) from exc

    def supports_vision(self) -> bool:
        return any(p.supports_vision() for p in self._providers)

    def is_available(self) -> bool:
        return any(p.is_available() for p in self._providers)

    def get_provider_name(self) -> str:
        return "+".join(p.get_provider_name() for p in self._providers)
