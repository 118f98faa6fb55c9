"""Abstract base class for LLM text-generation providers.

Every call site talks to :class:`ILLMProvider`, never to an SDK directly, so
Gemini, OpenAI-compatible servers and the chained fallback provider are
interchangeable.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations: GeminiLLMProvider, OpenAILLMProvider, ChainedLLMProvider
# Located in: metrocircuit/providers/llm/
class ILLMProvider(ABC):
    """Contract for LLM services used by extraction and the query agents.

    Providers must support plain text completion; vision is optional and
    declared via :meth:`supports_vision`.
    """

    @abstractmethod
    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.3,
        max_tokens: int = 4000,
    ) -> str:
        """Generate a text completion from the model.

        Parameters
        ----------
        system_prompt:
            The instruction message that sets the model's behaviour.
        user_prompt:
            The prompt containing the actual request and context.
        temperature:
            Sampling temperature (0.0 = deterministic).
        max_tokens:
            Upper bound on the number of tokens in the response.

        Returns
        -------
        str
            The model's text response.

        Raises
        ------
        metrocircuit.utils.errors.LLMError
            After every configured model / API version combination failed.
        """

    @abstractmethod
    async def vision_extract(self, image_bytes: bytes, prompt: str) -> str:
        """Extract text or structure from a PNG image.

        Raises
        ------
        metrocircuit.utils.errors.ProviderUnavailableError
            If the provider has no vision model configured.
        metrocircuit.utils.errors.LLMError
            If the API call fails.
        """

    @abstractmethod
    def supports_vision(self) -> bool:
        """Return ``True`` if this provider can process image inputs."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier, e.g. ``"gemini"`` or ``"openai"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if credentials are present (no network call)."""
