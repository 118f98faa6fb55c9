"""Abstract base class for text-embedding providers."""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations: GeminiEmbeddingProvider, OpenAIEmbeddingProvider
# Located in: metrocircuit/providers/embedding/
class IEmbeddingProvider(ABC):
    """Contract for embedding services used for chunks and queries.

    Callers go through :class:`~metrocircuit.services.embedding_client.EmbeddingClient`,
    which turns provider failures into an empty vector.
    """

    @abstractmethod
    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Generate embedding vectors for a batch of texts.

        Returns
        -------
        list[list[float]]
            Vectors corresponding positionally to *texts*.

        Raises
        ------
        metrocircuit.utils.errors.EmbeddingError
            If every endpoint of this provider failed.
        """

    @abstractmethod
    async def embed_single(self, text: str) -> list[float]:
        """Generate an embedding vector for one text string."""

    @abstractmethod
    def get_dimension(self) -> int:
        """Return the dimensionality of the vectors this provider produces."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier, e.g. ``"gemini-embedding"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider is configured."""
