"""Embedding provider adapters."""

from metrocircuit.providers.embedding.gemini_embedding_provider import GeminiEmbeddingProvider
from metrocircuit.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider

__all__ = ["GeminiEmbeddingProvider", "OpenAIEmbeddingProvider"]
