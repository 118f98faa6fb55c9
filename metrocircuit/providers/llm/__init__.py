"""LLM provider adapters."""

from metrocircuit.providers.llm.chained_provider import ChainedLLMProvider
from metrocircuit.providers.llm.gemini_provider import GeminiLLMProvider
from metrocircuit.providers.llm.openai_provider import OpenAILLMProvider

__all__ = ["ChainedLLMProvider", "GeminiLLMProvider", "OpenAILLMProvider"]
