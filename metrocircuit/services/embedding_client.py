"""Embedding client that never raises.

Wraps one or more :class:`IEmbeddingProvider` instances in a fixed priority
order.  The first provider returning a non-empty vector wins; when every
provider fails the client returns ``[]``, which downstream code reads as
"score lexically".
"""

from __future__ import annotations

from collections.abc import Sequence

import structlog

from metrocircuit.interfaces.embedding_provider import IEmbeddingProvider
from metrocircuit.utils.errors import AllAttemptsFailedError
from metrocircuit.utils.fallback import Attempt, first_success

logger = structlog.get_logger(logger_name=__name__)


class EmbeddingClient:
    """Priority-ordered embedding with truncation and an empty-vector fallback.

    Parameters
    ----------
    providers:
        Providers in priority order; unavailable ones are skipped.
    max_chars:
        Inputs are cut to this many characters before sending.
    """

    def __init__(self, providers: Sequence[IEmbeddingProvider], max_chars: int = 8000) -> None:
        self._providers = list(providers)
        self._max_chars = max_chars

    @property
    def is_configured(self) -> bool:
        return any(p.is_available() for p in self._providers)

    async def embed(self, text: str) -> list[float]:
        """Return the embedding of *text*, or ``[]`` if no provider succeeded."""
        if not text or not text.strip():
            return []
        payload = text[: self._max_chars]
        attempts = [
            Attempt(name=p.get_provider_name(), run=lambda p=p: p.embed_single(payload))
            for p in self._providers
            if p.is_available()
        ]
        try:
            result = await first_success(attempts, accept=bool, label="embedding")
        except AllAttemptsFailedError as exc:
            logger.warning("embedding_unavailable", reasons=exc.failures)
            return []
        return list(result.value)
