"""LLM re-ranking of retrieval candidates.

The model sees a numbered, truncated preview of every candidate and returns
a JSON array of indices, most relevant first.  Indices are validated and
de-duplicated; the survivors (at most ``k``) get a synthetic descending
score ``(k - i) / k``.  Any failure falls back to the top ``k`` candidates in
their retrieval order.
"""

from __future__ import annotations

from collections.abc import Sequence

import structlog

from metrocircuit.interfaces.llm_provider import ILLMProvider
from metrocircuit.models.query import ScoredChunk
from metrocircuit.utils.errors import MetroCircuitError, ResponseParseError
from metrocircuit.utils.llm_json import parse_json_array

logger = structlog.get_logger(logger_name=__name__)

_SYSTEM_PROMPT = (
    "You rank excerpts from metro electrical drawings by how well they answer a "
    "question. Return ONLY a JSON array of excerpt numbers."
)


class RerankerAgent:
    """Reorders candidates with one LLM call.

    Parameters
    ----------
    llm:
        Provider for the ranking call, or ``None`` to keep score order.
    preview_chars:
        Characters of each candidate shown to the model.
    """

    def __init__(self, llm: ILLMProvider | None, preview_chars: int = 400) -> None:
        self._llm = llm
        self._preview_chars = preview_chars

    async def rerank(
        self, query: str, candidates: Sequence[ScoredChunk], k: int
    ) -> tuple[list[ScoredChunk], bool]:
        """Return ``(top_k, reranked)``.

        ``reranked`` is False when the call was skipped or failed and the
        candidates' own order was kept.
        """
        top_k = list(candidates[:k])
        if len(candidates) <= k or self._llm is None:
            return top_k, False

        try:
            response = await self._llm.complete(
                system_prompt=_SYSTEM_PROMPT,
                user_prompt=self._build_prompt(query, candidates, k),
                temperature=0.0,
                max_tokens=200,
            )
            order = self._valid_indices(parse_json_array(response), len(candidates), k)
        except MetroCircuitError as exc:
            logger.warning("rerank_fallback", error=str(exc)[:200])
            return top_k, False
        except Exception as exc:  # transport errors from the SDKs
            logger.warning("rerank_fallback", error=f"{type(exc).__name__}: {exc}"[:200])
            return top_k, False

        reranked = [
            candidates[index].model_copy(update={"score": (k - position) / k})
            for position, index in enumerate(order)
        ]
        logger.info("rerank_complete", candidates=len(candidates), kept=len(reranked))
        return reranked, True

    def _build_prompt(self, query: str, candidates: Sequence[ScoredChunk], k: int) -> str:
        lines = [f"QUESTION: {query}", "", "EXCERPTS:"]
        for index, candidate in enumerate(candidates):
            preview = " ".join(candidate.chunk.content[: self._preview_chars].split())
            lines.append(f"[{index}] {preview}")
        lines.append("")
        lines.append(
            f"Return the numbers of the {k} most relevant excerpts, most relevant first, "
            "as a JSON array of integers such as [3, 0, 7]."
        )
        return "\n".join(lines)

    @staticmethod
    def _valid_indices(raw: list[object], count: int, k: int) -> list[int]:
        """In-range, de-duplicated integer indices, at most *k* of them."""
        order: list[int] = []
        for value in raw:
            if isinstance(value, bool):
                continue
            if isinstance(value, float) and value.is_integer():
                value = int(value)
            elif isinstance(value, str) and value.strip().isdigit():
                value = int(value.strip())
            if isinstance(value, int) and 0 <= value < count and value not in order:
                order.append(value)
            if len(order) == k:
                break
        if not order:
            raise ResponseParseError("Re-rank response contained no valid indices")
        return order
