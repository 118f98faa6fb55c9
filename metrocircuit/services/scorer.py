"""Hybrid lexical + vector relevance scoring over a fully scanned chunk set.

The lexical score is a clamped weighted sum of five signals:

============  =============================================================
phrase        the whole (normalized) query appears verbatim
term          per-term containment plus a saturating frequency bonus
coverage      share of query terms that appear at all
bigram        share of adjacent query-term pairs that appear verbatim
proximity     two distinct terms occur within a short character window
============  =============================================================

When both the chunk and the query carry an embedding of equal length, the
final score is ``vector_weight * cosine + lexical_weight * lexical``; a chunk
without an embedding is scored on its lexical score alone, unpenalized.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

import numpy as np
import structlog

from metrocircuit.config.domain_knowledge import QUERY_STOPWORDS
from metrocircuit.models.document import Chunk
from metrocircuit.models.query import ScoredChunk

logger = structlog.get_logger(logger_name=__name__)

_TOKEN_RE = re.compile(r"[a-z0-9][a-z0-9./-]*[a-z0-9]|[a-z0-9]")


@dataclass(frozen=True)
class ScoringWeights:
    """Tunable constants; defaults mirror ``config/config.yaml``."""

    phrase: float = 0.35
    term: float = 0.25
    coverage: float = 0.20
    bigram: float = 0.10
    proximity: float = 0.10
    vector_weight: float = 0.6
    lexical_weight: float = 0.4
    floor: float = 0.05
    proximity_window: int = 80
    frequency_saturation: int = 3

    @classmethod
    def from_config(cls, section: Mapping[str, Any] | None) -> ScoringWeights:
        """Build weights from the ``scoring`` config section, ignoring unknown keys."""
        if not section:
            return cls()
        known = {k: v for k, v in section.items() if k in cls.__dataclass_fields__}
        return cls(**known)


@dataclass(frozen=True)
class ScoreBreakdown:
    lexical: float
    vector: float | None
    combined: float


def normalize_text(text: str) -> str:
    """Lowercase and collapse whitespace."""
    return " ".join(text.lower().split())


def tokenize_query(query: str) -> list[str]:
    """Split a query into unique lowercase terms, dropping stopwords and 1-char noise."""
    terms: list[str] = []
    for token in _TOKEN_RE.findall(query.lower()):
        if len(token) < 2 or token in QUERY_STOPWORDS or token in terms:
            continue
        terms.append(token)
    return terms


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine of the angle between *a* and *b*.

    Returns 0.0 for empty or mismatched vectors and when either norm is 0.
    """
    if len(a) == 0 or len(a) != len(b):
        return 0.0
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    norm_a = float(np.linalg.norm(va))
    norm_b = float(np.linalg.norm(vb))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    similarity = float(np.dot(va, vb)) / (norm_a * norm_b)
    return max(-1.0, min(1.0, similarity))


class Scorer:
    """Scores chunks against a query and ranks them.

    Parameters
    ----------
    weights:
        Signal weights, hybrid mix and floor.
    """

    def __init__(self, weights: ScoringWeights | None = None) -> None:
        self._weights = weights or ScoringWeights()

    @property
    def weights(self) -> ScoringWeights:
        return self._weights

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def lexical_score(self, content: str, terms: Sequence[str], query_text: str) -> float:
        """Weighted lexical relevance of *content*, clamped to ``[0, 1]``."""
        w = self._weights
        haystack = normalize_text(content)
        if not haystack:
            return 0.0

        score = 0.0
        phrase = normalize_text(query_text)
        if phrase and phrase in haystack:
            score += w.phrase

        terms = [t.lower() for t in terms if t]
        if terms:
            matched = 0
            term_total = 0.0
            for term in terms:
                count = haystack.count(term)
                if count:
                    matched += 1
                    bonus = min(count - 1, w.frequency_saturation) / w.frequency_saturation
                    term_total += 0.7 + 0.3 * bonus
            score += w.term * (term_total / len(terms))
            score += w.coverage * (matched / len(terms))

            bigrams = [f"{a} {b}" for a, b in zip(terms, terms[1:])]
            if bigrams:
                hits = sum(1 for bigram in bigrams if bigram in haystack)
                score += w.bigram * (hits / len(bigrams))

            if self._terms_near(haystack, terms):
                score += w.proximity

        return min(score, 1.0)

    def score(
        self,
        chunk: Chunk,
        terms: Sequence[str],
        query_text: str,
        query_embedding: Sequence[float] | None = None,
    ) -> ScoreBreakdown:
        """Combined score for one chunk.

        The vector term applies only when both embeddings are present and of
        equal dimensionality; otherwise ``combined == lexical`` exactly.
        """
        lexical = self.lexical_score(chunk.content, terms, query_text)
        if (
            query_embedding
            and chunk.embedding
            and len(chunk.embedding) == len(query_embedding)
        ):
            vector = cosine_similarity(chunk.embedding, query_embedding)
            combined = self._weights.vector_weight * vector + self._weights.lexical_weight * lexical
            return ScoreBreakdown(lexical=lexical, vector=vector, combined=max(0.0, min(1.0, combined)))
        return ScoreBreakdown(lexical=lexical, vector=None, combined=lexical)

    def score_all(
        self,
        chunks: Iterable[Chunk],
        terms: Sequence[str],
        query_text: str,
        query_embedding: Sequence[float] | None = None,
    ) -> list[ScoredChunk]:
        """Score every chunk, keeping retrieval order in ``retrieval_rank``."""
        scored: list[ScoredChunk] = []
        for rank, chunk in enumerate(chunks):
            breakdown = self.score(chunk, terms, query_text, query_embedding)
            scored.append(
                ScoredChunk(
                    chunk=chunk,
                    score=breakdown.combined,
                    lexical_score=breakdown.lexical,
                    vector_score=breakdown.vector,
                    retrieval_rank=rank,
                )
            )
        return scored

    def rank(self, scored: Iterable[ScoredChunk]) -> list[ScoredChunk]:
        """Drop chunks below the floor and sort descending; ties keep input order."""
        kept = [s for s in scored if s.score >= self._weights.floor]
        return sorted(kept, key=lambda s: s.score, reverse=True)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _terms_near(self, haystack: str, terms: Sequence[str]) -> bool:
        """True when two distinct terms start within the proximity window."""
        positions: list[tuple[int, str]] = []
        for term in set(terms):
            start = haystack.find(term)
            while start != -1:
                positions.append((start, term))
                start = haystack.find(term, start + 1)
        if len({term for _, term in positions}) < 2:
            return False
        positions.sort()
        for (pos_a, term_a), (pos_b, term_b) in zip(positions, positions[1:]):
            if term_a != term_b and pos_b - pos_a <= self._weights.proximity_window:
                return True
        return False
