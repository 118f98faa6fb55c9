"""Query pipeline: route → retrieve → re-rank → draft → verify.

Retrieval is a full scan of the (filtered) corpus scored by :class:`Scorer`.
When the query embedding is unavailable the scan is purely lexical and the
result reports ``search_mode = lexical``; every later stage has its own
fallback, so a query always produces an answer.
"""

from __future__ import annotations

import structlog

from metrocircuit.models.document import Chunk, QueryLog
from metrocircuit.models.query import QueryRequest, QueryResult, SearchMode
from metrocircuit.services.embedding_client import EmbeddingClient
from metrocircuit.services.query.answer_drafter import AnswerDrafter
from metrocircuit.services.query.reranker_agent import RerankerAgent
from metrocircuit.services.query.router_agent import RouterAgent
from metrocircuit.services.query.verification_agent import VerificationAgent
from metrocircuit.services.repository import CorpusRepository
from metrocircuit.services.scorer import Scorer, tokenize_query
from metrocircuit.utils.logging import get_logger


class QueryService:
    """Answers questions against the indexed corpus.

    Parameters
    ----------
    repository:
        Source of chunks and sink for query logs.
    scorer:
        Lexical / hybrid relevance scoring.
    embedding_client:
        Embeds the query; an empty vector switches retrieval to lexical.
    router, reranker, drafter, verifier:
        The agents of the pipeline, each with its own fallback.
    candidate_pool:
        Number of scored candidates handed to the re-ranker.
    max_match_count:
        Upper clamp for the requested match count.
    answer_log_max_chars:
        Answer length kept in the query log.
    """

    def __init__(
        self,
        repository: CorpusRepository,
        scorer: Scorer,
        embedding_client: EmbeddingClient,
        router: RouterAgent,
        reranker: RerankerAgent,
        drafter: AnswerDrafter,
        verifier: VerificationAgent,
        candidate_pool: int = 20,
        max_match_count: int = 50,
        answer_log_max_chars: int = 1000,
    ) -> None:
        self._repo = repository
        self._scorer = scorer
        self._embeddings = embedding_client
        self._router = router
        self._reranker = reranker
        self._drafter = drafter
        self._verifier = verifier
        self._candidate_pool = candidate_pool
        self._max_match_count = max_match_count
        self._answer_log_max_chars = answer_log_max_chars
        self._logger: structlog.BoundLogger = get_logger(__name__)

    async def answer(self, request: QueryRequest) -> QueryResult:
        k = max(1, min(request.match_count, self._max_match_count))
        decision = await self._router.route(request.query, request.output_mode)

        query_embedding = await self._embeddings.embed(request.query) if self._embeddings.is_configured else []
        search_mode = SearchMode.HYBRID if query_embedding else SearchMode.LEXICAL

        chunks = await self._candidate_chunks(request)
        terms = _search_terms(request.query, decision.expanded_keywords)
        ranked = self._scorer.rank(
            self._scorer.score_all(chunks, terms, request.query, query_embedding or None)
        )
        candidates = ranked[: self._candidate_pool]

        matches, reranked = await self._reranker.rerank(request.query, candidates, k)
        draft = await self._drafter.draft(request.query, matches, request.output_mode, decision.intent)
        verification = await self._verifier.verify(request.query, draft, matches, request.output_mode)

        result = QueryResult(
            answer=verification.answer,
            matches=matches,
            intent=decision.intent,
            expanded_keywords=decision.expanded_keywords,
            search_mode=search_mode,
            output_mode=request.output_mode,
            reranked=reranked,
            verified=verification.verified,
            corrected=verification.corrected,
        )
        self._logger.info(
            "query_answered",
            intent=decision.intent.value,
            search_mode=search_mode.value,
            scanned=len(chunks),
            candidates=len(candidates),
            matches=len(matches),
            reranked=reranked,
            corrected=verification.corrected,
        )
        await self._log_query(request, result)
        return result

    async def _candidate_chunks(self, request: QueryRequest) -> list[Chunk]:
        """Chunks in scope for *request*, after document, folder and tag filters."""
        if request.document_id:
            await self._repo.require_document(request.document_id)
            chunks = await self._repo.all_chunks([request.document_id])
        elif request.folder_id:
            documents = await self._repo.list_documents(folder_id=request.folder_id)
            chunks = await self._repo.all_chunks([d.id for d in documents])
        else:
            chunks = await self._repo.all_chunks()

        panel = request.filter_panel.strip().lower()
        voltage = request.filter_voltage.strip().lower()
        if panel:
            chunks = [c for c in chunks if panel in c.extracted_tags.panel.lower()]
        if voltage:
            chunks = [c for c in chunks if voltage in c.extracted_tags.voltage.lower()]
        return chunks

    async def _log_query(self, request: QueryRequest, result: QueryResult) -> None:
        entry = QueryLog(
            query=request.query,
            answer=result.answer[: self._answer_log_max_chars],
            match_count=len(result.matches),
            output_mode=result.output_mode.value,
            search_mode=result.search_mode.value,
        )
        try:
            await self._repo.append_query_log(entry)
        except Exception as exc:
            self._logger.warning("query_log_failed", error=f"{type(exc).__name__}: {exc}"[:200])


def _search_terms(query: str, keywords: list[str]) -> list[str]:
    """Query terms followed by router keywords not already present."""
    terms = tokenize_query(query)
    for keyword in keywords:
        term = " ".join(keyword.lower().split())
        if term and term not in terms:
            terms.append(term)
    return terms

