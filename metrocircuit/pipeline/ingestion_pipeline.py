"""Resumable, time-bounded ingestion of one document.

Long documents take longer to segment and tag than a single invocation may
run, so ingestion is split into steps:

``process_document``
    Fetch the source, run the extraction chain, split the text into pages,
    persist the pages as size-bounded groups together with an
    :class:`IngestionState`, then run the first batch step.
``process_batch``
    Continue from ``processed_pages`` until the invocation budget is used
    up, appending chunks page by page, and persist the new progress.  The
    caller (CLI or front-end) polls it while the outcome is ``in_progress``.
``embed_chunks``
    Backfill embeddings for chunks stored without one, under the same
    time guard.

Nothing about a run lives in memory between invocations: every step reads
the persisted state, does bounded work and writes it back.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

import structlog

from metrocircuit.interfaces.document_source import IDocumentSource
from metrocircuit.models.document import Chunk, DocumentStatus
from metrocircuit.models.ingestion import (
    BatchOutcome,
    BatchStatus,
    EmbeddingOutcome,
    EmbeddingStatus,
    IngestionPhase,
    IngestionState,
    Page,
    ProcessStatus,
)
from metrocircuit.pipeline.context import InvocationContext
from metrocircuit.pipeline.state_machine import status_for, transition
from metrocircuit.services.embedding_client import EmbeddingClient
from metrocircuit.services.repository import CorpusRepository
from metrocircuit.services.segmenter import Segmenter
from metrocircuit.services.tag_extractor import TagExtractor
from metrocircuit.services.text_extraction_service import TextExtractionService
from metrocircuit.utils.errors import (
    ExtractionShortfallError,
    PipelineError,
    ProviderUnavailableError,
    SourceError,
)
from metrocircuit.utils.logging import get_logger

Sleep = Callable[[float], Awaitable[None]]


class _RateLimiter:
    """Pauses for a fixed time after every ``every`` outbound calls."""

    def __init__(self, every: int, pause_seconds: float, sleep: Sleep) -> None:
        self._every = every
        self._pause = pause_seconds
        self._sleep = sleep
        self._calls = 0

    async def tick(self) -> None:
        self._calls += 1
        if self._every > 0 and self._pause > 0 and self._calls % self._every == 0:
            await self._sleep(self._pause)


class IngestionStateMachine:
    """Drives documents through extraction, pagination and batched chunking.

    Parameters
    ----------
    repository:
        Typed access to documents, chunks, state and page groups.
    source:
        Where document bytes are fetched from.
    text_extraction:
        Ordered extraction strategy chain.
    segmenter:
        Page and fragment splitter.
    tag_extractor:
        Per-chunk domain tag extraction.
    embedding_client:
        Used by the backfill pass and, with ``embed_on_ingest``, per chunk.
    page_group_max_bytes:
        Ceiling on the serialized size of one persisted page group.
    rate_limit_every, rate_limit_pause_seconds:
        Fixed pause after every N LLM or embedding calls.
    embed_on_ingest:
        Embed each chunk while batching instead of in a separate pass.
    run_first_batch:
        Run one batch step at the end of ``process_document``.
    sleep:
        Awaitable sleep; injectable for tests.
    """

    def __init__(
        self,
        repository: CorpusRepository,
        source: IDocumentSource,
        text_extraction: TextExtractionService,
        segmenter: Segmenter,
        tag_extractor: TagExtractor,
        embedding_client: EmbeddingClient,
        page_group_max_bytes: int = 8000,
        rate_limit_every: int = 5,
        rate_limit_pause_seconds: float = 1.0,
        embed_on_ingest: bool = False,
        run_first_batch: bool = True,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._repo = repository
        self._source = source
        self._text_extraction = text_extraction
        self._segmenter = segmenter
        self._tags = tag_extractor
        self._embeddings = embedding_client
        self._page_group_max_bytes = page_group_max_bytes
        self._rate_limit_every = rate_limit_every
        self._rate_limit_pause = rate_limit_pause_seconds
        self._embed_on_ingest = embed_on_ingest
        self._run_first_batch = run_first_batch
        self._sleep = sleep
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    async def process_document(self, document_id: str, ctx: InvocationContext) -> BatchOutcome:
        """Start a fresh ingestion run for *document_id*.

        Returns
        -------
        BatchOutcome
            The first batch step's outcome, or an ``error`` outcome when no
            extraction strategy produced enough text.

        Raises
        ------
        DocumentNotFoundError
            For an unknown document id.
        SourceError
            When the source file cannot be read; the document is marked
            ``error`` first.
        """
        document = await self._repo.require_document(document_id)
        await self._repo.delete_state(document_id)

        phase = transition(IngestionPhase.NOT_STARTED, IngestionPhase.EXTRACTING)
        await self._repo.update_document(document_id, status=status_for(phase), error_message=None)
        self._logger.info("ingestion_started", document_id=document_id, name=document.name)

        try:
            data, source_mime = await self._source.fetch_bytes(document.source_ref)
        except SourceError as exc:
            message = f"Document '{document.name}' could not be read: {exc.message}"
            await self._fail(document_id, phase, message)
            raise SourceError(message, provider_name=exc.provider_name) from exc

        mime_type = source_mime if source_mime != "application/octet-stream" else document.mime_type
        try:
            extracted = await self._text_extraction.extract(data, mime_type)
        except ExtractionShortfallError as exc:
            await self._repo.delete_chunks(document_id)
            await self._fail(document_id, phase, exc.message)
            return BatchOutcome(document_id=document_id, status=BatchStatus.ERROR, message=exc.message)

        phase = transition(phase, IngestionPhase.PAGINATING)
        await self._repo.update_document(document_id, status=status_for(phase))
        pages = self._segmenter.split_into_pages(extracted.text)
        await self._repo.delete_chunks(document_id)
        group_count = await self._repo.save_pages(document_id, pages, self._page_group_max_bytes)

        phase = transition(phase, IngestionPhase.BATCHING)
        await self._repo.save_state(
            IngestionState(
                document_id=document_id,
                total_pages=len(pages),
                page_group_count=group_count,
                phase=phase,
            )
        )
        await self._repo.update_document(
            document_id,
            status=status_for(phase),
            page_count=len(pages),
            chunk_count=0,
        )
        self._logger.info(
            "document_paginated",
            document_id=document_id,
            strategy=extracted.strategy,
            pages=len(pages),
            page_groups=group_count,
        )

        if self._run_first_batch:
            return await self.process_batch(document_id, ctx)
        return BatchOutcome(
            document_id=document_id,
            status=BatchStatus.IN_PROGRESS,
            total_pages=len(pages),
            message=f"Extracted {len(pages)} pages; ready for batch processing",
        )

    async def process_batch(self, document_id: str, ctx: InvocationContext) -> BatchOutcome:
        """Process pages from the persisted position until the budget runs out.

        At least one page is processed per call.  A page's existing chunks
        are deleted before its new chunks are written, so repeating a step
        after a crash does not duplicate chunks.
        """
        state = await self._repo.get_state(document_id)
        if state is None:
            return await self._outcome_without_state(document_id)

        pages = await self._repo.load_pages(document_id)
        if len(pages) != state.total_pages:
            raise PipelineError(
                f"Stored pages for document '{document_id}' are incomplete "
                f"({len(pages)} of {state.total_pages})"
            )

        limiter = _RateLimiter(self._rate_limit_every, self._rate_limit_pause, self._sleep)
        processed = state.processed_pages
        total_chunks = state.total_chunks
        created = 0

        while processed < state.total_pages:
            if processed > state.processed_pages and ctx.out_of_time():
                break
            page = pages[processed]
            chunks = await self._build_page_chunks(document_id, page, total_chunks, limiter)
            await self._repo.delete_chunks(document_id, page.number)
            await self._repo.append_chunks(chunks)
            processed += 1
            total_chunks += len(chunks)
            created += len(chunks)

        if processed >= state.total_pages:
            transition(state.phase, IngestionPhase.INDEXED)
            await self._repo.delete_state(document_id)
            await self._repo.update_document(
                document_id,
                status=DocumentStatus.INDEXED,
                page_count=state.total_pages,
                chunk_count=total_chunks,
                error_message=None,
            )
            self._logger.info(
                "ingestion_complete",
                document_id=document_id,
                pages=state.total_pages,
                chunks=total_chunks,
                elapsed=round(ctx.elapsed(), 2),
            )
            return BatchOutcome(
                document_id=document_id,
                status=BatchStatus.INDEXED,
                processed_pages=state.total_pages,
                total_pages=state.total_pages,
                total_chunks=total_chunks,
                chunks_created=created,
                message=f"Indexed {state.total_pages} pages into {total_chunks} chunks",
            )

        state = state.model_copy(
            update={
                "processed_pages": processed,
                "total_chunks": total_chunks,
                "phase": transition(state.phase, IngestionPhase.BATCHING),
            }
        )
        await self._repo.save_state(state)
        await self._repo.update_document(document_id, chunk_count=total_chunks)
        self._logger.info(
            "batch_step_complete",
            document_id=document_id,
            processed_pages=processed,
            total_pages=state.total_pages,
            chunks_created=created,
            elapsed=round(ctx.elapsed(), 2),
        )
        return BatchOutcome(
            document_id=document_id,
            status=BatchStatus.IN_PROGRESS,
            processed_pages=processed,
            total_pages=state.total_pages,
            total_chunks=total_chunks,
            chunks_created=created,
            message=f"Processed {processed}/{state.total_pages} pages",
        )

    async def get_status(self, document_id: str) -> ProcessStatus:
        """Progress snapshot for polling clients."""
        document = await self._repo.require_document(document_id)
        state = await self._repo.get_state(document_id)
        if state is not None:
            return ProcessStatus(
                document_id=document_id,
                status=document.status.value,
                processed_pages=state.processed_pages,
                total_pages=state.total_pages,
                total_chunks=state.total_chunks,
                message=f"Processed {state.processed_pages}/{state.total_pages} pages",
            )
        processed = document.page_count if document.status == DocumentStatus.INDEXED else 0
        return ProcessStatus(
            document_id=document_id,
            status=document.status.value,
            processed_pages=processed,
            total_pages=document.page_count,
            total_chunks=document.chunk_count,
            message=document.error_message or "",
        )

    async def embed_chunks(self, document_id: str, ctx: InvocationContext) -> EmbeddingOutcome:
        """Embed stored chunks that have no embedding yet, within the budget.

        Chunks never attempted go first; chunks whose earlier attempts came
        back empty follow, fewest failures first.  An empty result counts as
        ``failed`` and bumps the chunk's persisted failure count, so the next
        step starts past it.  ``remaining`` counts only never-attempted
        chunks, and the backfill is ``complete`` once there are none.

        Raises
        ------
        ProviderUnavailableError
            When no embedding provider is configured.
        """
        await self._repo.require_document(document_id)
        if not self._embeddings.is_configured:
            raise ProviderUnavailableError("No embedding provider is configured")

        pending = sorted(
            (c for c in await self._repo.chunks_for_document(document_id) if not c.has_embedding),
            key=lambda c: c.embedding_failures,
        )
        limiter = _RateLimiter(self._rate_limit_every, self._rate_limit_pause, self._sleep)
        attempted: set[str] = set()
        embedded = failed = 0

        for chunk in pending:
            if attempted and ctx.out_of_time():
                break
            attempted.add(chunk.id)
            vector = await self._embeddings.embed(chunk.content)
            await limiter.tick()
            if vector:
                await self._repo.set_chunk_embedding(chunk.id, vector)
                embedded += 1
            else:
                await self._repo.record_embedding_failure(chunk)
                failed += 1

        remaining = sum(1 for c in pending if c.embedding_failures == 0 and c.id not in attempted)
        retry_later = sum(1 for c in pending if c.embedding_failures > 0 and c.id not in attempted)
        status = EmbeddingStatus.COMPLETE if remaining == 0 else EmbeddingStatus.IN_PROGRESS
        self._logger.info(
            "embedding_step_complete",
            document_id=document_id,
            embedded=embedded,
            failed=failed,
            remaining=remaining,
            retry_later=retry_later,
        )
        message = f"Embedded {embedded} chunks"
        if failed:
            message += f"; {failed} could not be embedded"
        if retry_later:
            message += f"; {retry_later} earlier failures not retried"
        return EmbeddingOutcome(
            document_id=document_id,
            status=status,
            embedded=embedded,
            failed=failed,
            remaining=remaining,
            message=message,
        )

    async def delete_document(self, document_id: str) -> int:
        """Delete a document with its chunks and any in-progress state."""
        await self._repo.require_document(document_id)
        return await self._repo.delete_document(document_id)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _build_page_chunks(
        self,
        document_id: str,
        page: Page,
        first_sequence: int,
        limiter: _RateLimiter,
    ) -> list[Chunk]:
        chunks: list[Chunk] = []
        fragments = self._segmenter.segment_page(page.text, page.number)
        for offset, fragment in enumerate(fragments):
            tags = await self._tags.extract(fragment.body)
            if self._tags.uses_llm:
                await limiter.tick()
            embedding: list[float] = []
            if self._embed_on_ingest and self._embeddings.is_configured:
                embedding = await self._embeddings.embed(fragment.content)
                await limiter.tick()
            chunks.append(
                Chunk(
                    document_id=document_id,
                    content=fragment.content,
                    page_number=page.number,
                    sequence=first_sequence + offset,
                    extracted_tags=tags,
                    embedding=embedding,
                )
            )
        return chunks

    async def _outcome_without_state(self, document_id: str) -> BatchOutcome:
        """Answer a batch request for a document with no run in progress."""
        document = await self._repo.require_document(document_id)
        if document.status == DocumentStatus.INDEXED:
            return BatchOutcome(
                document_id=document_id,
                status=BatchStatus.INDEXED,
                processed_pages=document.page_count,
                total_pages=document.page_count,
                total_chunks=document.chunk_count,
                message="Document is already indexed",
            )
        if document.status == DocumentStatus.ERROR:
            return BatchOutcome(
                document_id=document_id,
                status=BatchStatus.ERROR,
                message=document.error_message or "Ingestion failed",
            )
        raise PipelineError(f"No ingestion in progress for document '{document_id}'")

    async def _fail(self, document_id: str, phase: IngestionPhase, message: str) -> None:
        phase = transition(phase, IngestionPhase.ERROR)
        await self._repo.delete_state(document_id)
        await self._repo.update_document(document_id, status=status_for(phase), error_message=message)
        self._logger.error("ingestion_failed", document_id=document_id, error=message)
