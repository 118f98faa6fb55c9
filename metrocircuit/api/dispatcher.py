"""Action dispatch for the single ``POST /api/v1/action`` endpoint.

=====================  =====================================================
``process_document``   start ingestion and run the first batch step
``process_batch``      continue ingestion from the persisted position
``get_process_status`` ingestion progress snapshot
``embed_chunks``       embedding backfill step
``query``              run the query pipeline
``sync_source``        register new files from the document source
``delete_document``    delete a document with its chunks and state
``health``             provider availability
=====================  =====================================================

Every call gets its own :class:`InvocationContext`.  Caller mistakes raise
:class:`InputValidationError`; the route turns any ``MetroCircuitError`` into
an ``{"error": message}`` payload.
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

import structlog
from pydantic import ValidationError

from metrocircuit import __version__
from metrocircuit.api.schemas import (
    ActionRequest,
    EmbedResponse,
    HealthResponse,
    ProcessResponse,
    QueryResponse,
    SyncResponse,
)
from metrocircuit.models.query import OutputMode, QueryRequest
from metrocircuit.pipeline.context import InvocationContext
from metrocircuit.pipeline.ingestion_pipeline import IngestionStateMachine
from metrocircuit.services.query.query_service import QueryService
from metrocircuit.services.sync_service import SyncService
from metrocircuit.utils.errors import InputValidationError

logger = structlog.get_logger(logger_name=__name__)

Handler = Callable[[ActionRequest, InvocationContext], Awaitable[dict[str, Any]]]


class ActionDispatcher:
    """Validates action payloads and routes them to the pipeline services.

    Parameters
    ----------
    pipeline:
        Ingestion state machine.
    query_service:
        Query pipeline.
    sync_service:
        Source folder registration.
    budget_seconds:
        Time budget given to every invocation.
    provider_registry:
        Provider availability reported by ``health``.
    clock:
        Clock handed to each invocation context.
    default_match_count:
        Match count used when a query does not give one.
    """

    def __init__(
        self,
        pipeline: IngestionStateMachine,
        query_service: QueryService,
        sync_service: SyncService,
        budget_seconds: float = 240.0,
        provider_registry: Mapping[str, Any] | None = None,
        clock: Callable[[], float] = time.monotonic,
        default_match_count: int = 8,
    ) -> None:
        self._pipeline = pipeline
        self._query = query_service
        self._sync = sync_service
        self._budget = budget_seconds
        self._providers = dict(provider_registry or {})
        self._clock = clock
        self._default_match_count = default_match_count
        self._handlers: dict[str, Handler] = {
            "process_document": self._process_document,
            "process_batch": self._process_batch,
            "get_process_status": self._get_process_status,
            "embed_chunks": self._embed_chunks,
            "query": self._run_query,
            "sync_source": self._sync_source,
            "delete_document": self._delete_document,
            "health": self._health,
        }

    @property
    def actions(self) -> list[str]:
        return list(self._handlers)

    async def dispatch(self, payload: Mapping[str, Any]) -> dict[str, Any]:
        """Run the action named in *payload* and return its JSON payload.

        Raises
        ------
        InputValidationError
            For a malformed payload, an unknown action or a missing parameter.
        """
        try:
            request = ActionRequest.model_validate(payload)
        except ValidationError as exc:
            fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in exc.errors())
            raise InputValidationError(f"Invalid request parameters: {fields}") from exc

        handler = self._handlers.get(request.action)
        if handler is None:
            raise InputValidationError(f"Unknown action '{request.action}'")

        with InvocationContext(
            action=request.action,
            budget_seconds=self._budget,
            clock=self._clock,
        ) as ctx:
            ctx.logger.info("action_received", document_id=request.document_id)
            return await handler(request, ctx)

    def health(self) -> HealthResponse:
        llm_ok = bool(self._providers.get("llm_available"))
        embedding_ok = bool(self._providers.get("embedding_available"))
        status = "healthy" if llm_ok and embedding_ok else "degraded"
        return HealthResponse(status=status, version=__version__, providers=dict(self._providers))

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def _process_document(self, request: ActionRequest, ctx: InvocationContext) -> dict[str, Any]:
        outcome = await self._pipeline.process_document(_require_document_id(request), ctx)
        return ProcessResponse.from_outcome(outcome).to_payload()

    async def _process_batch(self, request: ActionRequest, ctx: InvocationContext) -> dict[str, Any]:
        outcome = await self._pipeline.process_batch(_require_document_id(request), ctx)
        return ProcessResponse.from_outcome(outcome).to_payload()

    async def _get_process_status(self, request: ActionRequest, ctx: InvocationContext) -> dict[str, Any]:
        status = await self._pipeline.get_status(_require_document_id(request))
        return ProcessResponse.from_status(status).to_payload()

    async def _embed_chunks(self, request: ActionRequest, ctx: InvocationContext) -> dict[str, Any]:
        outcome = await self._pipeline.embed_chunks(_require_document_id(request), ctx)
        return EmbedResponse.from_outcome(outcome).to_payload()

    async def _run_query(self, request: ActionRequest, ctx: InvocationContext) -> dict[str, Any]:
        query = (request.query or "").strip()
        if not query:
            raise InputValidationError("query is required")
        try:
            output_mode = OutputMode((request.output_type or "text").strip().lower())
        except ValueError as exc:
            modes = ", ".join(m.value for m in OutputMode)
            raise InputValidationError(f"outputType must be one of: {modes}") from exc
        match_count = request.match_count if request.match_count is not None else self._default_match_count
        if match_count < 1:
            raise InputValidationError("matchCount must be at least 1")

        result = await self._query.answer(
            QueryRequest(
                query=query,
                output_mode=output_mode,
                filter_panel=request.filter_panel or "",
                filter_voltage=request.filter_voltage or "",
                match_count=match_count,
                folder_id=request.folder_id or None,
                document_id=request.document_id or None,
            )
        )
        return QueryResponse.from_result(result).to_payload()

    async def _sync_source(self, request: ActionRequest, ctx: InvocationContext) -> dict[str, Any]:
        created = await self._sync.sync(folder_ref=request.folder_ref, folder_id=request.folder_id)
        return SyncResponse(
            created=len(created),
            documents=[d.model_dump(mode="json") for d in created],
        ).to_payload()

    async def _delete_document(self, request: ActionRequest, ctx: InvocationContext) -> dict[str, Any]:
        document_id = _require_document_id(request)
        removed = await self._pipeline.delete_document(document_id)
        return {"success": True, "documentId": document_id, "chunksDeleted": removed}

    async def _health(self, request: ActionRequest, ctx: InvocationContext) -> dict[str, Any]:
        return self.health().model_dump()


def _require_document_id(request: ActionRequest) -> str:
    document_id = (request.document_id or "").strip()
    if not document_id:
        raise InputValidationError(f"documentId is required for '{request.action}'")
    return document_id
