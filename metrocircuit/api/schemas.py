"""Pydantic request/response schemas for the MetroCircuit action API.

The front-end sends camelCase parameters (``documentId``, ``outputType``,
``matchCount`` ...) and reads camelCase progress fields back.  Match rows keep
the snake_case column names of the chunk table (``page_number``,
``similarity``) because the front-end renders them as stored rows.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from metrocircuit.models.ingestion import BatchOutcome, EmbeddingOutcome, ProcessStatus
from metrocircuit.models.query import QueryResult, ScoredChunk


class ActionRequest(BaseModel):
    """Body of ``POST /api/v1/action``; unknown keys are ignored."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    action: str = Field(min_length=1)
    document_id: str | None = Field(default=None, alias="documentId")
    query: str | None = None
    output_type: str | None = Field(default=None, alias="outputType")
    filter_panel: str | None = Field(default=None, alias="filterPanel")
    filter_voltage: str | None = Field(default=None, alias="filterVoltage")
    match_count: int | None = Field(default=None, alias="matchCount")
    folder_id: str | None = Field(default=None, alias="folderId")
    folder_ref: str | None = Field(default=None, alias="folderRef")


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class ProcessResponse(_CamelModel):
    """Progress of an ingestion step, as polled by the front-end."""

    document_id: str = Field(alias="documentId")
    status: str
    pages_processed: int = Field(default=0, alias="pagesProcessed")
    total_pages: int = Field(default=0, alias="totalPages")
    total_chunks: int = Field(default=0, alias="totalChunks")
    chunks_created: int = Field(default=0, alias="chunksCreated")
    message: str = ""

    @classmethod
    def from_outcome(cls, outcome: BatchOutcome) -> ProcessResponse:
        return cls(
            document_id=outcome.document_id,
            status=outcome.status.value,
            pages_processed=outcome.processed_pages,
            total_pages=outcome.total_pages,
            total_chunks=outcome.total_chunks,
            chunks_created=outcome.chunks_created,
            message=outcome.message,
        )

    @classmethod
    def from_status(cls, status: ProcessStatus) -> ProcessResponse:
        return cls(
            document_id=status.document_id,
            status=status.status,
            pages_processed=status.processed_pages,
            total_pages=status.total_pages,
            total_chunks=status.total_chunks,
            message=status.message,
        )


class EmbedResponse(_CamelModel):
    document_id: str = Field(alias="documentId")
    status: str
    embedded: int = 0
    failed: int = 0
    remaining: int = 0
    message: str = ""

    @classmethod
    def from_outcome(cls, outcome: EmbeddingOutcome) -> EmbedResponse:
        return cls(
            document_id=outcome.document_id,
            status=outcome.status.value,
            embedded=outcome.embedded,
            failed=outcome.failed,
            remaining=outcome.remaining,
            message=outcome.message,
        )


class MatchRow(BaseModel):
    """One matched chunk with its tags flattened."""

    id: str
    document_id: str
    content: str
    page_number: int
    similarity: float
    panel: str = ""
    voltage: str = ""
    components: list[str] = Field(default_factory=list)
    connections: list[dict[str, str]] = Field(default_factory=list)

    @classmethod
    def from_scored(cls, scored: ScoredChunk) -> MatchRow:
        chunk = scored.chunk
        tags = chunk.extracted_tags
        return cls(
            id=chunk.id,
            document_id=chunk.document_id,
            content=chunk.content,
            page_number=chunk.page_number,
            similarity=round(scored.score, 4),
            panel=tags.panel,
            voltage=tags.voltage,
            components=list(tags.components),
            connections=[c.model_dump(by_alias=True) for c in tags.connections],
        )


class QueryResponse(_CamelModel):
    answer: str
    matches: list[MatchRow] = Field(default_factory=list)
    match_count: int = Field(default=0, alias="matchCount")
    search_mode: str = Field(alias="searchMode")
    output_type: str = Field(alias="outputType")
    intent: str
    expanded_keywords: list[str] = Field(default_factory=list, alias="expandedKeywords")
    reranked: bool = False
    verified: bool = False
    corrected: bool = False

    @classmethod
    def from_result(cls, result: QueryResult) -> QueryResponse:
        return cls(
            answer=result.answer,
            matches=[MatchRow.from_scored(m) for m in result.matches],
            match_count=len(result.matches),
            search_mode=result.search_mode.value,
            output_type=result.output_mode.value,
            intent=result.intent.value,
            expanded_keywords=list(result.expanded_keywords),
            reranked=result.reranked,
            verified=result.verified,
            corrected=result.corrected,
        )


class SyncResponse(_CamelModel):
    created: int
    documents: list[dict[str, Any]] = Field(default_factory=list)


class HealthResponse(BaseModel):
    """Application health check response."""

    status: str
    version: str
    providers: dict[str, Any]


class ErrorResponse(BaseModel):
    error: str
