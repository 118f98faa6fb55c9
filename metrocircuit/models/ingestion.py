"""Ingestion models: pages, fragments, persisted batch state and step outcomes.

``IngestionState`` is the only thing that carries progress between
invocations.  It is stored in the row-store after every batch step and read
back at the start of the next one; nothing about a run is held in memory.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


# ---------------------------------------------------------------------------
# IngestionPhase: explicit states of one ingestion run.
# ---------------------------------------------------------------------------
class IngestionPhase(str, Enum):  # noqa: UP042 (StrEnum requires Python 3.11+)
    """Phases of a document ingestion run.

        NOT_STARTED → EXTRACTING → PAGINATING → BATCHING → INDEXED
                   ↘             ↘            ↘          ↘
                                   ERROR

    Allowed moves are listed in :mod:`metrocircuit.pipeline.state_machine`.
    """

    NOT_STARTED = "NOT_STARTED"
    EXTRACTING = "EXTRACTING"
    PAGINATING = "PAGINATING"
    BATCHING = "BATCHING"
    INDEXED = "INDEXED"
    ERROR = "ERROR"


class Page(BaseModel):
    """One logical page of extracted document text."""

    model_config = ConfigDict(frozen=True)

    number: int = Field(ge=1)
    text: str


class Fragment(BaseModel):
    """A segmenter output unit before it becomes a stored chunk.

    ``body`` starts with ``overlap_chars`` characters repeated from the
    previous fragment; ``fresh_text`` is the remainder.
    """

    model_config = ConfigDict(frozen=True)

    page_number: int = Field(ge=1)
    body: str
    overlap_chars: int = Field(default=0, ge=0)

    @property
    def content(self) -> str:
        return f"[Page {self.page_number}] {self.body}"

    @property
    def fresh_text(self) -> str:
        return self.body[self.overlap_chars :]


class IngestionState(BaseModel):
    """Resumable progress of one ingestion run, keyed by document id."""

    model_config = ConfigDict(frozen=True)

    document_id: str
    total_pages: int = Field(ge=0)
    processed_pages: int = Field(default=0, ge=0)
    total_chunks: int = Field(default=0, ge=0)
    page_group_count: int = Field(default=0, ge=0)
    start_time: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    phase: IngestionPhase = IngestionPhase.PAGINATING

    @model_validator(mode="after")
    def _processed_within_total(self) -> IngestionState:
        if self.processed_pages > self.total_pages:
            raise ValueError(
                f"processed_pages ({self.processed_pages}) exceeds total_pages ({self.total_pages})"
            )
        return self

    @property
    def is_complete(self) -> bool:
        return self.processed_pages >= self.total_pages


class PageGroup(BaseModel):
    """A size-bounded slice of the page list persisted between batch steps.

    ``entries`` holds ``[page_number, text_part]`` pairs; a page too large
    for one group is stored as several consecutive parts.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    document_id: str
    index: int = Field(ge=0)
    entries: list[tuple[int, str]] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Step outcomes returned to callers
# ---------------------------------------------------------------------------
class BatchStatus(str, Enum):  # noqa: UP042 (StrEnum requires Python 3.11+)
    IN_PROGRESS = "in_progress"
    INDEXED = "indexed"
    ERROR = "error"


class BatchOutcome(BaseModel):
    """Result of ``process_document`` / ``process_batch`` / ``get_status``."""

    model_config = ConfigDict(frozen=True)

    document_id: str
    status: BatchStatus
    processed_pages: int = 0
    total_pages: int = 0
    total_chunks: int = 0
    chunks_created: int = Field(default=0, description="Chunks appended by this step.")
    message: str = ""


class EmbeddingStatus(str, Enum):  # noqa: UP042 (StrEnum requires Python 3.11+)
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"


class EmbeddingOutcome(BaseModel):
    """Result of one embedding backfill step."""

    model_config = ConfigDict(frozen=True)

    document_id: str
    status: EmbeddingStatus
    embedded: int = 0
    failed: int = 0
    remaining: int = 0
    message: str = ""


class ProcessStatus(BaseModel):
    """Snapshot of a document's ingestion progress for status polling."""

    model_config = ConfigDict(frozen=True)

    document_id: str
    status: str
    processed_pages: int = 0
    total_pages: int = 0
    total_chunks: int = 0
    message: str = ""
