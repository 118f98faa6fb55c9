"""Corpus data models: documents, chunks and their extracted domain tags.

All models are Pydantic v2 and frozen; updates produce new instances via
``model_copy(update={...})``.  Rows are persisted with
``model_dump(mode="json", by_alias=True)`` and restored with
``model_validate``, so the stored shape uses the wire names (``from``,
``to``, ``label``) that the front-end already understands.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# DocumentStatus: owned by the ingestion state machine once processing starts.
# ---------------------------------------------------------------------------
class DocumentStatus(str, Enum):  # noqa: UP042 (StrEnum requires Python 3.11+)
    """Lifecycle status of a document as shown to users."""

    UPLOADED = "uploaded"
    EXTRACTING = "extracting"
    PROCESSING = "processing"
    INDEXED = "indexed"
    ERROR = "error"


class Document(BaseModel):
    """A source document registered for ingestion."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    name: str
    source_ref: str = Field(description="Reference understood by the document source.")
    mime_type: str = "application/octet-stream"
    status: DocumentStatus = DocumentStatus.UPLOADED
    page_count: int = Field(default=0, ge=0)
    chunk_count: int = Field(default=0, ge=0)
    folder_id: str | None = None
    error_message: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)


# ---------------------------------------------------------------------------
# Extracted tags
# ---------------------------------------------------------------------------
class Connection(BaseModel):
    """A directed electrical connection between two components."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    from_: str = Field(alias="from")
    to: str
    label: str = Field(default="", validation_alias=AliasChoices("label", "cable"))

    def key(self) -> tuple[str, str, str]:
        return (self.from_.upper(), self.to.upper(), self.label.upper())


class ExtractedTags(BaseModel):
    """Structured domain attributes pulled out of one chunk of text.

    Every field has an empty default so a partial extraction still yields
    a complete record.
    """

    model_config = ConfigDict(frozen=True)

    panel: str = ""
    voltage: str = ""
    components: list[str] = Field(default_factory=list)
    connections: list[Connection] = Field(default_factory=list)

    def merge(self, other: ExtractedTags) -> ExtractedTags:
        """Union of both tag sets; this instance's panel/voltage win when non-empty."""
        components = list(self.components)
        seen = {c.upper() for c in components}
        for component in other.components:
            if component.upper() not in seen:
                seen.add(component.upper())
                components.append(component)

        connections = list(self.connections)
        seen_links = {c.key() for c in connections}
        for connection in other.connections:
            if connection.key() not in seen_links:
                seen_links.add(connection.key())
                connections.append(connection)

        return ExtractedTags(
            panel=self.panel or other.panel,
            voltage=self.voltage or other.voltage,
            components=components,
            connections=connections,
        )


class Chunk(BaseModel):
    """A bounded, page-tagged unit of document text.

    Immutable once written except ``embedding``, which the backfill pass
    may fill in later, and ``embedding_failures``, the number of backfill
    attempts that came back empty.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    document_id: str
    content: str
    page_number: int = Field(ge=1)
    sequence: int = Field(default=0, ge=0, description="Position within the document.")
    extracted_tags: ExtractedTags = Field(default_factory=ExtractedTags)
    embedding: list[float] = Field(default_factory=list)
    embedding_failures: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=_utcnow)

    @property
    def has_embedding(self) -> bool:
        return len(self.embedding) > 0


class QueryLog(BaseModel):
    """Append-only audit record of one query."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    query: str
    answer: str
    match_count: int = Field(ge=0)
    output_mode: str = "text"
    search_mode: str = "lexical"
    created_at: datetime = Field(default_factory=_utcnow)
