"""Query pipeline models: intents, output modes, scored matches and results."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from metrocircuit.models.document import Chunk, Connection


class QueryIntent(str, Enum):  # noqa: UP042 (StrEnum requires Python 3.11+)
    """Router classification of a user question."""

    GENERAL = "general"
    DETAIL_LOOKUP = "detail_lookup"
    DIAGRAM_STRUCTURE = "diagram_structure"


class OutputMode(str, Enum):  # noqa: UP042 (StrEnum requires Python 3.11+)
    """Answer format requested by the caller."""

    TEXT = "text"
    WIRING = "wiring"
    SCHEMATIC = "schematic"
    JSON = "json"


class SearchMode(str, Enum):  # noqa: UP042 (StrEnum requires Python 3.11+)
    HYBRID = "hybrid"
    LEXICAL = "lexical"


class RouterDecision(BaseModel):
    """Intent tag plus search-term expansion for one query."""

    model_config = ConfigDict(frozen=True)

    intent: QueryIntent = QueryIntent.GENERAL
    expanded_keywords: list[str] = Field(default_factory=list)
    used_fallback: bool = False


class ScoredChunk(BaseModel):
    """A chunk with its relevance scores.

    ``score`` is the value used for ranking; after LLM re-ranking it is the
    synthetic rank score while ``lexical_score``/``vector_score`` keep the
    retrieval signals.
    """

    model_config = ConfigDict(frozen=True)

    chunk: Chunk
    score: float = Field(ge=0.0, le=1.0)
    lexical_score: float = Field(default=0.0, ge=0.0, le=1.0)
    vector_score: float | None = None
    retrieval_rank: int = Field(default=0, ge=0)


class QueryRequest(BaseModel):
    """Validated query parameters."""

    model_config = ConfigDict(frozen=True)

    query: str = Field(min_length=1)
    output_mode: OutputMode = OutputMode.TEXT
    filter_panel: str = ""
    filter_voltage: str = ""
    match_count: int = Field(default=8, ge=1)
    folder_id: str | None = None
    document_id: str | None = None


class QueryResult(BaseModel):
    """Everything the query pipeline returns for one request."""

    model_config = ConfigDict(frozen=True)

    answer: str
    matches: list[ScoredChunk] = Field(default_factory=list)
    intent: QueryIntent = QueryIntent.GENERAL
    expanded_keywords: list[str] = Field(default_factory=list)
    search_mode: SearchMode = SearchMode.LEXICAL
    output_mode: OutputMode = OutputMode.TEXT
    reranked: bool = False
    verified: bool = False
    corrected: bool = False


class SchematicAnswer(BaseModel):
    """Strict shape required for ``schematic`` output mode answers."""

    model_config = ConfigDict(frozen=True)

    components: list[str] = Field(default_factory=list)
    connections: list[Connection] = Field(default_factory=list)
