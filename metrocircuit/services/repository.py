"""Typed persistence for the corpus on top of the schemaless row-store.

Collections:

==================  =====================================================
``documents``       :class:`Document` rows
``chunks``          :class:`Chunk` rows, ``document_id`` foreign key
``ingestion_state`` one :class:`IngestionState` per document (id = doc id)
``page_groups``     size-bounded :class:`PageGroup` slices of the page list
``query_logs``      append-only :class:`QueryLog` rows
==================  =====================================================
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Sequence
from typing import Any

import structlog

from metrocircuit.interfaces.row_store import IRowStore
from metrocircuit.models.document import Chunk, Document, DocumentStatus, QueryLog
from metrocircuit.models.ingestion import IngestionState, Page, PageGroup
from metrocircuit.utils.errors import ConfigurationError, DocumentNotFoundError

logger = structlog.get_logger(logger_name=__name__)

DOCUMENTS = "documents"
CHUNKS = "chunks"
INGESTION_STATE = "ingestion_state"
PAGE_GROUPS = "page_groups"
QUERY_LOGS = "query_logs"

_MIN_GROUP_BYTES = 256
# json.dumps default item separator
_SEPARATOR_BYTES = len(", ")


def _encoded_size(value: Any) -> int:
    return len(json.dumps(value, ensure_ascii=False).encode("utf-8"))


def _split_to_fit(number: int, text: str, budget: int) -> list[str]:
    """Cut *text* into parts whose ``[number, part]`` encoding fits *budget* bytes."""
    if _encoded_size([number, text]) <= budget:
        return [text]
    parts: list[str] = []
    rest = text
    while rest:
        n = len(rest)
        size = _encoded_size([number, rest[:n]])
        while size > budget and n > 1:
            n = min(n - 1, n * budget // size)
            size = _encoded_size([number, rest[:n]])
        parts.append(rest[:n])
        rest = rest[n:]
    return parts


def pack_page_groups(pages: Sequence[Page], max_bytes: int) -> list[list[tuple[int, str]]]:
    """Pack pages into groups whose JSON encoding stays within *max_bytes*.

    Pages are kept in order.  A page too large for one group is split into
    consecutive parts that :func:`unpack_page_groups` joins back together.
    """
    if max_bytes < _MIN_GROUP_BYTES:
        raise ConfigurationError(f"page_group_max_bytes must be at least {_MIN_GROUP_BYTES}")
    budget = max_bytes - 2
    groups: list[list[tuple[int, str]]] = []
    current: list[tuple[int, str]] = []
    current_size = 0
    for page in pages:
        for part in _split_to_fit(page.number, page.text, budget):
            size = _encoded_size([page.number, part])
            separator = _SEPARATOR_BYTES if current else 0
            if current and current_size + separator + size > budget:
                groups.append(current)
                current, current_size, separator = [], 0, 0
            current.append((page.number, part))
            current_size += separator + size
    if current:
        groups.append(current)
    return groups


def unpack_page_groups(groups: Iterable[PageGroup]) -> list[Page]:
    """Rebuild the page list from groups, joining split parts."""
    texts: dict[int, list[str]] = {}
    for group in sorted(groups, key=lambda g: g.index):
        for number, part in group.entries:
            texts.setdefault(number, []).append(part)
    return [Page(number=number, text="".join(parts)) for number, parts in sorted(texts.items())]


class CorpusRepository:
    """Reads and writes corpus records through an :class:`IRowStore`."""

    def __init__(self, store: IRowStore) -> None:
        self._store = store

    @property
    def store(self) -> IRowStore:
        return self._store

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    async def add_document(self, document: Document) -> Document:
        await self._store.append(DOCUMENTS, document.model_dump(mode="json"))
        return document

    async def get_document(self, document_id: str) -> Document | None:
        row = await self._store.get(DOCUMENTS, document_id)
        return Document.model_validate(row) if row else None

    async def require_document(self, document_id: str) -> Document:
        document = await self.get_document(document_id)
        if document is None:
            raise DocumentNotFoundError(document_id)
        return document

    async def list_documents(self, folder_id: str | None = None) -> list[Document]:
        filters = {"folder_id": folder_id} if folder_id else None
        return [Document.model_validate(r) for r in await self._store.scan(DOCUMENTS, filters)]

    async def find_document_by_source(self, source_ref: str) -> Document | None:
        rows = await self._store.scan(DOCUMENTS, {"source_ref": source_ref})
        return Document.model_validate(rows[0]) if rows else None

    async def update_document(self, document_id: str, **changes: Any) -> Document:
        payload = {
            key: value.value if isinstance(value, DocumentStatus) else value
            for key, value in changes.items()
        }
        row = await self._store.update(DOCUMENTS, document_id, payload)
        if row is None:
            raise DocumentNotFoundError(document_id)
        return Document.model_validate(row)

    async def delete_document(self, document_id: str) -> int:
        """Delete a document and everything hanging off it; return chunks removed."""
        removed = await self.delete_chunks(document_id)
        await self.delete_state(document_id)
        await self._store.delete(DOCUMENTS, document_id)
        logger.info("document_deleted", document_id=document_id, chunks_removed=removed)
        return removed

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    async def append_chunks(self, chunks: Sequence[Chunk]) -> None:
        if chunks:
            await self._store.append_many(CHUNKS, [c.model_dump(mode="json", by_alias=True) for c in chunks])

    async def chunks_for_document(self, document_id: str) -> list[Chunk]:
        rows = await self._store.scan(CHUNKS, {"document_id": document_id})
        chunks = [Chunk.model_validate(r) for r in rows]
        return sorted(chunks, key=lambda c: (c.page_number, c.sequence))

    async def all_chunks(self, document_ids: Iterable[str] | None = None) -> list[Chunk]:
        """Every chunk, or only those of *document_ids*, in document then page order."""
        if document_ids is None:
            rows = await self._store.scan(CHUNKS)
            return [Chunk.model_validate(r) for r in rows]
        chunks: list[Chunk] = []
        for document_id in document_ids:
            chunks.extend(await self.chunks_for_document(document_id))
        return chunks

    async def delete_chunks(self, document_id: str, page_number: int | None = None) -> int:
        filters: dict[str, Any] = {"document_id": document_id}
        if page_number is not None:
            filters["page_number"] = page_number
        return await self._store.delete_where(CHUNKS, filters)

    async def set_chunk_embedding(self, chunk_id: str, embedding: list[float]) -> None:
        await self._store.update(CHUNKS, chunk_id, {"embedding": embedding})

    async def record_embedding_failure(self, chunk: Chunk) -> None:
        await self._store.update(CHUNKS, chunk.id, {"embedding_failures": chunk.embedding_failures + 1})

    # ------------------------------------------------------------------
    # Ingestion state and page groups
    # ------------------------------------------------------------------

    async def get_state(self, document_id: str) -> IngestionState | None:
        row = await self._store.get(INGESTION_STATE, document_id)
        return IngestionState.model_validate(row) if row else None

    async def save_state(self, state: IngestionState) -> None:
        row = state.model_dump(mode="json")
        if await self._store.update(INGESTION_STATE, state.document_id, row) is None:
            await self._store.append(INGESTION_STATE, {"id": state.document_id, **row})

    async def delete_state(self, document_id: str) -> None:
        await self._store.delete(INGESTION_STATE, document_id)
        await self._store.delete_where(PAGE_GROUPS, {"document_id": document_id})

    async def save_pages(self, document_id: str, pages: Sequence[Page], max_bytes: int) -> int:
        """Replace the persisted page list; return the number of groups written."""
        await self._store.delete_where(PAGE_GROUPS, {"document_id": document_id})
        groups = [
            PageGroup(id=f"{document_id}:{index}", document_id=document_id, index=index, entries=entries)
            for index, entries in enumerate(pack_page_groups(pages, max_bytes))
        ]
        await self._store.append_many(PAGE_GROUPS, [g.model_dump(mode="json") for g in groups])
        return len(groups)

    async def load_pages(self, document_id: str) -> list[Page]:
        rows = await self._store.scan(PAGE_GROUPS, {"document_id": document_id})
        return unpack_page_groups(PageGroup.model_validate(r) for r in rows)

    # ------------------------------------------------------------------
    # Query logs
    # ------------------------------------------------------------------

    async def append_query_log(self, entry: QueryLog) -> None:
        await self._store.append(QUERY_LOGS, entry.model_dump(mode="json"))
