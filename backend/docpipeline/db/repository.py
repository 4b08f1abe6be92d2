"""
Document Store — metadata + chunk persistence for the pipeline

The orchestrator only speaks the DocumentStore interface:

  get_document(id)        → DocumentRecord | None
  update_status(id, s)    → None
  insert_chunk(row)       → None
  delete_chunks(id)       → rows deleted

SqlDocumentStore is the PostgreSQL/pgvector implementation. Each call runs
in its own short transaction, so a chunk that was inserted stays inserted
even if a later step of the run fails — there is no run-level rollback.
Every SQLAlchemy error is wrapped in PersistenceError at this boundary.
"""

from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from docpipeline.core.exceptions import PersistenceError
from docpipeline.models.documents import Document, DocumentChunk, DocumentStatus

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Shared data types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DocumentRecord:
    """The slice of a Document row the pipeline needs."""
    id:        uuid.UUID
    file_path: str
    status:    DocumentStatus


@dataclass
class ChunkRow:
    """A DocumentChunk row ready for insertion."""
    document_id: uuid.UUID
    content:     str
    page_number: int
    chunk_index: int
    embedding:   list[float]
    metadata:    dict = field(default_factory=dict)   # char_start / char_end


# ---------------------------------------------------------------------------
# Abstract interface
# ---------------------------------------------------------------------------

class DocumentStore(ABC):

    @abstractmethod
    async def get_document(self, document_id: uuid.UUID) -> DocumentRecord | None:
        ...

    @abstractmethod
    async def update_status(self, document_id: uuid.UUID, status: DocumentStatus) -> None:
        ...

    @abstractmethod
    async def insert_chunk(self, row: ChunkRow) -> None:
        ...

    @abstractmethod
    async def delete_chunks(self, document_id: uuid.UUID) -> int:
        """Remove every chunk row of a document; returns the row count."""


# ---------------------------------------------------------------------------
# SQLAlchemy implementation
# ---------------------------------------------------------------------------

class SqlDocumentStore(DocumentStore):
    """
    DocumentStore over an async SQLAlchemy session factory.

    Usage:
        from docpipeline.db.session import get_sessionmaker
        store = SqlDocumentStore(get_sessionmaker())
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get_document(self, document_id: uuid.UUID) -> DocumentRecord | None:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(Document).where(Document.id == document_id)
                )
                doc = result.scalars().first()
        except SQLAlchemyError as exc:
            raise PersistenceError(
                f"Failed to load document: {exc}",
                {"document_id": str(document_id)},
            ) from exc

        if doc is None:
            return None
        return DocumentRecord(
            id=doc.id,
            file_path=doc.file_path,
            status=DocumentStatus(doc.status),
        )

    async def update_status(self, document_id: uuid.UUID, status: DocumentStatus) -> None:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    await session.execute(
                        update(Document)
                        .where(Document.id == document_id)
                        .values(status=status.value)
                    )
        except SQLAlchemyError as exc:
            raise PersistenceError(
                f"Failed to update document status: {exc}",
                {"document_id": str(document_id), "status": status.value},
            ) from exc

        logger.debug("Document status | doc=%s status=%s", document_id, status.value)

    async def insert_chunk(self, row: ChunkRow) -> None:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    session.add(DocumentChunk(
                        document_id=row.document_id,
                        content=row.content,
                        page_number=row.page_number,
                        chunk_index=row.chunk_index,
                        embedding=row.embedding,
                        chunk_metadata=row.metadata,
                    ))
        except SQLAlchemyError as exc:
            raise PersistenceError(
                f"Failed to insert document chunk: {exc}",
                {"document_id": str(row.document_id), "chunk_index": row.chunk_index},
            ) from exc

    async def delete_chunks(self, document_id: uuid.UUID) -> int:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    result = await session.execute(
                        delete(DocumentChunk).where(DocumentChunk.document_id == document_id)
                    )
        except SQLAlchemyError as exc:
            raise PersistenceError(
                f"Failed to delete document chunks: {exc}",
                {"document_id": str(document_id)},
            ) from exc

        deleted = result.rowcount or 0
        logger.info("Chunks cleared | doc=%s rows=%d", document_id, deleted)
        return deleted
