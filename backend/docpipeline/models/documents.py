"""
SQLAlchemy ORM Models — Documents & Document Chunks

Only the two tables the ingestion pipeline reads and writes are mapped
here; the rest of the schema (subjects, modules, profiles …) is owned by
the surrounding application.

Using SQLAlchemy 2.x mapped classes for full async support.
The embedding column is a pgvector ``vector(N)``.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum

from pgvector.sqlalchemy import Vector
from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from docpipeline.core.config import settings


# ---------------------------------------------------------------------------
# Declarative base — shared across all models
# ---------------------------------------------------------------------------

class Base(DeclarativeBase):
    pass


# ---------------------------------------------------------------------------
# Processing state machine
# ---------------------------------------------------------------------------

class DocumentStatus(str, Enum):
    """
    Maps to documents.status.
    Transitions: processing → ready | failed
    """
    PROCESSING = "processing"   # created by the uploader, pipeline may run
    READY      = "ready"        # every chunk embedded and persisted
    FAILED     = "failed"       # unrecoverable pipeline error


# ---------------------------------------------------------------------------
# Document model — documents
# ---------------------------------------------------------------------------

class Document(Base):
    """
    A single uploaded PDF tracked from upload → chunking → embedding.

    The row is created externally in ``processing``; the pipeline is the
    only writer of ``status`` after that.
    """

    __tablename__ = "documents"
    __table_args__ = (
        CheckConstraint(
            "status IN ('processing', 'ready', 'failed', 'archived')",
            name="documents_status_check",
        ),
        Index("idx_documents_status", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=func.gen_random_uuid(),
    )

    file_path: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="Object key of the source PDF in blob storage",
    )

    status: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default=DocumentStatus.PROCESSING.value,
        server_default=DocumentStatus.PROCESSING.value,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    def __repr__(self) -> str:
        return f"<Document id={self.id} status={self.status} file={self.file_path!r}>"


# ---------------------------------------------------------------------------
# DocumentChunk model — document_chunks
# ---------------------------------------------------------------------------

class DocumentChunk(Base):
    """
    One embedded text chunk of a Document.

    Inserted exactly once per chunk during a run and never updated.
    (document_id, chunk_index) is unique, so a re-run must clear the
    document's previous chunks first.
    """

    __tablename__ = "document_chunks"
    __table_args__ = (
        UniqueConstraint("document_id", "chunk_index", name="uq_document_chunks_position"),
        Index("idx_document_chunks_document", "document_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=func.gen_random_uuid(),
    )
    document_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=False,
    )
    content: Mapped[str]     = mapped_column(Text, nullable=False)
    page_number: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Approximate: start_char // chars_per_page",
    )
    chunk_index: Mapped[int] = mapped_column(Integer, nullable=False)
    embedding: Mapped[list[float]] = mapped_column(
        Vector(settings.embedding_dimensions),
        nullable=True,
    )
    chunk_metadata: Mapped[dict] = mapped_column(
        "metadata",                 # PostgreSQL column name stays 'metadata'
        JSONB,
        nullable=False,
        default=dict,
        server_default="{}",
        comment="char_start / char_end offsets into the normalized text",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return (
            f"<DocumentChunk document={self.document_id} "
            f"index={self.chunk_index} page={self.page_number}>"
        )
