"""
Embedding Pipeline  —  One Document, End to End
═══════════════════════════════════════════════

  fetch document ─► download bytes ─► extract text ─► chunk
        │
        ▼
  for each chunk (sequential, index order):
        embed ─► persist DocumentChunk ─► pacing wait
        │
        ▼
  status = ready

Failure semantics
─────────────────
  Any exception from any step lands in one fail-path that
    1. best-effort sets status = failed (a failure here is logged, never
       allowed to mask the original error), then
    2. re-raises the ORIGINAL exception, class preserved.

  Chunks inserted before the failing step stay inserted — there is no
  rollback. Status gates downstream consumption, and ``reprocess()`` clears
  the old rows before a re-run.

Concurrency
───────────
  At most one embedding call is in flight per document, so the failing
  chunk index is always the one being processed. Several pipelines may run
  concurrently for different documents; they share no mutable state.

All collaborators are constructor-injected. The provider in particular is
never a process-wide singleton.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass
from typing import Awaitable, Callable

from docpipeline.core.config import settings
from docpipeline.core.exceptions import NotFoundError, PipelineError, StorageError
from docpipeline.db.repository import ChunkRow, DocumentStore
from docpipeline.models.documents import DocumentStatus
from docpipeline.processing.chunking import Chunker
from docpipeline.processing.embeddings import AIProvider
from docpipeline.processing.extractor import TextExtractor
from docpipeline.processing.pacing import PacingPolicy, pacer_from_settings
from docpipeline.storage.base import BlobStorage

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Result dataclasses
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PipelineProgress:
    """Reported to the progress callback after every persisted chunk."""
    document_id: uuid.UUID
    done:        int
    total:       int


@dataclass(frozen=True)
class PipelineResult:
    """
    Outcome of a successful run.

    chunk_count : rows written to document_chunks
    text_chars  : length of the normalized extracted text
    elapsed_ms  : total wall time of the run
    """
    document_id: uuid.UUID
    status:      DocumentStatus
    chunk_count: int
    text_chars:  int
    elapsed_ms:  float


ProgressCallback = Callable[[PipelineProgress], Awaitable[None]]


def approximate_page_number(start_char: int, chars_per_page: int) -> int:
    """
    Coarse page estimate for navigation only: start_char // chars_per_page.
    Not page-accurate — extracted text length varies per page.
    """
    return start_char // max(1, chars_per_page)


def as_document_id(value: uuid.UUID | str) -> uuid.UUID:
    """Coerce a document id to UUID; a malformed id resolves to no document."""
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError as exc:
        raise NotFoundError(str(value), {"reason": "malformed document id"}) from exc


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

class EmbeddingPipeline:
    """
    Drives one document through extraction, chunking, embedding and
    persistence.

    Usage:
        pipeline = EmbeddingPipeline(store=store, storage=storage, provider=provider)
        result   = await pipeline.run(document_id)

    Precondition: the document exists and is in ``processing``. The caller
    enforces the state check; the pipeline only re-validates existence.
    """

    def __init__(
        self,
        store:              DocumentStore,
        storage:            BlobStorage,
        provider:           AIProvider,
        extractor:          TextExtractor | None   = None,
        chunker:            Chunker | None         = None,
        pacer:              PacingPolicy | None    = None,
        progress_cb:        ProgressCallback | None = None,
        chars_per_page:     int | None = None,
        progress_log_every: int | None = None,
    ) -> None:
        self._store       = store
        self._storage     = storage
        self._provider    = provider
        self._extractor   = extractor or TextExtractor()
        self._chunker     = chunker or Chunker()
        self._pacer       = pacer or pacer_from_settings()
        self._progress_cb = progress_cb
        self._chars_per_page = chars_per_page or settings.chars_per_page
        self._progress_log_every = max(1, progress_log_every or settings.progress_log_every)

    # ------------------------------------------------------------------
    # Public entry points
    # ------------------------------------------------------------------

    async def run(self, document_id: uuid.UUID | str) -> PipelineResult:
        """
        Process one document. Returns a PipelineResult on success; on failure
        marks the document ``failed`` and re-raises the original error.
        """
        try:
            document_id = as_document_id(document_id)
            logger.info("Pipeline start | doc=%s", document_id)
            return await self._run_steps(document_id)
        except Exception as exc:
            await self._fail(document_id, exc)
            raise

    async def reprocess(self, document_id: uuid.UUID | str) -> PipelineResult:
        """
        Re-run a document from scratch: clear its existing chunk rows, reset
        status to ``processing``, then run. This is the supported path for a
        ``failed`` document: (document_id, chunk_index) is unique, so a plain
        re-run would collide with rows left by the failed attempt.
        """
        try:
            document_id = as_document_id(document_id)
            deleted = await self._store.delete_chunks(document_id)
            await self._store.update_status(document_id, DocumentStatus.PROCESSING)
        except Exception as exc:
            await self._fail(document_id, exc)
            raise

        logger.info("Pipeline reprocess | doc=%s cleared_chunks=%d", document_id, deleted)
        return await self.run(document_id)

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def _run_steps(self, document_id: uuid.UUID) -> PipelineResult:
        t0 = time.monotonic()

        # ── Step 1: document metadata ────────────────────────────────────
        document = await self._store.get_document(document_id)
        if document is None:
            raise NotFoundError(str(document_id))

        # ── Step 2: source bytes ─────────────────────────────────────────
        logger.info("Pipeline download | doc=%s path=%s", document_id, document.file_path)
        data = await self._download(document.file_path)

        # ── Step 3: text extraction ──────────────────────────────────────
        text = await self._extractor.extract(data)
        logger.info("Pipeline extracted | doc=%s chars=%d", document_id, len(text))

        # ── Step 4: chunking ─────────────────────────────────────────────
        chunks = self._chunker.chunk(text)
        logger.info("Pipeline chunked | doc=%s chunks=%d", document_id, len(chunks))
        if not chunks:
            logger.warning("Pipeline | doc=%s produced no text; marking ready with 0 chunks", document_id)

        # ── Step 5: embed + persist, one chunk at a time ─────────────────
        total = len(chunks)
        for done, chunk in enumerate(chunks, start=1):
            embedding = await self._provider.embed(chunk.content)

            await self._store.insert_chunk(ChunkRow(
                document_id=document_id,
                content=chunk.content,
                page_number=approximate_page_number(chunk.start_char, self._chars_per_page),
                chunk_index=chunk.index,
                embedding=embedding,
                metadata={"char_start": chunk.start_char, "char_end": chunk.end_char},
            ))

            if done % self._progress_log_every == 0:
                logger.info("Pipeline progress | doc=%s done=%d total=%d", document_id, done, total)
            await self._report_progress(PipelineProgress(document_id, done, total))

            await self._pacer.wait()

        # ── Step 6: publish ──────────────────────────────────────────────
        await self._store.update_status(document_id, DocumentStatus.READY)

        elapsed_ms = (time.monotonic() - t0) * 1000
        logger.info(
            "Pipeline done | doc=%s chunks=%d chars=%d elapsed_ms=%.0f",
            document_id, total, len(text), elapsed_ms,
        )
        return PipelineResult(
            document_id=document_id,
            status=DocumentStatus.READY,
            chunk_count=total,
            text_chars=len(text),
            elapsed_ms=elapsed_ms,
        )

    async def _download(self, path: str) -> bytes:
        try:
            data = await self._storage.download(path)
        except PipelineError:
            raise
        except Exception as exc:
            raise StorageError(f"Download failed: {exc}", path=path) from exc

        if not data:
            raise StorageError("Downloaded object is empty", path=path)
        return data

    async def _report_progress(self, progress: PipelineProgress) -> None:
        if self._progress_cb is None:
            return
        try:
            await self._progress_cb(progress)
        except Exception:
            # Progress is observability only
            logger.warning("Progress callback failed | doc=%s", progress.document_id, exc_info=True)

    # ------------------------------------------------------------------
    # Fail-path
    # ------------------------------------------------------------------

    async def _fail(self, document_id: uuid.UUID | str, error: BaseException) -> None:
        """Best-effort status → failed. Never raises."""
        logger.error(
            "Pipeline failed | doc=%s error_type=%s error=%s",
            document_id, type(error).__name__, error,
        )
        if not isinstance(document_id, uuid.UUID):
            return    # malformed id: there is no row to mark
        try:
            await self._store.update_status(document_id, DocumentStatus.FAILED)
        except Exception as status_exc:
            logger.error(
                "Could not mark document failed | doc=%s error=%s",
                document_id, status_exc, exc_info=True,
            )


# ---------------------------------------------------------------------------
# Convenience factory (used by the Celery task)
# ---------------------------------------------------------------------------

def create_pipeline(
    store:       DocumentStore | None = None,
    provider:    AIProvider | None = None,
    progress_cb: ProgressCallback | None = None,
) -> EmbeddingPipeline:
    """Wire an EmbeddingPipeline to PostgreSQL, S3 and OpenAI from settings."""
    from docpipeline.db.repository import SqlDocumentStore
    from docpipeline.db.session import get_sessionmaker
    from docpipeline.processing.embeddings import OpenAIProvider
    from docpipeline.storage.s3 import S3BlobStorage

    return EmbeddingPipeline(
        store=store or SqlDocumentStore(get_sessionmaker()),
        storage=S3BlobStorage(),
        provider=provider or OpenAIProvider(),
        progress_cb=progress_cb,
    )
