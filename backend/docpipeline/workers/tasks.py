"""
Celery Tasks — Document Processing

Task: process_document
  1. Load the document record (unknown or malformed id → NotFoundError)
  2. Skip unless status == processing (or reset=True)
  3. reset=True → clear old chunks, status → processing, then run
  4. Run the EmbeddingPipeline: download → extract → chunk → embed → persist
  5. Status → ready (the pipeline marks failed on error and re-raises)

No automatic Celery retries: every pipeline error is terminal for the run.
A caller that wants another attempt enqueues again with reset=True.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any

from celery import Task

from docpipeline.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Async task helper
# Run async coroutines inside Celery's synchronous task context.
# ---------------------------------------------------------------------------

def run_async(coro):
    """Execute an async coroutine from a synchronous Celery task."""
    try:
        loop = asyncio.get_event_loop()
        if loop.is_running():
            import concurrent.futures
            with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
                future = pool.submit(asyncio.run, coro)
                return future.result()
        return loop.run_until_complete(coro)
    except RuntimeError:
        return asyncio.run(coro)


# ---------------------------------------------------------------------------
# Main processing task
# ---------------------------------------------------------------------------

@celery_app.task(
    name="docpipeline.workers.tasks.process_document",
    bind=True,
    max_retries=0,
    acks_late=True,
    reject_on_worker_lost=True,
)
def process_document(
    self: Task,
    *,
    document_id: str,
    reset:       bool = False,
) -> dict[str, Any]:
    """Run the ingestion pipeline for one document."""
    return run_async(
        _process_document_async(document_id=document_id, reset=reset)
    )


async def _process_document_async(
    document_id: uuid.UUID | str,
    reset:       bool = False,
    store=None,
    pipeline=None,
) -> dict[str, Any]:
    """Async implementation; ``store`` / ``pipeline`` are injectable for tests."""
    from docpipeline.core.exceptions import NotFoundError
    from docpipeline.db.session import dispose_engine
    from docpipeline.models.documents import DocumentStatus
    from docpipeline.processing.pipeline import as_document_id, create_pipeline

    try:
        document_id = as_document_id(document_id)

        if store is None:
            from docpipeline.db.repository import SqlDocumentStore
            from docpipeline.db.session import get_sessionmaker
            store = SqlDocumentStore(get_sessionmaker())

        doc = await store.get_document(document_id)
        if doc is None:
            logger.error("Document not found | doc=%s", document_id)
            raise NotFoundError(str(document_id))

        if doc.status != DocumentStatus.PROCESSING and not reset:
            logger.warning(
                "Document in status=%s, skipping | doc=%s", doc.status.value, document_id,
            )
            return {
                "status":         "skipped",
                "document_id":    str(document_id),
                "current_status": doc.status.value,
            }

        pipeline = pipeline or create_pipeline(store=store)
        if reset:
            result = await pipeline.reprocess(document_id)
        else:
            result = await pipeline.run(document_id)

        return {
            "status":      result.status.value,
            "document_id": str(result.document_id),
            "chunk_count": result.chunk_count,
            "text_chars":  result.text_chars,
            "elapsed_ms":  round(result.elapsed_ms, 1),
        }
    finally:
        # Each task runs on a fresh event loop; pooled asyncpg connections
        # are bound to the loop that opened them.
        await dispose_engine()


# ---------------------------------------------------------------------------
# Health check task
# ---------------------------------------------------------------------------

@celery_app.task(name="docpipeline.workers.tasks.health_check")
def health_check() -> dict[str, Any]:
    return {"worker": "healthy", "database": run_async(_health_check_async())}


async def _health_check_async() -> dict:
    from docpipeline.db.session import check_db_health, dispose_engine

    try:
        return await check_db_health()
    finally:
        await dispose_engine()
