"""
Celery Application Factory

Runs the ingestion pipeline out of the request path. The surrounding web
layer enqueues ``process_document`` with a document id after the upload
row is created in ``processing``; the worker does the rest.

Queue topology:
  documents.ingest   — document ingestion pipeline
  system.health      — internal health-check tasks

Never pass raw file bytes in task payloads — pass the document id and let
the worker load the file from storage.
"""

from __future__ import annotations

import logging

from celery import Celery
from celery.signals import setup_logging, task_failure, task_postrun, task_prerun
from kombu import Exchange, Queue

from docpipeline.core.config import settings
from docpipeline.core.logging_config import configure_logging

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Queue and exchange definitions
# ---------------------------------------------------------------------------

INGEST_EXCHANGE = Exchange("documents", type="direct", durable=True)

TASK_QUEUES = (
    Queue(
        "documents.ingest",
        exchange=INGEST_EXCHANGE,
        routing_key="documents.ingest",
        durable=True,
    ),
    Queue(
        "system.health",
        Exchange("system", type="direct"),
        routing_key="system.health",
        durable=True,
    ),
)

TASK_ROUTES = {
    "docpipeline.workers.tasks.process_document": {"queue": "documents.ingest"},
    "docpipeline.workers.tasks.health_check":     {"queue": "system.health"},
}

# ---------------------------------------------------------------------------
# Celery app factory
# ---------------------------------------------------------------------------

def create_celery_app() -> Celery:
    app = Celery("docpipeline")

    app.conf.update(
        # --- Broker / Backend ---
        broker_url=settings.celery_broker_url,
        result_backend=settings.celery_result_backend,

        # --- Serialization (reject non-JSON messages) ---
        task_serializer="json",
        result_serializer="json",
        accept_content=["json"],
        event_serializer="json",

        # --- Queues ---
        task_queues=TASK_QUEUES,
        task_routes=TASK_ROUTES,
        task_default_queue="documents.ingest",
        task_default_exchange="documents",
        task_default_routing_key="documents.ingest",

        # --- Reliability ---
        task_acks_late=True,
        task_reject_on_worker_lost=True,
        worker_prefetch_multiplier=1,  # one document at a time per worker process

        # Pipeline errors are terminal for a run; re-runs are explicit (reset=True)
        task_max_retries=0,

        # --- Timeouts ---
        task_soft_time_limit=1800,
        task_time_limit=1900,

        # --- Result TTL ---
        result_expires=3600,   # status lives in PostgreSQL, not Celery results

        timezone="UTC",
        enable_utc=True,

        worker_max_tasks_per_child=200,   # recycle workers to bound memory (PyMuPDF)
    )

    app.autodiscover_tasks(["docpipeline.workers"])

    return app


celery_app = create_celery_app()


# ---------------------------------------------------------------------------
# Celery signals — logging
# ---------------------------------------------------------------------------

@setup_logging.connect
def on_setup_logging(**_):
    # Connecting this signal stops Celery from installing its own root handlers
    configure_logging()


@task_prerun.connect
def on_task_prerun(task_id, task, args, kwargs, **_):
    logger.info(
        "Task start | task_id=%s task=%s doc=%s",
        task_id, task.name, kwargs.get("document_id", "?"),
    )


@task_postrun.connect
def on_task_postrun(task_id, task, args, kwargs, retval, state, **_):
    logger.info(
        "Task end | task_id=%s task=%s state=%s doc=%s",
        task_id, task.name, state, kwargs.get("document_id", "?"),
    )


@task_failure.connect
def on_task_failure(task_id, exception, args, kwargs, traceback, einfo, **_):
    logger.error(
        "Task failed | task_id=%s doc=%s error=%s",
        task_id, (kwargs or {}).get("document_id", "?"), exception,
    )
