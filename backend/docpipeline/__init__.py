"""
docpipeline — PDF ingestion into embedded, searchable chunks.

Entry points:
  docpipeline.processing.EmbeddingPipeline   orchestrator (one document per run)
  docpipeline.workers.tasks.process_document Celery task wrapping the orchestrator
"""

__version__ = "0.1.0"
