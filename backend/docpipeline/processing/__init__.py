"""
Document Processing Package
════════════════════════════

The post-upload ingestion pipeline:

  Text Extraction → Sentence Chunking → Embedding → Chunk Persistence

Modules
───────
  extractor.py   PyMuPDF text extraction + normalization
  chunking.py    Sentence-aware, token-budgeted chunker with overlap
  embeddings.py  AIProvider interface (embed / chat) and the OpenAI backend
  pacing.py      Pacing policies awaited between embedding calls
  pipeline.py    EmbeddingPipeline orchestrator + fail-path
"""

from docpipeline.processing.chunking import Chunker, TextChunk, chunk_text
from docpipeline.processing.embeddings import AIProvider, OpenAIProvider
from docpipeline.processing.extractor import TextExtractor, normalize_text
from docpipeline.processing.pacing import (
    FixedIntervalPacer,
    NoPacing,
    PacingPolicy,
    TokenBucketPacer,
)
from docpipeline.processing.pipeline import (
    EmbeddingPipeline,
    PipelineProgress,
    PipelineResult,
    create_pipeline,
)

__all__ = [
    "Chunker",
    "TextChunk",
    "chunk_text",
    "AIProvider",
    "OpenAIProvider",
    "TextExtractor",
    "normalize_text",
    "PacingPolicy",
    "FixedIntervalPacer",
    "TokenBucketPacer",
    "NoPacing",
    "EmbeddingPipeline",
    "PipelineProgress",
    "PipelineResult",
    "create_pipeline",
]
