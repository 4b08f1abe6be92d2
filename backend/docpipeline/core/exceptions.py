"""
Exception hierarchy for the ingestion pipeline.

Every failure the orchestrator can surface maps to exactly one class below.
All of them are terminal for the current run: the pipeline never retries,
it marks the document failed and re-raises the original exception.

  PipelineError
    ├── NotFoundError            document id unknown
    ├── StorageError             blob download failed / returned nothing
    ├── ExtractionError          bytes could not be parsed as a PDF
    ├── AIProviderError          chat / embedding SDK failure
    │     └── EmbeddingProviderError
    └── PersistenceError         database read/write failure
"""

from __future__ import annotations

from typing import Any


class PipelineError(Exception):
    """Base exception for all pipeline errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class NotFoundError(PipelineError):
    """Raised when a document id does not resolve to a record."""

    def __init__(self, document_id: str, details: dict[str, Any] | None = None) -> None:
        details = details or {}
        details["document_id"] = document_id
        super().__init__(f"Document not found: {document_id}", details)


class StorageError(PipelineError):
    """Raised when the source bytes cannot be downloaded."""

    def __init__(
        self,
        message: str,
        path: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        if path:
            details["path"] = path
        super().__init__(message, details)


class ExtractionError(PipelineError):
    """Raised when a byte stream cannot be parsed as a document."""


class AIProviderError(PipelineError):
    """
    Raised when a call to the AI provider fails.

    ``retryable`` is True for rate limits, timeouts and connection errors,
    i.e. failures where re-invoking the whole run later is likely to help.
    The pipeline itself never retries.
    """

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        retryable: bool = False,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        if provider:
            details["provider"] = provider
        self.retryable = retryable
        super().__init__(message, details)


class EmbeddingProviderError(AIProviderError):
    """Raised when an embedding call fails (quota, rate limit, transport)."""


class PersistenceError(PipelineError):
    """Raised when a database read or write fails."""
