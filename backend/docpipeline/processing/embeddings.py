"""
AI Provider  —  Embedding + Chat Capability
═══════════════════════════════════════════

The pipeline only needs one thing from the AI layer:

    embed(text) -> list[float]

Chat is exposed on the same interface because the surrounding system
(quiz generation, tutoring chat) shares the provider object; routing and
cost accounting live outside this package.

The provider is always constructor-injected into the orchestrator. There is
no process-wide singleton, so test doubles drop in and concurrent runs
never share hidden state.

Error policy:
  Every SDK failure is wrapped so callers see one of our classes:
    embed() → EmbeddingProviderError
    chat()  → AIProviderError
  RateLimitError / APITimeoutError / APIConnectionError set retryable=True.
  Nothing is retried here — the SDK's own retry loop is disabled by
  default (settings.ai_max_retries = 0) so failures surface immediately.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Literal

from openai import (
    APIConnectionError,
    APITimeoutError,
    AsyncOpenAI,
    OpenAIError,
    RateLimitError,
)

from docpipeline.core.config import settings
from docpipeline.core.exceptions import AIProviderError, EmbeddingProviderError

logger = logging.getLogger(__name__)

CHARS_PER_TOKEN_EST = 4

_RETRYABLE_ERRORS = (RateLimitError, APITimeoutError, APIConnectionError)


# ---------------------------------------------------------------------------
# Chat types
# ---------------------------------------------------------------------------

@dataclass
class ChatMessage:
    role:    Literal["user", "assistant"]
    content: str


@dataclass
class ChatParams:
    messages:      list[ChatMessage]
    system_prompt: str | None = None
    temperature:   float = 0.7
    max_tokens:    int = 8192
    model:         str | None = None    # None → settings.chat_model


@dataclass
class ChatResponse:
    content:       str
    input_tokens:  int
    output_tokens: int
    model_used:    str
    metadata:      dict = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Abstract interface
# ---------------------------------------------------------------------------

class AIProvider(ABC):
    """Embedding + chat capability consumed by the pipeline and its host."""

    name: str = "abstract"

    @abstractmethod
    async def embed(self, text: str) -> list[float]:
        """Return a fixed-dimension vector for ``text``."""

    @abstractmethod
    async def chat(self, params: ChatParams) -> ChatResponse:
        """Run one chat completion."""


# ---------------------------------------------------------------------------
# OpenAI implementation
# ---------------------------------------------------------------------------

class OpenAIProvider(AIProvider):
    """
    AIProvider backed by ``openai.AsyncOpenAI``.

    Usage:
        provider = OpenAIProvider()                 # config from settings
        vector   = await provider.embed("some chunk text")
    """

    name = "openai"

    def __init__(
        self,
        api_key:         str = "",
        embedding_model: str | None = None,
        dimensions:      int | None = None,
        chat_model:      str | None = None,
        client:          AsyncOpenAI | None = None,
    ) -> None:
        self._embedding_model = embedding_model or settings.embedding_model
        self._dimensions      = dimensions or settings.embedding_dimensions
        self._chat_model      = chat_model or settings.chat_model
        self._client          = client or AsyncOpenAI(
            api_key=api_key or settings.openai_api_key,
            base_url=settings.openai_base_url or None,
            timeout=settings.ai_request_timeout,
            max_retries=settings.ai_max_retries,
        )

    async def embed(self, text: str) -> list[float]:
        t0 = time.monotonic()
        try:
            response = await self._client.embeddings.create(
                model=self._embedding_model,
                input=[text],
                dimensions=self._dimensions,
            )
        except OpenAIError as exc:
            raise EmbeddingProviderError(
                f"Embedding request failed: {exc}",
                provider=self.name,
                retryable=isinstance(exc, _RETRYABLE_ERRORS),
                details={"model": self._embedding_model, "error_type": type(exc).__name__},
            ) from exc

        if not response.data:
            raise EmbeddingProviderError(
                "Embedding response contained no vectors",
                provider=self.name,
                details={"model": self._embedding_model},
            )

        vector = list(response.data[0].embedding)
        logger.debug(
            "OpenAI embeddings | chars=%d dims=%d api_ms=%.0f",
            len(text), len(vector), (time.monotonic() - t0) * 1000,
        )
        return vector

    async def chat(self, params: ChatParams) -> ChatResponse:
        if not params.messages:
            raise AIProviderError("At least one message is required", provider=self.name)

        model = params.model or self._chat_model
        messages: list[dict] = []
        if params.system_prompt:
            messages.append({"role": "system", "content": params.system_prompt})
        messages.extend({"role": m.role, "content": m.content} for m in params.messages)

        try:
            response = await self._client.chat.completions.create(
                model=model,
                messages=messages,
                temperature=params.temperature,
                max_tokens=params.max_tokens,
            )
        except OpenAIError as exc:
            raise AIProviderError(
                f"Chat request failed: {exc}",
                provider=self.name,
                retryable=isinstance(exc, _RETRYABLE_ERRORS),
                details={"model": model, "error_type": type(exc).__name__},
            ) from exc

        content = ""
        if response.choices:
            content = response.choices[0].message.content or ""

        # Prefer the API's own usage counts; fall back to the 4-chars heuristic
        if response.usage:
            input_tokens  = response.usage.prompt_tokens
            output_tokens = response.usage.completion_tokens
        else:
            input_tokens  = sum(len(m["content"]) for m in messages) // CHARS_PER_TOKEN_EST
            output_tokens = len(content) // CHARS_PER_TOKEN_EST

        return ChatResponse(
            content=content,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            model_used=response.model or model,
        )
