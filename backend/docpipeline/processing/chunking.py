"""
Sentence-Aware Chunker  —  Token-Budgeted Segmentation with Overlap
═══════════════════════════════════════════════════════════════════

Why sentence boundaries?
────────────────────────
  Fixed-size character windows split mid-sentence:

    "The mitochondria is the powerhouse of
    [CHUNK BREAK]
    the cell."

  The first half embeds to a vector with no predicate, the second half to
  a vector with no subject. Packing whole sentences keeps every chunk
  semantically complete, which tightens the embedding.

Algorithm
─────────
  1. Estimate tokens as ceil(chars / 4) — no tokenizer dependency, fully
     deterministic.
  2. Segment the text into SentenceSpans on runs of . ! ? followed by
     whitespace or end-of-text. Trailing unterminated text is its own span.
  3. Greedily pack spans from a cursor while the running token sum stays
     within max_tokens. The first span is always taken, so a sentence longer
     than the budget becomes its own chunk instead of starving the loop.
  4. Walk back from the chunk's last span to pick the next cursor, collecting
     spans until overlap_tokens is met. The last span is always part of the
     overlap.
  5. If the walk-back lands on (or before) the chunk's first span, the next
     chunk would start where this one started — advance past the chunk
     instead. This is the forward-progress guarantee: for any
     max_tokens >= 1 and overlap_tokens >= 0 the loop consumes at least one
     span per iteration.

Offsets
───────
  start_char / end_char are half-open offsets into the input text and
  content == text[start_char:end_char].strip(). With overlap, chunk i+1's
  start_char may be less than chunk i's end_char.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass

from docpipeline.core.config import settings

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Configuration constants
# ---------------------------------------------------------------------------

DEFAULT_MAX_TOKENS     = 500
DEFAULT_OVERLAP_TOKENS = 50
CHARS_PER_TOKEN        = 4    # ~4 chars per token for English text

# Maximal runs of sentence terminals, each visited once
_TERMINAL_RUN_RE = re.compile(r"[.!?]+")
_WHITESPACE_RE   = re.compile(r"\s*")


# ---------------------------------------------------------------------------
# Result dataclasses
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TextChunk:
    """One chunk of normalized document text, ready for embedding."""
    content:    str    # text[start_char:end_char].strip()
    index:      int    # 0-based, contiguous
    start_char: int    # inclusive
    end_char:   int    # exclusive


@dataclass(frozen=True)
class SentenceSpan:
    start:  int
    end:    int        # exclusive
    tokens: int


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def estimate_tokens(text: str) -> int:
    """ceil(len / 4), never less than 1."""
    return max(1, math.ceil(len(text) / CHARS_PER_TOKEN))


def split_into_sentences(text: str) -> list[SentenceSpan]:
    """
    Segment text into position-ordered, contiguous SentenceSpans.

    A sentence ends at a run of . ! ? that follows at least one other
    character and is itself followed by whitespace or end of text; the
    trailing whitespace belongs to the sentence. Terminals that do not end
    a sentence ("v1.2", a leading "...") stay inside the following span, so
    the spans tile the text from the start to the end without gaps.
    """
    spans: list[SentenceSpan] = []
    last_end = 0

    for run in _TERMINAL_RUN_RE.finditer(text):
        if run.start() == last_end:
            continue    # no sentence body before the terminals
        if run.end() < len(text) and not text[run.end()].isspace():
            continue
        start = last_end
        end = _WHITESPACE_RE.match(text, run.end()).end()
        spans.append(SentenceSpan(start, end, estimate_tokens(text[start:end])))
        last_end = end

    if last_end < len(text):
        tail = text[last_end:]
        if tail.strip():
            spans.append(SentenceSpan(last_end, len(text), estimate_tokens(tail)))

    # Fallback: nothing matched but there is text
    if not spans and text.strip():
        spans.append(SentenceSpan(0, len(text), estimate_tokens(text)))

    return spans


def _overlap_start(
    spans:          list[SentenceSpan],
    first_idx:      int,
    last_idx:       int,
    overlap_tokens: int,
) -> int:
    """Index of the span the next chunk should start at, walking backwards."""
    start_idx = last_idx
    overlap_sum = 0
    for j in range(last_idx, first_idx - 1, -1):
        tokens = spans[j].tokens
        if j != last_idx and overlap_sum + tokens > overlap_tokens:
            break
        overlap_sum += tokens
        start_idx = j
        if overlap_sum >= overlap_tokens:
            break
    return start_idx


# ---------------------------------------------------------------------------
# Core chunker
# ---------------------------------------------------------------------------

def chunk_text(
    text:           str,
    max_tokens:     int = DEFAULT_MAX_TOKENS,
    overlap_tokens: int = DEFAULT_OVERLAP_TOKENS,
) -> list[TextChunk]:
    """
    Split normalized text into overlapping, sentence-respecting chunks.

    Args:
        text:           Normalized document text.
        max_tokens:     Token budget per chunk (clamped to >= 1).
        overlap_tokens: Token budget shared with the next chunk (clamped to >= 0).

    Returns:
        Ordered list of TextChunk (index 0, 1, 2, …). Empty or
        whitespace-only input yields an empty list.
    """
    if not text or not text.strip():
        return []

    max_tokens = max(1, max_tokens)
    overlap_tokens = max(0, overlap_tokens)

    spans = split_into_sentences(text)
    if not spans:
        return []

    chunks: list[TextChunk] = []
    cursor = 0

    while cursor < len(spans):
        first_idx = cursor
        last_idx = first_idx
        token_sum = 0

        for i in range(first_idx, len(spans)):
            tokens = spans[i].tokens
            if i == first_idx or token_sum + tokens <= max_tokens:
                token_sum += tokens
                last_idx = i
            else:
                break

        start_char = spans[first_idx].start
        end_char = spans[last_idx].end
        chunks.append(TextChunk(
            content=text[start_char:end_char].strip(),
            index=len(chunks),
            start_char=start_char,
            end_char=end_char,
        ))

        if last_idx >= len(spans) - 1:
            break

        if overlap_tokens == 0:
            cursor = last_idx + 1
            continue

        next_idx = _overlap_start(spans, first_idx, last_idx, overlap_tokens)
        # Forward progress: never restart at (or before) this chunk's first span
        cursor = last_idx + 1 if next_idx <= first_idx else next_idx

    logger.debug(
        "Chunker | chars=%d sentences=%d chunks=%d max_tokens=%d overlap_tokens=%d",
        len(text), len(spans), len(chunks), max_tokens, overlap_tokens,
    )
    return chunks


class Chunker:
    """
    Stateless chunker bound to a pair of token budgets.

    Usage:
        chunker = Chunker()                       # budgets from settings
        chunks  = chunker.chunk(extracted_text)
    """

    def __init__(
        self,
        max_tokens:     int | None = None,
        overlap_tokens: int | None = None,
    ) -> None:
        self.max_tokens = max(
            1, settings.chunk_max_tokens if max_tokens is None else max_tokens
        )
        self.overlap_tokens = max(
            0, settings.chunk_overlap_tokens if overlap_tokens is None else overlap_tokens
        )

    def chunk(self, text: str) -> list[TextChunk]:
        return chunk_text(text, self.max_tokens, self.overlap_tokens)
