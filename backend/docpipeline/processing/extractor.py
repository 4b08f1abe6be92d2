"""
Text Extraction  —  PDF bytes → normalized plain text
══════════════════════════════════════════════════════

Uses PyMuPDF (fitz) to read the native PDF text layer. The work is
CPU-bound and blocking, so it runs in the default thread executor and
never stalls the event loop.

Contract:
  - Accepts raw bytes (never a file path — keeps workers stateless)
  - Pages are joined with "\\n\\n" in page order, starting at page 1
  - Output is normalized (see normalize_text)
  - All-or-nothing: any parse failure raises ExtractionError, no partial
    text is ever returned

Scanned (image-only) PDFs have no text layer and extract to an empty
string. That is not an error here; the orchestrator decides what an empty
document means.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from dataclasses import dataclass

from docpipeline.core.exceptions import ExtractionError

logger = logging.getLogger(__name__)

PAGE_SEPARATOR = "\n\n"

_WHITESPACE_RUN_RE = re.compile(r"\s+")
_EXCESS_NEWLINES_RE = re.compile(r"\n{3,}")


@dataclass
class PageText:
    """
    Text extracted from a single page.

    page_number : 1-based page index
    text        : raw extracted text (may be empty for image-only pages)
    """
    page_number: int
    text:        str


def normalize_text(text: str) -> str:
    """
    Collapse whitespace runs to a single space, collapse 3+ newlines to two,
    trim the ends.
    """
    text = _WHITESPACE_RUN_RE.sub(" ", text)
    text = _EXCESS_NEWLINES_RE.sub("\n\n", text)
    return text.strip()


class TextExtractor:
    """
    Stateless PDF text extractor.

    Usage:
        extractor = TextExtractor()
        text = await extractor.extract(pdf_bytes)
    """

    strategy_name = "pymupdf"

    async def extract(self, pdf_bytes: bytes) -> str:
        """Extract and normalize the full text of a PDF."""
        pages = await self.extract_pages(pdf_bytes)
        text = normalize_text(PAGE_SEPARATOR.join(p.text for p in pages))
        logger.info("Extraction | pages=%d chars=%d", len(pages), len(text))
        return text

    async def extract_pages(self, pdf_bytes: bytes) -> list[PageText]:
        """Return per-page raw text, page 1 first."""
        if not pdf_bytes:
            raise ExtractionError("Cannot extract text from an empty byte stream")

        loop = asyncio.get_running_loop()
        t0 = time.monotonic()
        pages = await loop.run_in_executor(None, self._extract_sync, pdf_bytes)

        logger.debug(
            "PyMuPDF | pages=%d total_chars=%d elapsed_ms=%.0f",
            len(pages), sum(len(p.text) for p in pages),
            (time.monotonic() - t0) * 1000,
        )
        return pages

    def _extract_sync(self, pdf_bytes: bytes) -> list[PageText]:
        """Blocking extraction — runs in thread executor."""
        import fitz  # PyMuPDF; imported here to avoid module-level import cost

        try:
            with fitz.open(stream=pdf_bytes, filetype="pdf") as doc:
                if doc.needs_pass:
                    raise ExtractionError(
                        "PDF is password-protected", {"strategy": self.strategy_name}
                    )
                if doc.page_count == 0:
                    raise ExtractionError(
                        "PDF contains no pages", {"strategy": self.strategy_name}
                    )
                return [
                    PageText(page_number=page_num, text=page.get_text("text") or "")
                    for page_num, page in enumerate(doc, start=1)
                ]
        except ExtractionError:
            raise
        except Exception as exc:
            logger.warning("PyMuPDF extraction failed: %s", exc)
            raise ExtractionError(
                f"Failed to extract text from PDF: {exc}",
                {"strategy": self.strategy_name},
            ) from exc
