"""
Content Extraction

Turns stored bytes plus the declared document kind into plain text:

    pdf      → pypdf page text, pages joined with a blank line
    docx     → python-docx paragraph text
    youtube  → no extraction; build_video_context() describes the video
               so the model can reference it by URL

Empty or whitespace-only output is an extraction failure. Parsing is CPU
bound, so it runs in the default executor and never blocks the event loop.
"""

from __future__ import annotations

import asyncio
import io
import logging
import time
from dataclasses import dataclass

logger = logging.getLogger(__name__)


class ExtractionError(Exception):
    """The source produced no usable text."""


# ---------------------------------------------------------------------------
# Result dataclass
# ---------------------------------------------------------------------------

@dataclass
class ExtractionResult:
    text:        str
    file_type:   str
    total_chars: int
    elapsed_ms:  float


# ---------------------------------------------------------------------------
# Format-specific extractors
# ---------------------------------------------------------------------------

def _extract_pdf(data: bytes) -> str:
    """Extract text from PDF bytes using pypdf."""
    from pypdf import PdfReader

    reader = PdfReader(io.BytesIO(data))
    pages = [page.extract_text() or "" for page in reader.pages]
    return "\n\n".join(pages)


def _extract_docx(data: bytes) -> str:
    """Extract text from DOCX bytes using python-docx."""
    import docx

    doc = docx.Document(io.BytesIO(data))
    return "\n".join(para.text for para in doc.paragraphs if para.text.strip())


_EXTRACTORS = {
    "pdf":  _extract_pdf,
    "docx": _extract_docx,
}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

async def extract_text(data: bytes, file_type: str) -> ExtractionResult:
    """
    Extract plain text from a stored PDF or DOCX.

    Raises:
        ExtractionError: unsupported kind, unreadable file, or no text.
    """
    extractor = _EXTRACTORS.get(file_type)
    if extractor is None:
        raise ExtractionError(f"Unsupported file type for extraction: {file_type}")

    t0 = time.monotonic()
    loop = asyncio.get_running_loop()
    try:
        text = await loop.run_in_executor(None, extractor, data)
    except Exception as exc:
        logger.warning("Text extraction failed | type=%s error=%s", file_type, exc)
        raise ExtractionError(f"Could not read {file_type} file") from exc

    text = text.strip()
    if not text:
        raise ExtractionError("Could not extract text from the file")

    elapsed_ms = (time.monotonic() - t0) * 1000
    logger.info(
        "Extraction | type=%s chars=%d elapsed_ms=%.0f",
        file_type, len(text), elapsed_ms,
    )
    return ExtractionResult(
        text=text,
        file_type=file_type,
        total_chars=len(text),
        elapsed_ms=elapsed_ms,
    )


def build_video_context(
    title: str,
    url: str | None,
    description: str | None = None,
) -> str:
    """Stand-in source text for a YouTube document."""
    parts = [f"YouTube Video: {title}"]
    if url:
        parts.append(f"URL: {url}")
    if description:
        parts.append(f"Description: {description}")
    parts.append(
        "Generate study material for this educational video based on its "
        "title, description and the subject matter it covers."
    )
    return "\n".join(parts)
