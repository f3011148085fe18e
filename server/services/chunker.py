"""
Page-bounded chunking of extracted document text.

Pages are grouped into windows of PAGES_PER_CHUNK pages; consecutive windows
share OVERLAP_PAGES pages. The first page of every non-initial chunk carries an
OVERLAP marker telling the model to use it only as context.

extract_chunks() never returns an empty list for a non-empty upload:
Document AI -> PyMuPDF basic extraction -> single placeholder chunk.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import List, Optional

from server.services.document_processing import (
    DocumentProcessingError,
    DocumentProcessor,
    PDF_MIME,
    ProcessedDocument,
    PyMuPDFProcessor,
)

logger = logging.getLogger("quizling.pipeline")

PAGES_PER_CHUNK = 5
OVERLAP_PAGES = 1

PAGE_SEPARATOR = "\n\n--- PAGE SEPARATOR ---\n\n"


@dataclass(frozen=True)
class TextChunk:
    text: str
    page_range: str
    start_page: int
    end_page: int

    def to_dict(self, index: Optional[int] = None) -> dict:
        d = {
            "text": self.text,
            "pageRange": self.page_range,
            "startPage": self.start_page,
            "endPage": self.end_page,
        }
        if index is not None:
            d["index"] = index
        return d


def format_page_range(start: int, end: int) -> str:
    return f"{start}" if start == end else f"{start}-{end}"


def page_marker(page_number: int, overlap: bool) -> str:
    if overlap:
        return f"=== PAGE {page_number} (OVERLAP - USE ONLY IF RELEVANT TO FOLLOWING PAGES) ==="
    return f"=== PAGE {page_number} ==="


def _page_text(doc: ProcessedDocument, page_index: int) -> str:
    """Paragraph text for one page, else an even slice of the flat text."""
    page = doc.pages[page_index]
    text = page.text
    if text.strip() or not doc.text:
        return text
    chars_per_page = math.ceil(len(doc.text) / doc.page_count)
    start = page_index * chars_per_page
    end = min((page_index + 1) * chars_per_page, len(doc.text))
    return doc.text[start:end]


def chunk_document(
    doc: ProcessedDocument,
    pages_per_chunk: int = PAGES_PER_CHUNK,
    overlap_pages: int = OVERLAP_PAGES,
) -> List[TextChunk]:
    """Split a processed document into overlapping page windows."""
    if pages_per_chunk < 1 or not 0 <= overlap_pages < pages_per_chunk:
        raise ValueError(
            f"Invalid chunking policy: pages_per_chunk={pages_per_chunk}, overlap_pages={overlap_pages}"
        )
    total = doc.page_count
    if total == 0:
        return [TextChunk(text=doc.text or "", page_range="1-1", start_page=1, end_page=1)]

    chunks: List[TextChunk] = []
    step = pages_per_chunk - overlap_pages
    for window_start in range(0, total, step):
        start_page = window_start + 1
        end_page = min(window_start + pages_per_chunk, total)
        has_overlap = window_start > 0

        parts = []
        for page_index in range(window_start, end_page):
            marker = page_marker(page_index + 1, has_overlap and page_index == window_start)
            parts.append(f"{marker}\n\n{_page_text(doc, page_index).strip()}")

        chunks.append(TextChunk(
            text=PAGE_SEPARATOR.join(parts).strip(),
            page_range=format_page_range(start_page, end_page),
            start_page=start_page,
            end_page=end_page,
        ))
        logger.debug("Chunk %d: pages %s", len(chunks), chunks[-1].page_range)
    return chunks


def placeholder_chunk(filename: str, size_bytes: int, reason: str = "") -> TextChunk:
    """Single stand-in chunk when no text could be extracted."""
    lines = [
        f"PDF Content from {filename}",
        "",
        f"This PDF contains {round(size_bytes / 1024)}KB of data.",
        "",
        "To extract actual text content, please configure Google Document AI with:",
        "- GOOGLE_CLOUD_PROJECT_ID",
        "- GOOGLE_DOCUMENT_AI_PROCESSOR_ID",
        "- Valid Google Cloud credentials",
    ]
    if reason:
        lines += ["", f"Extraction failed: {reason}"]
    return TextChunk(text="\n".join(lines), page_range="1", start_page=1, end_page=1)


def extract_chunks(
    content: bytes,
    filename: str,
    *,
    processor: Optional[DocumentProcessor] = None,
    basic_processor: Optional[DocumentProcessor] = None,
    mime_type: str = PDF_MIME,
    pages_per_chunk: int = PAGES_PER_CHUNK,
    overlap_pages: int = OVERLAP_PAGES,
) -> List[TextChunk]:
    """
    Extract page-bounded chunks from raw document bytes.

    One attempt per backend, no retries. processor is the structured OCR
    service (None when not configured); basic_processor defaults to PyMuPDF.
    """
    backends: List[DocumentProcessor] = []
    if processor is not None:
        backends.append(processor)
    else:
        logger.warning("Document AI not configured, falling back to basic text extraction")
    backends.append(basic_processor if basic_processor is not None else PyMuPDFProcessor())

    last_error = ""
    for backend in backends:
        try:
            doc = backend.process(content, mime_type)
        except DocumentProcessingError as e:
            logger.warning("%s extraction failed for %s: %s", backend.name, filename, e)
            last_error = str(e)
            continue
        except Exception as e:
            # Client library failures outside the structured error (auth, transport).
            logger.warning("%s extraction raised for %s: %s: %s", backend.name, filename, type(e).__name__, e)
            last_error = f"{type(e).__name__}: {e}"
            continue
        chunks = chunk_document(doc, pages_per_chunk, overlap_pages)
        logger.info(
            "Extracted %d chunks from %s (%d pages, %s)",
            len(chunks), filename, doc.page_count, doc.method or backend.name,
        )
        return chunks

    return [placeholder_chunk(filename, len(content), last_error)]
