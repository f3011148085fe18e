"""
Document text extraction: Google Document AI (OCR + page structure) with a
local PyMuPDF backend for basic extraction.

Both backends emit a ProcessedDocument: the flat document text plus, when
available, per-page ordered paragraph text. The chunker depends on nothing else.
"""

from __future__ import annotations

import base64
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

logger = logging.getLogger("quizling.ocr")

PDF_MIME = "application/pdf"


@dataclass
class DocumentProcessingError(Exception):
    """Structured extraction failure."""
    kind: str  # not_configured | provider_error | empty_document | invalid_document
    message: str
    details: Optional[Dict[str, Any]] = None

    def __str__(self) -> str:
        return f"{self.kind}: {self.message}"


@dataclass
class PageText:
    paragraphs: List[str] = field(default_factory=list)

    @property
    def text(self) -> str:
        return "\n\n".join(self.paragraphs)


@dataclass
class ProcessedDocument:
    text: str
    pages: List[PageText] = field(default_factory=list)
    method: str = ""

    @property
    def page_count(self) -> int:
        return len(self.pages)


class DocumentProcessor(ABC):
    """Turns raw document bytes into text plus page structure."""

    name: str = "base"

    @abstractmethod
    def process(self, content: bytes, mime_type: str) -> ProcessedDocument:
        """Return the processed document or raise DocumentProcessingError."""
        ...


def _anchor_text(full_text: str, text_anchor: Any) -> str:
    """Resolve a Document AI text anchor against the flat document text."""
    segments = getattr(text_anchor, "text_segments", None) or []
    parts = []
    for seg in segments:
        start = int(getattr(seg, "start_index", 0) or 0)
        end = int(getattr(seg, "end_index", 0) or 0)
        parts.append(full_text[start:end])
    return "".join(parts)


def document_from_docai(document: Any) -> ProcessedDocument:
    """Map a Document AI Document message to a ProcessedDocument."""
    text = getattr(document, "text", "") or ""
    pages: List[PageText] = []
    for page in getattr(document, "pages", None) or []:
        paragraphs = []
        for paragraph in getattr(page, "paragraphs", None) or []:
            layout = getattr(paragraph, "layout", None)
            if layout is None:
                continue
            ptext = _anchor_text(text, layout.text_anchor).strip()
            if ptext:
                paragraphs.append(ptext)
        pages.append(PageText(paragraphs=paragraphs))
    return ProcessedDocument(text=text, pages=pages, method="document_ai")


class DocumentAIProcessor(DocumentProcessor):
    """Google Cloud Document AI processor (OCR processor recommended)."""

    def __init__(
        self,
        project_id: str,
        processor_id: str,
        location: str = "us",
        credentials_b64: Optional[str] = None,
    ):
        self.project_id = project_id
        self.processor_id = processor_id
        self.location = location or "us"
        self.credentials_b64 = credentials_b64
        self.name = "document_ai"
        self._client = None

    @property
    def processor_name(self) -> str:
        return f"projects/{self.project_id}/locations/{self.location}/processors/{self.processor_id}"

    def _get_client(self):
        if self._client is None:
            from google.api_core.client_options import ClientOptions
            from google.auth.exceptions import GoogleAuthError
            from google.cloud import documentai

            kwargs: Dict[str, Any] = {
                "client_options": ClientOptions(api_endpoint=f"{self.location}-documentai.googleapis.com"),
            }
            info = None
            if self.credentials_b64:
                try:
                    info = json.loads(base64.b64decode(self.credentials_b64).decode("utf-8"))
                except (ValueError, UnicodeDecodeError) as e:
                    raise DocumentProcessingError(
                        kind="not_configured",
                        message="GOOGLE_APPLICATION_CREDENTIALS_B64 must be base64-encoded JSON",
                        details={"error": str(e)},
                    )
            try:
                if info is not None:
                    from google.oauth2 import service_account
                    kwargs["credentials"] = service_account.Credentials.from_service_account_info(info)
                self._client = documentai.DocumentProcessorServiceClient(**kwargs)
            except (GoogleAuthError, ValueError) as e:
                # No default credentials, or a malformed service-account record.
                raise DocumentProcessingError(
                    kind="not_configured",
                    message="Document AI credentials are missing or invalid",
                    details={"error": str(e)},
                )
            logger.info("Document AI client initialized for %s", self.processor_name)
        return self._client

    def process(self, content: bytes, mime_type: str) -> ProcessedDocument:
        from google.api_core.exceptions import GoogleAPIError
        from google.auth.exceptions import GoogleAuthError
        from google.cloud import documentai

        client = self._get_client()
        request = documentai.ProcessRequest(
            name=self.processor_name,
            raw_document=documentai.RawDocument(content=content, mime_type=mime_type),
        )
        try:
            result = client.process_document(request=request)
        except (GoogleAPIError, GoogleAuthError) as e:
            raise DocumentProcessingError(
                kind="provider_error",
                message="Document AI processing failed",
                details={"error": str(e)},
            )
        if not result.document:
            raise DocumentProcessingError(kind="empty_document", message="No document returned from Document AI")
        doc = document_from_docai(result.document)
        logger.info("Document AI: %d chars, %d pages", len(doc.text), doc.page_count)
        return doc


def _blocks_to_paragraphs(blocks) -> List[str]:
    """Text blocks sorted top-to-bottom, then left-to-right."""
    text_blocks = [b for b in blocks if b[6] == 0]
    text_blocks.sort(key=lambda b: (b[1], b[0]))
    paragraphs = []
    for b in text_blocks:
        t = b[4].strip()
        if t:
            paragraphs.append(t)
    return paragraphs


class PyMuPDFProcessor(DocumentProcessor):
    """Local basic extraction for text-layer PDFs. No OCR."""

    name = "pymupdf"

    def process(self, content: bytes, mime_type: str) -> ProcessedDocument:
        if mime_type != PDF_MIME:
            raise DocumentProcessingError(
                kind="invalid_document",
                message=f"Basic extraction supports PDF only, got {mime_type}",
            )
        import fitz

        try:
            doc = fitz.open(stream=content, filetype="pdf")
        except (RuntimeError, ValueError) as e:
            raise DocumentProcessingError(
                kind="invalid_document",
                message="Could not open PDF",
                details={"error": str(e)},
            )
        pages: List[PageText] = []
        with doc:
            for page in doc:
                pages.append(PageText(paragraphs=_blocks_to_paragraphs(page.get_text("blocks") or [])))
        text = "\n\n".join(p.text for p in pages)
        if not text.strip():
            raise DocumentProcessingError(
                kind="empty_document",
                message="PDF has no extractable text layer",
                details={"pages": len(pages)},
            )
        return ProcessedDocument(text=text, pages=pages, method="pymupdf")


class FakeDocumentProcessor(DocumentProcessor):
    """Test double: returns a canned document or raises."""

    def __init__(self, document: Optional[ProcessedDocument] = None, error: Optional[BaseException] = None):
        self.document = document
        self.error = error
        self.calls: List[Dict[str, Any]] = []
        self.name = "fake"

    def process(self, content: bytes, mime_type: str) -> ProcessedDocument:
        self.calls.append({"size": len(content), "mime_type": mime_type})
        if self.error is not None:
            raise self.error
        if self.document is None:
            return ProcessedDocument(text="", pages=[], method="fake")
        return self.document


def fake_document(pages: List[str], method: str = "fake") -> ProcessedDocument:
    """Build a ProcessedDocument with one paragraph per non-empty page string."""
    page_objs = [PageText(paragraphs=[p] if p else []) for p in pages]
    return ProcessedDocument(text="\n\n".join(pages), pages=page_objs, method=method)


def build_document_processor(settings) -> Optional[DocumentProcessor]:
    """Document AI processor when configured, else None."""
    project_id = getattr(settings, "gcp_project_id", None)
    processor_id = getattr(settings, "docai_processor_id", None)
    if not (project_id and processor_id):
        return None
    return DocumentAIProcessor(
        project_id=project_id,
        processor_id=processor_id,
        location=getattr(settings, "gcp_location", None) or "us",
        credentials_b64=getattr(settings, "google_credentials_b64", None),
    )
