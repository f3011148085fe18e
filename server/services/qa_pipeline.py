"""
Pipeline driver: chunk extraction -> per-chunk generation -> deduplication.

Chunks are generated strictly one at a time, in page order. A failing chunk or
file is logged and skipped; the run only fails up front (no model credential)
or when the caller cancels between chunks.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, Sequence

from server.services.chunker import OVERLAP_PAGES, PAGES_PER_CHUNK, TextChunk, extract_chunks
from server.services.document_processing import PDF_MIME, DocumentProcessor
from server.services.llm.prompts import (
    IMAGE_SYSTEM_PROMPT,
    VISION_SYSTEM_PROMPT,
    ocr_text_qa_prompt,
    vision_qa_prompt,
)
from server.services.llm.provider import ImageInput, LLMError, LLMProvider
from server.services.qa_dedupe import dedupe_qa_pairs
from server.services.qa_pairs import (
    IMAGE_PAGE_RANGE,
    Empty,
    QAPair,
    generate_qa_pairs,
    request_qa_pairs,
)

logger = logging.getLogger("quizling.pipeline")

ProgressCallback = Callable[[str, int], None]
ChunkGenerator = Callable[[LLMProvider, str, str], Awaitable[List[QAPair]]]


class ConfigurationError(Exception):
    """No model credential configured; nothing can be generated."""


class PipelineCancelled(Exception):
    """Caller asked to stop between chunks."""


class ImageProcessingError(Exception):
    """Neither OCR+model nor direct vision produced pairs for an image."""

    def __init__(self, message: str, ocr_text: Optional[str] = None):
        super().__init__(message)
        self.ocr_text = ocr_text


@dataclass
class SourceFile:
    filename: str
    content: bytes
    mime_type: str


@dataclass
class FileOutcome:
    filename: str
    ok: bool
    chunks: int = 0
    qa_pairs: int = 0
    method: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "fileName": self.filename,
            "success": self.ok,
            "chunks": self.chunks,
            "qaPairs": self.qa_pairs,
            "processingMethod": self.method,
            "error": self.error,
        }


@dataclass
class PipelineResult:
    qa_pairs: List[QAPair]
    total_chunks: int = 0
    total_generated: int = 0
    files: List[FileOutcome] = field(default_factory=list)


@dataclass
class ImageResult:
    qa_pairs: List[QAPair]
    method: str
    ocr_text: Optional[str] = None


class _Progress:
    """Forwards (stage, percent) to the callback, never letting percent decrease."""

    def __init__(self, callback: Optional[ProgressCallback]):
        self.callback = callback
        self.percent = 0
        self.stage = ""

    def __call__(self, stage: str, percent: float) -> None:
        self.percent = max(self.percent, min(100, int(round(percent))))
        self.stage = stage
        if self.callback is not None:
            self.callback(stage, self.percent)


def _scaled(base: float, span: float) -> Callable[[float], float]:
    return lambda pct: base + span * pct / 100.0


class QAPipeline:
    """Sequences extraction, generation and dedup for one or more documents."""

    def __init__(
        self,
        provider: Optional[LLMProvider],
        processor: Optional[DocumentProcessor] = None,
        *,
        basic_processor: Optional[DocumentProcessor] = None,
        settings=None,
        generate: Optional[ChunkGenerator] = None,
    ):
        if provider is None:
            raise ConfigurationError("No model credential configured. Set OPENAI_API_KEY.")
        self.provider = provider
        self.processor = processor
        self.basic_processor = basic_processor
        self.settings = settings
        self.generate = generate or generate_qa_pairs
        self.pages_per_chunk = getattr(settings, "pages_per_chunk", PAGES_PER_CHUNK)
        self.overlap_pages = getattr(settings, "overlap_pages", OVERLAP_PAGES)

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    async def extract(self, content: bytes, filename: str) -> List[TextChunk]:
        return await asyncio.to_thread(
            extract_chunks,
            content,
            filename,
            processor=self.processor,
            basic_processor=self.basic_processor,
            pages_per_chunk=self.pages_per_chunk,
            overlap_pages=self.overlap_pages,
        )

    async def generate_for_chunks(
        self,
        chunks: Sequence[TextChunk],
        progress: Callable[[str, float], None],
        *,
        start_pct: float = 40,
        end_pct: float = 90,
        should_cancel: Optional[Callable[[], bool]] = None,
    ) -> List[QAPair]:
        collected: List[QAPair] = []
        total = len(chunks)
        for i, chunk in enumerate(chunks):
            if should_cancel is not None and should_cancel():
                raise PipelineCancelled()
            progress(f"Processing chunk {i + 1}/{total}", start_pct + (end_pct - start_pct) * i / max(total, 1))
            try:
                pairs = await self.generate(self.provider, chunk.text, chunk.page_range)
            except Exception as e:
                logger.warning("Chunk %d/%d (pages %s) failed: %s", i + 1, total, chunk.page_range, e)
                continue
            logger.info("Chunk %d/%d (pages %s): %d pairs", i + 1, total, chunk.page_range, len(pairs))
            collected.extend(pairs)
        return collected

    # ------------------------------------------------------------------
    # Single PDF
    # ------------------------------------------------------------------

    async def run_pdf(
        self,
        content: bytes,
        filename: str,
        on_progress: Optional[ProgressCallback] = None,
        should_cancel: Optional[Callable[[], bool]] = None,
    ) -> PipelineResult:
        progress = _Progress(on_progress)
        progress("Extracting text from PDF", 10)
        chunks = await self.extract(content, filename)

        progress("Processing text chunks", 40)
        generated = await self.generate_for_chunks(chunks, progress, should_cancel=should_cancel)

        progress("Finalizing results", 95)
        unique = dedupe_qa_pairs(generated)
        logger.info(
            "%s: %d chunks, %d pairs, %d after deduplication",
            filename, len(chunks), len(generated), len(unique),
        )
        progress("Complete", 100)
        return PipelineResult(
            qa_pairs=unique,
            total_chunks=len(chunks),
            total_generated=len(generated),
            files=[FileOutcome(filename=filename, ok=True, chunks=len(chunks), qa_pairs=len(generated))],
        )

    # ------------------------------------------------------------------
    # Images
    # ------------------------------------------------------------------

    def _image_call_kwargs(self) -> dict:
        return {
            "json_mode": True,
            "temperature": getattr(self.settings, "llm_temperature", 0.3),
            "max_tokens": getattr(self.settings, "llm_max_tokens", 2000),
            "model": getattr(self.settings, "vision_model", None),
        }

    async def _image_via_ocr(self, content: bytes, mime_type: str) -> ImageResult:
        doc = await asyncio.to_thread(self.processor.process, content, mime_type)
        text = doc.text
        if not text.strip():
            raise ImageProcessingError("No text could be extracted from the image", ocr_text=text)
        logger.info("OCR extraction successful. Text length: %d", len(text))
        result = await request_qa_pairs(
            self.provider,
            ocr_text_qa_prompt(text),
            IMAGE_PAGE_RANGE,
            system=IMAGE_SYSTEM_PROMPT,
            **self._image_call_kwargs(),
        )
        if isinstance(result, Empty):
            raise ImageProcessingError(f"Failed to parse extraction results: {result.reason}", ocr_text=text)
        return ImageResult(qa_pairs=list(result.pairs), method="Document AI + OpenAI", ocr_text=text)

    async def _image_via_vision(self, content: bytes, mime_type: str) -> ImageResult:
        result = await request_qa_pairs(
            self.provider,
            vision_qa_prompt(),
            IMAGE_PAGE_RANGE,
            system=VISION_SYSTEM_PROMPT,
            image=ImageInput(content=content, mime_type=mime_type),
            **self._image_call_kwargs(),
        )
        if isinstance(result, Empty):
            raise ImageProcessingError(f"Failed to parse extraction results: {result.reason}")
        return ImageResult(qa_pairs=list(result.pairs), method="Direct OpenAI Vision")

    async def run_image(self, content: bytes, filename: str, mime_type: str) -> ImageResult:
        """OCR + model when Document AI is configured, falling back to direct vision."""
        if self.processor is not None:
            try:
                return await self._image_via_ocr(content, mime_type)
            except Exception as e:
                logger.warning("OCR processing failed for %s, falling back to direct vision: %s", filename, e)
        try:
            return await self._image_via_vision(content, mime_type)
        except LLMError as e:
            raise ImageProcessingError(f"Direct vision processing failed: {e}")

    # ------------------------------------------------------------------
    # Multiple files
    # ------------------------------------------------------------------

    async def run_files(
        self,
        files: Sequence[SourceFile],
        on_progress: Optional[ProgressCallback] = None,
        should_cancel: Optional[Callable[[], bool]] = None,
    ) -> PipelineResult:
        """Process PDFs and images in order; merge with the strict dedup key."""
        progress = _Progress(on_progress)
        total_files = len(files)
        aggregate: List[QAPair] = []
        outcomes: List[FileOutcome] = []
        total_chunks = 0

        for n, f in enumerate(files):
            if should_cancel is not None and should_cancel():
                raise PipelineCancelled()
            base = 95 * n / max(total_files, 1)
            span = 95 / max(total_files, 1)
            scale = _scaled(base, span)
            label = f"File {n + 1}/{total_files} ({f.filename})"
            try:
                if f.mime_type == PDF_MIME:
                    progress(f"{label}: extracting text", scale(10))
                    chunks = await self.extract(f.content, f.filename)
                    total_chunks += len(chunks)
                    pairs = await self.generate_for_chunks(
                        chunks,
                        lambda stage, pct: progress(f"{label}: {stage}", pct),
                        start_pct=scale(40),
                        end_pct=scale(100),
                        should_cancel=should_cancel,
                    )
                    outcome = FileOutcome(f.filename, ok=True, chunks=len(chunks), qa_pairs=len(pairs), method="pdf")
                else:
                    progress(f"{label}: processing image", scale(10))
                    image_result = await self.run_image(f.content, f.filename, f.mime_type)
                    pairs = image_result.qa_pairs
                    outcome = FileOutcome(f.filename, ok=True, qa_pairs=len(pairs), method=image_result.method)
            except PipelineCancelled:
                raise
            except Exception as e:
                logger.warning("File %s failed, continuing with remaining files: %s", f.filename, e)
                outcomes.append(FileOutcome(f.filename, ok=False, error=str(e)))
                continue
            aggregate.extend(pairs)
            outcomes.append(outcome)

        progress("Finalizing results", 95)
        unique = dedupe_qa_pairs(aggregate, strict=True)
        logger.info("%d files: %d pairs, %d after deduplication", total_files, len(aggregate), len(unique))
        progress("Complete", 100)
        return PipelineResult(
            qa_pairs=unique,
            total_chunks=total_chunks,
            total_generated=len(aggregate),
            files=outcomes,
        )
