"""FastAPI application -- routes for the Quizling Q&A extraction service."""

import asyncio
import json as _json
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import List, Optional

from fastapi import BackgroundTasks, Depends, FastAPI, File, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse

from server.__version__ import __version__
from server.config import Settings
from server.dependencies import get_document_processor, get_llm_provider, get_settings
from server.schemas import (
    CapabilitiesResponse,
    ChatRequest,
    ChatResponse,
    ExtractChunksResponse,
    JobStartResponse,
    JobStatusResponse,
    ProcessChunkRequest,
    ProcessChunkResponse,
    ProcessFilesResponse,
    ProcessImageResponse,
    ProcessPdfResponse,
    QuizGradeRequest,
    QuizGradeResponse,
)
from server.services import chat_service, generation_job_service, quiz_service
from server.services.chunker import extract_chunks
from server.services.document_processing import DocumentProcessor
from server.services.llm.provider import LLMError, LLMProvider
from server.services.qa_pairs import generate_qa_pairs, pairs_from_dicts
from server.services.qa_pipeline import (
    ConfigurationError,
    ImageProcessingError,
    QAPipeline,
    SourceFile,
)
from server.services.uploads import UploadValidationError, validate_upload

logger = logging.getLogger("quizling")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan: report configuration gaps. Clients are built lazily per request."""
    ts = datetime.utcnow().isoformat() + "Z"
    logger.info("[%s] Startup: begin", ts)
    get_settings().log_config_report()
    yield
    logger.info("[%s] Shutdown: complete", datetime.utcnow().isoformat() + "Z")


app = FastAPI(title="Quizling", version=__version__, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _pipeline_or_503(
    provider: Optional[LLMProvider],
    processor: Optional[DocumentProcessor],
    settings: Settings,
    what: str = "Q&A extraction",
) -> QAPipeline:
    try:
        return QAPipeline(provider, processor, settings=settings)
    except ConfigurationError:
        raise HTTPException(
            status_code=503,
            detail=f"{what} is not available. Please configure OpenAI API key.",
        )


async def _read_validated(file: UploadFile, settings: Settings, kind: str):
    """Read an upload and validate it. Returns (content, mime)."""
    content = await file.read()
    try:
        mime = validate_upload(
            file.filename or "",
            file.content_type,
            len(content),
            settings.max_upload_bytes,
            kind=kind,
        )
    except UploadValidationError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    return content, mime


# ---- Health (no dependencies, always fast) ----

@app.get("/health")
def health():
    """Minimal health check. No deps, no client construction."""
    return {"ok": True}


@app.get("/capabilities", response_model=CapabilitiesResponse)
def capabilities(settings: Settings = Depends(get_settings)):
    errors, warnings = settings.validate()
    return {**settings.capabilities(), "errors": errors, "warnings": warnings}


# ---- Chunks ----

@app.post("/extract-chunks", response_model=ExtractChunksResponse)
async def extract_chunks_route(
    pdf: UploadFile = File(...),
    settings: Settings = Depends(get_settings),
    processor: Optional[DocumentProcessor] = Depends(get_document_processor),
):
    """Split a PDF into page-bounded chunks without generating questions."""
    content, mime = await _read_validated(pdf, settings, "pdf")
    chunks = await asyncio.to_thread(
        extract_chunks,
        content,
        pdf.filename or "document.pdf",
        processor=processor,
        pages_per_chunk=settings.pages_per_chunk,
        overlap_pages=settings.overlap_pages,
    )
    return {
        "chunks": [c.to_dict(index=i) for i, c in enumerate(chunks)],
        "metadata": {
            "fileName": pdf.filename or "",
            "fileSize": len(content),
            "fileType": mime,
            "totalChunks": len(chunks),
        },
    }


@app.post("/process-chunk", response_model=ProcessChunkResponse)
async def process_chunk(
    body: ProcessChunkRequest,
    settings: Settings = Depends(get_settings),
    provider: Optional[LLMProvider] = Depends(get_llm_provider),
):
    """Generate pairs for one chunk. An upstream failure yields an empty list."""
    if not body.text.strip() or not body.pageRange.strip():
        raise HTTPException(status_code=400, detail="Text and page range are required")
    if provider is None:
        raise HTTPException(
            status_code=503,
            detail="Q&A extraction is not available. Please configure OpenAI API key.",
        )
    logger.info("Processing chunk %d/%d (Pages %s)", body.chunkIndex + 1, body.totalChunks, body.pageRange)
    pairs = await generate_qa_pairs(provider, body.text, body.pageRange, temperature=settings.llm_temperature)
    return {
        "qaPairs": [p.to_dict() for p in pairs],
        "chunkIndex": body.chunkIndex,
        "totalChunks": body.totalChunks,
        "pageRange": body.pageRange,
        "qaPairsCount": len(pairs),
    }


# ---- Documents ----

@app.post("/process-pdf", response_model=ProcessPdfResponse)
async def process_pdf(
    pdf: UploadFile = File(...),
    settings: Settings = Depends(get_settings),
    provider: Optional[LLMProvider] = Depends(get_llm_provider),
    processor: Optional[DocumentProcessor] = Depends(get_document_processor),
):
    pipeline = _pipeline_or_503(provider, processor, settings, "PDF Q&A extraction")
    content, mime = await _read_validated(pdf, settings, "pdf")
    result = await pipeline.run_pdf(content, pdf.filename or "document.pdf")
    return {
        "qaPairs": [p.to_dict() for p in result.qa_pairs],
        "metadata": {
            "fileName": pdf.filename or "",
            "fileSize": len(content),
            "fileType": mime,
            "totalChunks": result.total_chunks,
            "totalQAPairs": result.total_generated,
            "uniqueQAPairs": len(result.qa_pairs),
        },
    }


@app.post("/process-image", response_model=ProcessImageResponse)
async def process_image(
    image: UploadFile = File(...),
    settings: Settings = Depends(get_settings),
    provider: Optional[LLMProvider] = Depends(get_llm_provider),
    processor: Optional[DocumentProcessor] = Depends(get_document_processor),
):
    pipeline = _pipeline_or_503(provider, processor, settings, "Image processing")
    content, mime = await _read_validated(image, settings, "image")
    try:
        result = await pipeline.run_image(content, image.filename or "image", mime)
    except ImageProcessingError as e:
        logger.error("Image processing failed for %s: %s", image.filename, e)
        raise HTTPException(status_code=500, detail=str(e))
    return {
        "qaPairs": [p.to_dict() for p in result.qa_pairs],
        "metadata": {
            "fileName": image.filename or "",
            "fileSize": len(content),
            "fileType": mime,
            "processingMethod": result.method,
            "totalQAPairs": len(result.qa_pairs),
        },
        "ocrText": result.ocr_text,
    }


@app.post("/process-files", response_model=ProcessFilesResponse)
async def process_files(
    files: List[UploadFile] = File(...),
    settings: Settings = Depends(get_settings),
    provider: Optional[LLMProvider] = Depends(get_llm_provider),
    processor: Optional[DocumentProcessor] = Depends(get_document_processor),
):
    """Process several PDFs/images and merge their pairs with the strict dedup key."""
    pipeline = _pipeline_or_503(provider, processor, settings)
    sources = []
    for f in files:
        content, mime = await _read_validated(f, settings, "any")
        sources.append(SourceFile(filename=f.filename or "upload", content=content, mime_type=mime))
    result = await pipeline.run_files(sources)
    return {
        "qaPairs": [p.to_dict() for p in result.qa_pairs],
        "files": [o.to_dict() for o in result.files],
        "totalChunks": result.total_chunks,
        "totalQAPairs": result.total_generated,
        "uniqueQAPairs": len(result.qa_pairs),
    }


# ---- Chat ----

@app.post("/chatbot", response_model=ChatResponse)
async def chatbot(
    body: ChatRequest,
    settings: Settings = Depends(get_settings),
    provider: Optional[LLMProvider] = Depends(get_llm_provider),
):
    if not body.message.strip():
        raise HTTPException(status_code=400, detail="Message is required")
    if provider is None:
        raise HTTPException(
            status_code=503,
            detail="Chatbot is not available. OpenAI API key not configured.",
        )
    pairs = pairs_from_dicts([p.model_dump() for p in body.qaPairs])
    try:
        text = await chat_service.reply(
            provider,
            body.message,
            pairs,
            context=body.context,
            history=[m.model_dump() for m in body.conversationHistory],
            settings=settings,
        )
    except LLMError as e:
        logger.error("Chatbot request failed: %s", e)
        status = 503 if e.kind in ("unavailable", "timeout") else 502
        raise HTTPException(status_code=status, detail="Failed to process chatbot request")
    return {"response": text}


# ---- Quiz ----

@app.post("/quiz/grade", response_model=QuizGradeResponse)
def quiz_grade(body: QuizGradeRequest):
    pairs = pairs_from_dicts([p.model_dump() for p in body.qaPairs])
    return quiz_service.grade_quiz(pairs, body.answers)


# ---- Generation jobs (job + SSE + cancel) ----

@app.post("/jobs/pdf", response_model=JobStartResponse)
async def jobs_pdf_start(
    background_tasks: BackgroundTasks,
    pdf: UploadFile = File(...),
    settings: Settings = Depends(get_settings),
    provider: Optional[LLMProvider] = Depends(get_llm_provider),
    processor: Optional[DocumentProcessor] = Depends(get_document_processor),
):
    """Start PDF Q&A generation job. Returns job_id."""
    pipeline = _pipeline_or_503(provider, processor, settings, "PDF Q&A extraction")
    content, _ = await _read_validated(pdf, settings, "pdf")
    job = generation_job_service.create_job(pdf.filename or "document.pdf")
    background_tasks.add_task(generation_job_service.run_generation_job, job.job_id, pipeline, content)
    return {"job_id": job.job_id}


@app.get("/jobs/{job_id}", response_model=JobStatusResponse)
def jobs_status(job_id: str):
    """Get generation job status (for polling)."""
    job = generation_job_service.get_job(job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    return job.snapshot()


@app.get("/jobs/{job_id}/stream")
def jobs_stream(job_id: str):
    """SSE stream of generation progress."""

    async def event_generator():
        job = generation_job_service.get_job(job_id)
        if not job:
            yield f"data: {_json.dumps({'error': 'Job not found'})}\n\n"
            return
        last = None
        while True:
            job = generation_job_service.get_job(job_id)
            if not job:
                break
            state = job.snapshot()
            key = (state["status"], state["stage"], state["percent"])
            if key != last:
                last = key
                yield f"data: {_json.dumps(state)}\n\n"
            if job.status in generation_job_service.TERMINAL:
                break
            await asyncio.sleep(0.25)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@app.post("/jobs/{job_id}/cancel")
def jobs_cancel(job_id: str):
    """Cancel generation job. Takes effect before the next chunk."""
    ok = generation_job_service.cancel_job(job_id)
    if not ok:
        raise HTTPException(status_code=400, detail="Job not found or already finished")
    return {"ok": True}
