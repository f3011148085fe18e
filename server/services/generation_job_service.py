"""Q&A generation as a background job with progress streaming and cancel."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from server.services.qa_pipeline import PipelineCancelled, QAPipeline

logger = logging.getLogger("quizling.jobs")

# Job states
QUEUED = "queued"
RUNNING = "running"
COMPLETED = "completed"
FAILED = "failed"
CANCELLED = "cancelled"

TERMINAL = (COMPLETED, FAILED, CANCELLED)


@dataclass
class GenerationJob:
    job_id: str
    filename: str
    status: str = QUEUED
    stage: str = ""
    percent: int = 0
    error: Optional[str] = None
    cancelled: bool = False
    result: Optional[Dict[str, Any]] = None  # qaPairs, totalChunks, totalQAPairs, uniqueQAPairs

    def snapshot(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "filename": self.filename,
            "status": self.status,
            "stage": self.stage,
            "percent": self.percent,
            "error": self.error,
            "result": self.result,
        }


_jobs: Dict[str, GenerationJob] = {}


def create_job(filename: str) -> GenerationJob:
    job = GenerationJob(job_id=str(uuid.uuid4()), filename=filename)
    _jobs[job.job_id] = job
    return job


def get_job(job_id: str) -> Optional[GenerationJob]:
    return _jobs.get(job_id)


def list_jobs() -> List[GenerationJob]:
    return list(_jobs.values())


def cancel_job(job_id: str) -> bool:
    job = _jobs.get(job_id)
    if not job:
        return False
    if job.status in TERMINAL:
        return False
    job.cancelled = True
    return True


def reset_jobs() -> None:
    """Forget all jobs (for tests)."""
    _jobs.clear()


async def run_generation_job(job_id: str, pipeline: QAPipeline, content: bytes) -> None:
    """Run the PDF pipeline for a queued job. Updates job state in place."""
    job = _jobs.get(job_id)
    if not job or job.status != QUEUED:
        return
    if job.cancelled:
        job.status = CANCELLED
        job.stage = "Cancelled"
        return

    job.status = RUNNING

    def emit(stage: str, percent: int) -> None:
        job.stage = stage
        job.percent = max(job.percent, percent)

    try:
        result = await pipeline.run_pdf(
            content,
            job.filename,
            on_progress=emit,
            should_cancel=lambda: job.cancelled,
        )
    except PipelineCancelled:
        job.status = CANCELLED
        job.stage = "Cancelled"
        return
    except Exception as e:
        logger.exception("Generation job %s failed", job_id)
        job.status = FAILED
        job.error = str(e)
        job.stage = "Failed"
        return

    job.result = {
        "qaPairs": [p.to_dict() for p in result.qa_pairs],
        "totalChunks": result.total_chunks,
        "totalQAPairs": result.total_generated,
        "uniqueQAPairs": len(result.qa_pairs),
    }
    job.status = COMPLETED
