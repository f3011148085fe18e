"""Tests for background Q&A generation jobs."""

import asyncio
import json
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from server.config import Settings
from server.services import generation_job_service as gjs
from server.services.document_processing import FakeDocumentProcessor, fake_document
from server.services.llm.provider import FakeProvider
from server.services.qa_pipeline import QAPipeline

_REPLY = json.dumps({"qa_pairs": [{"question": "What is a gene?", "correctAnswer": 1}]})


def _pipeline(provider, pages=6):
    basic = FakeDocumentProcessor(document=fake_document([f"p{i}" for i in range(pages)]))
    settings = Settings(openai_api_key="sk-test", gcp_project_id="", docai_processor_id="")
    return QAPipeline(provider, None, basic_processor=basic, settings=settings)


def test_job_runs_to_completion():
    gjs.reset_jobs()
    job = gjs.create_job("genes.pdf")
    assert job.status == gjs.QUEUED
    asyncio.run(gjs.run_generation_job(job.job_id, _pipeline(FakeProvider(responses=[_REPLY])), b"%PDF"))
    job = gjs.get_job(job.job_id)
    assert job.status == gjs.COMPLETED
    assert job.percent == 100
    assert job.result["totalChunks"] == 2
    assert job.result["totalQAPairs"] == 2
    assert job.result["uniqueQAPairs"] == 1
    assert job.result["qaPairs"][0]["question"] == "What is a gene?"


def test_cancel_before_start():
    gjs.reset_jobs()
    job = gjs.create_job("genes.pdf")
    assert gjs.cancel_job(job.job_id) is True
    provider = FakeProvider(responses=[_REPLY])
    asyncio.run(gjs.run_generation_job(job.job_id, _pipeline(provider), b"%PDF"))
    assert gjs.get_job(job.job_id).status == gjs.CANCELLED
    assert provider.calls == []


def test_cancel_during_run_stops_between_chunks():
    gjs.reset_jobs()
    job = gjs.create_job("genes.pdf")

    def respond(prompt):
        gjs.cancel_job(job.job_id)
        return _REPLY

    provider = FakeProvider(responses=[respond])
    asyncio.run(gjs.run_generation_job(job.job_id, _pipeline(provider, pages=12), b"%PDF"))
    assert gjs.get_job(job.job_id).status == gjs.CANCELLED
    assert len(provider.calls) == 1


class _BrokenPipeline:
    async def run_pdf(self, *args, **kwargs):
        raise RuntimeError("disk on fire")


def test_failed_job_records_error():
    gjs.reset_jobs()
    job = gjs.create_job("genes.pdf")
    asyncio.run(gjs.run_generation_job(job.job_id, _BrokenPipeline(), b"%PDF"))
    job = gjs.get_job(job.job_id)
    assert job.status == gjs.FAILED
    assert "disk on fire" in job.error


def test_extraction_failure_still_completes_with_placeholder():
    gjs.reset_jobs()
    job = gjs.create_job("genes.pdf")
    basic = FakeDocumentProcessor(error=RuntimeError("disk on fire"))
    pipeline = QAPipeline(FakeProvider(), None, basic_processor=basic, settings=Settings(openai_api_key="sk-test"))
    asyncio.run(gjs.run_generation_job(job.job_id, pipeline, b"%PDF"))
    job = gjs.get_job(job.job_id)
    assert job.status == gjs.COMPLETED
    assert job.result["totalChunks"] == 1


def test_cancel_unknown_or_finished_job():
    gjs.reset_jobs()
    assert gjs.cancel_job("nope") is False
    job = gjs.create_job("x.pdf")
    job.status = gjs.COMPLETED
    assert gjs.cancel_job(job.job_id) is False


def test_snapshot_and_list():
    gjs.reset_jobs()
    job = gjs.create_job("x.pdf")
    snap = job.snapshot()
    assert snap["job_id"] == job.job_id
    assert snap["status"] == "queued"
    assert snap["result"] is None
    assert gjs.list_jobs() == [job]
