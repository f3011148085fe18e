"""Tests for the generate_qa command-line entry point."""

import json
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from scripts import generate_qa
from server.config import Settings
from server.services.document_processing import FakeDocumentProcessor, fake_document
from server.services.llm.provider import FakeProvider
from server.services.qa_pipeline import QAPipeline

_REPLY = json.dumps({"qa_pairs": [{"question": "What is entropy?", "correctAnswer": 2}]})


def _settings(**kw):
    return Settings(openai_api_key=kw.pop("openai_api_key", "sk-test"), gcp_project_id="", docai_processor_id="", **kw)


def _pipeline(settings):
    basic = FakeDocumentProcessor(document=fake_document(["Entropy measures disorder."]))
    return QAPipeline(FakeProvider(responses=[_REPLY]), None, basic_processor=basic, settings=settings)


def test_single_pdf_writes_json(tmp_path, capsys):
    pdf = tmp_path / "thermo.pdf"
    pdf.write_bytes(b"%PDF-1.4 test")
    out = tmp_path / "quiz.json"
    settings = _settings()
    rc = generate_qa.main([str(pdf), "--out", str(out), "--quiet"], settings=settings, pipeline=_pipeline(settings))
    assert rc == 0
    payload = json.loads(out.read_text(encoding="utf-8"))
    assert payload["uniqueQAPairs"] == 1
    assert payload["qaPairs"][0]["question"] == "What is entropy?"
    assert payload["qaPairs"][0]["correctAnswer"] == 2
    assert "Wrote 1 Q&A pairs" in capsys.readouterr().err


def test_progress_printed_to_stderr(tmp_path, capsys):
    pdf = tmp_path / "thermo.pdf"
    pdf.write_bytes(b"%PDF-1.4 test")
    settings = _settings()
    rc = generate_qa.main([str(pdf)], settings=settings, pipeline=_pipeline(settings))
    assert rc == 0
    captured = capsys.readouterr()
    assert "[100%] Complete" in captured.err
    assert json.loads(captured.out)["totalChunks"] == 1


def test_missing_file_exits_1(tmp_path):
    assert generate_qa.main([str(tmp_path / "nope.pdf")], settings=_settings()) == 1


def test_unsupported_type_exits_1(tmp_path):
    doc = tmp_path / "notes.docx"
    doc.write_bytes(b"PK")
    assert generate_qa.main([str(doc)], settings=_settings()) == 1


def test_no_credential_exits_2(tmp_path):
    pdf = tmp_path / "thermo.pdf"
    pdf.write_bytes(b"%PDF-1.4 test")
    settings = _settings(openai_api_key="", llm_provider="openai")
    assert generate_qa.main([str(pdf)], settings=settings) == 2
