#!/usr/bin/env python3
"""
Generate multiple-choice Q&A pairs from local PDFs and images.

Usage:
    python -m scripts.generate_qa notes.pdf
    python -m scripts.generate_qa ch1.pdf ch2.pdf diagram.png --out quiz.json

One file uses the loose (question-only) dedup key; several files are merged
with the strict key (question + options). Configuration comes from the
environment (see server/config.py).
"""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

REPO_ROOT = Path(__file__).resolve().parent.parent
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from server.config import Settings
from server.services.document_processing import build_document_processor
from server.services.llm.provider import build_provider
from server.services.qa_pipeline import ConfigurationError, QAPipeline, SourceFile
from server.services.uploads import UploadValidationError, guess_mime, validate_upload


def _print_progress(stage: str, percent: int) -> None:
    print(f"[{percent:3d}%] {stage}", file=sys.stderr)


def load_sources(paths: List[Path], max_bytes: int) -> List[SourceFile]:
    """Read and validate input files. Raises OSError / UploadValidationError."""
    sources = []
    for path in paths:
        content = path.read_bytes()
        mime = validate_upload(path.name, guess_mime(path.name), len(content), max_bytes)
        sources.append(SourceFile(filename=path.name, content=content, mime_type=mime))
    return sources


async def run(pipeline: QAPipeline, sources: List[SourceFile], strict: bool, quiet: bool) -> dict:
    progress = None if quiet else _print_progress
    if len(sources) == 1 and not strict and sources[0].mime_type == "application/pdf":
        result = await pipeline.run_pdf(sources[0].content, sources[0].filename, on_progress=progress)
    else:
        result = await pipeline.run_files(sources, on_progress=progress)
    return {
        "qaPairs": [p.to_dict() for p in result.qa_pairs],
        "files": [o.to_dict() for o in result.files],
        "totalChunks": result.total_chunks,
        "totalQAPairs": result.total_generated,
        "uniqueQAPairs": len(result.qa_pairs),
    }


def main(argv: Optional[List[str]] = None, settings: Optional[Settings] = None, pipeline: Optional[QAPipeline] = None) -> int:
    parser = argparse.ArgumentParser(description="Generate multiple-choice Q&A pairs from PDFs and images")
    parser.add_argument("files", nargs="+", type=Path, help="PDF or image files")
    parser.add_argument("--out", "-o", type=Path, default=None, help="Write JSON here instead of stdout")
    parser.add_argument("--strict", action="store_true", help="Always dedupe on question + options")
    parser.add_argument("--quiet", "-q", action="store_true", help="No progress lines")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    settings = settings or Settings()
    try:
        sources = load_sources(args.files, settings.max_upload_bytes)
    except (OSError, UploadValidationError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if pipeline is None:
        try:
            pipeline = QAPipeline(
                build_provider(settings),
                build_document_processor(settings),
                settings=settings,
            )
        except ConfigurationError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 2

    payload = asyncio.run(run(pipeline, sources, args.strict, args.quiet))
    text = json.dumps(payload, ensure_ascii=False, indent=2)
    if args.out:
        args.out.write_text(text, encoding="utf-8")
        print(f"Wrote {payload['uniqueQAPairs']} Q&A pairs to {args.out}", file=sys.stderr)
    else:
        print(text)
    return 0


if __name__ == "__main__":
    sys.exit(main())
