#!/usr/bin/env python3
"""
Run the page extraction pipeline on a local PDF without the HTTP server.

What it does
- Copies the PDF into UPLOAD_DIR (the original file is never touched)
- Rasterizes every page, sends each page to the configured vision model
- Prints {"extracted": [...]} as JSON, or writes it to --out

Requirements
- pdftoppm (poppler-utils) on PATH
- OPENAI_API_KEY or GEMINI_API_KEY in the environment or a .env file

Usage examples
python scripts/extract_document.py statement.pdf
python scripts/extract_document.py invoice.pdf --document-class invoice --out invoice.json
"""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from app.config import get_settings
from app.document_classes import available_document_classes
from app.exceptions import FileValidationError, PayloadTooLargeError, PipelineError, UnknownDocumentClassError
from app.services.orchestration.extraction_pipeline import ExtractionPipelineService
from app.services.uploads import UploadService


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Extract structured records from each page of a PDF")
    parser.add_argument("pdf", type=Path, help="Path to the PDF document")
    parser.add_argument(
        "--document-class",
        choices=available_document_classes(),
        default=None,
        help="Prompt/schema to use (default: DEFAULT_DOCUMENT_CLASS)",
    )
    parser.add_argument("--out", type=Path, default=None, help="Write JSON here instead of stdout")
    parser.add_argument("--verbose", action="store_true", help="Log pipeline progress to stderr")
    return parser.parse_args(argv)


async def run(pdf: Path, document_class: str | None) -> list:
    settings = get_settings()
    document_path = UploadService(settings).store_local_copy(pdf)
    return await ExtractionPipelineService(settings).run(document_path, document_class)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        records = asyncio.run(run(args.pdf, args.document_class))
    except (PipelineError, FileValidationError, PayloadTooLargeError, UnknownDocumentClassError) as exc:
        print(json.dumps({"error": str(exc)}), file=sys.stderr)
        return 1

    body = json.dumps({"extracted": records}, indent=2, ensure_ascii=False)
    if args.out:
        args.out.write_text(body + "\n", encoding="utf-8")
        print(f"Wrote {len(records)} page record(s) to {args.out}")
    else:
        print(body)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
