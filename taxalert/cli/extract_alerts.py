"""Command line entry point for tax alert detection, extraction and reporting."""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, List, Optional

from taxalert.context.detector import JurisdictionDetector
from taxalert.extraction.pdf_extractor import read_document_text
from taxalert.monitoring.error_telemetry import TelemetryRecorder
from taxalert.persistence.alert_store import AlertStore, InMemoryAlertStore, JsonlAlertStore
from taxalert.pipeline.extraction_pipeline import TaxAlertExtractor
from taxalert.pipeline.ingestion_service import IngestionOptions, TaxAlertIngestionService
from taxalert.synthesis.llm_client import create_model_client
from taxalert.utils.enhanced_logging import setup_enhanced_logging
from taxalert.utils.settings import get_settings

logger = logging.getLogger(__name__)


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False, default=str))


def _open_store(path: Optional[str]) -> AlertStore:
    if path:
        return JsonlAlertStore(path)
    return InMemoryAlertStore()


def cmd_detect(args: argparse.Namespace) -> int:
    settings = get_settings()
    detector = JurisdictionDetector(fallback_country=settings.extraction.fallback_jurisdiction)
    text = read_document_text(args.file)
    context = detector.detect(text)
    _print_json({
        "file": args.file,
        "country": context.country,
        "authority": context.authority,
        "scores": detector.scores(text),
        "document_reference": detector.extract_document_reference(text, context),
    })
    return 0


async def _run_extract(args: argparse.Namespace) -> List[dict]:
    settings = get_settings()
    client = create_model_client(settings, model=args.model)
    telemetry = TelemetryRecorder(Path(args.telemetry_dir)) if args.telemetry_dir else None
    try:
        extractor = TaxAlertExtractor.from_settings(client, settings, telemetry=telemetry)
        service = TaxAlertIngestionService(
            extractor,
            _open_store(args.store or settings.extraction.store_path),
            retry_attempts=args.retries,
        )
        min_confidence = (
            args.min_confidence if args.min_confidence is not None else settings.extraction.min_confidence
        )
        results = []
        for file_name in args.files:
            path = Path(file_name)
            options = IngestionOptions(
                min_confidence=min_confidence,
                source_document=path.name,
                keep_source_text=args.keep_source_text,
            )
            if path.suffix.lower() == ".pdf":
                result = await service.ingest_pdf(path, options)
            else:
                result = await service.ingest(read_document_text(path), options)
            results.append(result.to_dict())
        return results
    finally:
        await client.close()


def cmd_extract(args: argparse.Namespace) -> int:
    results = asyncio.run(_run_extract(args))
    _print_json(results)
    failed = sum(1 for result in results if not result["success"])
    if failed:
        logger.error("%s of %s document(s) failed", failed, len(results))
        return 1
    return 0


def cmd_stats(args: argparse.Namespace) -> int:
    _print_json(JsonlAlertStore(args.store).stats())
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Tax notification alert extraction")
    parser.add_argument("--log-file", default=None, help="Write a debug log to this file")
    parser.add_argument("--verbose", action="store_true", help="Show debug output on the console")

    subparsers = parser.add_subparsers(dest="command", required=True)

    detect_parser = subparsers.add_parser("detect", help="Detect the jurisdiction of a document")
    detect_parser.add_argument("file")
    detect_parser.set_defaults(func=cmd_detect)

    extract_parser = subparsers.add_parser("extract", help="Extract tax alerts from documents")
    extract_parser.add_argument("files", nargs="+", help="Text or PDF notifications")
    extract_parser.add_argument("--min-confidence", type=float, default=None)
    extract_parser.add_argument("--store", default=None, help="JSONL ledger to append alerts to")
    extract_parser.add_argument("--model", default=None, help="Override the configured model")
    extract_parser.add_argument("--retries", type=int, default=1, help="Attempts per document on transient errors")
    extract_parser.add_argument("--telemetry-dir", default=None, help="Directory for failure telemetry")
    extract_parser.add_argument("--keep-source-text", action="store_true")
    extract_parser.set_defaults(func=cmd_extract)

    stats_parser = subparsers.add_parser("stats", help="Summarise a stored alert ledger")
    stats_parser.add_argument("--store", required=True)
    stats_parser.set_defaults(func=cmd_stats)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_enhanced_logging(
        log_file=args.log_file,
        console_level=logging.DEBUG if args.verbose else logging.INFO,
    )
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
