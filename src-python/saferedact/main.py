"""Command line entry point for saferedact.

``detect`` prints detected entities as JSON, ``redact`` confirms every
detection and writes the redacted file, ``serve`` runs the review API.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from saferedact import __version__
from saferedact.core.backend.pymupdf_backend import PyMuPDFBackend
from saferedact.core.config import config
from saferedact.core.detection.classifier import TokenClassifierService
from saferedact.core.detection.custom_words import UserWordRegistry
from saferedact.core.detection.pattern_catalog import PatternCatalog
from saferedact.core.detection.pipeline import DetectionPipeline
from saferedact.core.detection.review import ReviewSet
from saferedact.core.errors import ClassifierUnavailable, FatalBackendFailure
from saferedact.core.logging_config import setup_logging
from saferedact.core.redaction.coordinator import RedactionCoordinator
from saferedact.core.redaction.docx_redactor import extract_docx_text
from saferedact.models.schemas import Aggressiveness, Entity

logger = logging.getLogger("saferedact")

KINDS = {".pdf": "pdf", ".docx": "docx"}


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="saferedact",
        description="Detect and irreversibly redact sensitive data in PDF/DOCX files.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--log-format", choices=("text", "json"), default=None,
                        help="Log output format (default: SAFEREDACT_LOG_FORMAT or text)")
    parser.add_argument("--log-level", default=None, help="Log level (default: INFO)")
    sub = parser.add_subparsers(dest="command", required=True)

    def add_detection_args(p: argparse.ArgumentParser) -> None:
        p.add_argument("input", help="Path to input file (.pdf, .docx)")
        p.add_argument(
            "--word", action="append", default=[],
            help="Extra word to always redact (repeatable)",
        )
        p.add_argument(
            "--aggressiveness", choices=[a.value for a in Aggressiveness], default=None,
            help="Confidence tier for filtering detections",
        )
        p.add_argument("--classifier", action="store_true",
                       help="Also run the token classifier (needs transformers)")

    detect = sub.add_parser("detect", help="Print detected entities as JSON")
    add_detection_args(detect)

    redact = sub.add_parser("redact", help="Redact every detection and write the result")
    add_detection_args(redact)
    redact.add_argument("-o", "--output", required=True, help="Output file path")
    redact.add_argument("--no-sanitize", dest="sanitize", action="store_false", default=None,
                        help="Keep document metadata")

    serve = sub.add_parser("serve", help="Run the review API")
    serve.add_argument("--host", default=None)
    serve.add_argument("--port", type=int, default=None)
    return parser


def _kind_of(path: Path) -> str:
    kind = KINDS.get(path.suffix.lower())
    if kind is None:
        raise SystemExit(f"Unsupported file format '{path.suffix}'. Supported: .docx, .pdf")
    return kind


def _build_pipeline(args: argparse.Namespace) -> tuple[DetectionPipeline, Optional[TokenClassifierService]]:
    registry = UserWordRegistry()
    for word in dict.fromkeys(args.word):
        registry.add(word)

    settings = config.detection.model_copy()
    if args.aggressiveness:
        settings.aggressiveness = Aggressiveness(args.aggressiveness)
    if args.classifier:
        settings.use_classifier = True

    service: Optional[TokenClassifierService] = None
    if settings.use_classifier:
        service = TokenClassifierService(config.classifier_model, config.classifier_device)
        try:
            service.initialize()
        except ClassifierUnavailable as exc:
            logger.warning("Classifier unavailable, running pattern-only: %s", exc)
            service = None

    pipeline = DetectionPipeline(
        catalog=PatternCatalog(registry),
        classifier=service,
        settings=settings,
        aggregation=config.aggregation_strategy,
        chunk_size=config.chunk_size,
        chunk_overlap=config.chunk_overlap,
        max_search_hits=config.max_search_hits,
    )
    return pipeline, service


async def detect_file(path: Path, pipeline: DetectionPipeline) -> list[Entity]:
    data = path.read_bytes()
    if _kind_of(path) == "pdf":
        backend = PyMuPDFBackend.open(data)
        try:
            return await pipeline.detect_document(backend)
        finally:
            backend.close()
    text = await asyncio.to_thread(extract_docx_text, data)
    return await pipeline.detect_text(text)


async def _run_detect(args: argparse.Namespace) -> int:
    pipeline, service = _build_pipeline(args)
    try:
        entities = await detect_file(Path(args.input), pipeline)
    finally:
        if service is not None:
            service.dispose()
    print(json.dumps([e.model_dump(mode="json") for e in entities], indent=2))
    return 0


async def _run_redact(args: argparse.Namespace) -> int:
    path = Path(args.input)
    pipeline, service = _build_pipeline(args)
    try:
        entities = await detect_file(path, pipeline)
    finally:
        if service is not None:
            service.dispose()

    review = ReviewSet(entities)
    review.confirm_all()
    sanitize = config.detection.sanitize if args.sanitize is None else args.sanitize
    result = await RedactionCoordinator().redact(
        path.read_bytes(), _kind_of(path), review.confirmed(), sanitize=sanitize,
    )
    if not result.success or result.data is None:
        logger.error("Redaction failed: %s", result.error)
        return 1

    Path(args.output).write_bytes(result.data)
    logger.info(
        "Wrote %s: %d redacted, %d skipped (%.0fms)",
        args.output, result.redacted_count, result.skipped_count, result.elapsed_ms,
    )
    return 0


def _run_serve(args: argparse.Namespace) -> int:
    import uvicorn

    from saferedact.api.server import app

    host = args.host or config.host
    port = args.port if args.port is not None else config.port
    logger.info("Starting review API on %s:%d", host, port)
    uvicorn.run(app, host=host, port=port, log_level=config.log_level.lower())
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_arg_parser().parse_args(argv)
    setup_logging(args.log_format or config.log_format, args.log_level or config.log_level)

    try:
        if args.command == "detect":
            return asyncio.run(_run_detect(args))
        if args.command == "redact":
            return asyncio.run(_run_redact(args))
        return _run_serve(args)
    except FatalBackendFailure as exc:
        logger.error("%s", exc)
        return 1
    except FileNotFoundError as exc:
        logger.error("File not found: %s", exc.filename)
        return 1


if __name__ == "__main__":
    sys.exit(main())
