"""Redaction coordinator — apply confirmed entities to a document.

For PDFs the confirmed entities are grouped per page and split into
form-field entities (the widget is deleted) and text entities (a
redaction region is created over the box and its content removed).
The document is always re-serialized in full so removed content is
purged from the file, not just hidden.

Failure policy: a single field or annotation failure is logged, counted
as skipped and the job continues. Only load, serialization and
cancellation end a job, returning ``RedactionResult(success=False)``
without bytes.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import defaultdict
from typing import Callable, Iterable, Literal, Optional

from saferedact.core.backend.base import DocumentBackend
from saferedact.core.backend.pymupdf_backend import PyMuPDFBackend
from saferedact.core.bbox_utils import has_geometry, to_backend_rect, within_tolerance
from saferedact.core.cancellation import CancelToken, ProgressCallback, check_cancel, report
from saferedact.core.detection.detection_config import FIELD_MATCH_TOLERANCE, REDACTION_MARGIN
from saferedact.core.errors import (
    BackendOperationFailure,
    DetectionCancelled,
    FatalBackendFailure,
)
from saferedact.core.redaction.docx_redactor import redact_docx
from saferedact.models.schemas import Entity, EntityStatus, FormField, RedactionResult, SaveMode

logger = logging.getLogger(__name__)

DocumentKind = Literal["pdf", "docx"]
BackendLoader = Callable[[bytes], DocumentBackend]

_REDACTABLE = (EntityStatus.CONFIRMED, EntityStatus.MODIFIED)


def confirmed_entities(entities: Iterable[Entity]) -> list[Entity]:
    return [e for e in entities if e.status in _REDACTABLE]


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 1)


class _Tally:
    def __init__(self) -> None:
        self.redacted = 0
        self.skipped = 0
        self.warnings: list[str] = []

    def skip(self, message: str) -> None:
        logger.warning(message)
        self.skipped += 1
        self.warnings.append(message)


class RedactionCoordinator:
    """Drives destructive redaction for PDF and DOCX documents."""

    def __init__(
        self,
        margin: float = REDACTION_MARGIN,
        field_tolerance: float = FIELD_MATCH_TOLERANCE,
        pdf_loader: BackendLoader = PyMuPDFBackend.open,
    ) -> None:
        self.margin = margin
        self.field_tolerance = field_tolerance
        self._pdf_loader = pdf_loader

    async def redact(
        self,
        data: bytes,
        kind: DocumentKind,
        entities: Iterable[Entity],
        sanitize: bool = False,
        cancel: Optional[CancelToken] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> RedactionResult:
        if kind == "pdf":
            return await self.redact_pdf(data, entities, sanitize, cancel, progress)
        if kind == "docx":
            return await self.redact_docx(data, entities, sanitize, cancel)
        raise ValueError(f"Unsupported document kind: {kind!r}")

    # ------------------------------------------------------------------
    # PDF
    # ------------------------------------------------------------------

    async def redact_pdf(
        self,
        data: bytes,
        entities: Iterable[Entity],
        sanitize: bool = False,
        cancel: Optional[CancelToken] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> RedactionResult:
        started = time.perf_counter()
        try:
            backend = await asyncio.to_thread(self._pdf_loader, data)
        except FatalBackendFailure as exc:
            logger.error("Redaction aborted: %s", exc)
            return RedactionResult(success=False, error=str(exc), elapsed_ms=_elapsed_ms(started))
        try:
            return await self.redact_backend(backend, entities, sanitize, cancel, progress)
        finally:
            backend.close()

    async def redact_backend(
        self,
        backend: DocumentBackend,
        entities: Iterable[Entity],
        sanitize: bool = False,
        cancel: Optional[CancelToken] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> RedactionResult:
        """Redact an already loaded document. The caller owns *backend*."""
        started = time.perf_counter()
        tally = _Tally()

        by_page: dict[int, list[Entity]] = defaultdict(list)
        for entity in confirmed_entities(entities):
            by_page[entity.position.page_index].append(entity)

        pages = sorted(by_page)
        try:
            for done, page_index in enumerate(pages, start=1):
                check_cancel(cancel)
                await asyncio.to_thread(
                    self._redact_page, backend, page_index, by_page[page_index], tally,
                )
                report(progress, "redact", done, len(pages))
                await asyncio.sleep(0)

            check_cancel(cancel)
            if sanitize:
                await asyncio.to_thread(backend.sanitize)
            data = await asyncio.to_thread(backend.save, SaveMode.FULL)
        except (FatalBackendFailure, DetectionCancelled) as exc:
            logger.error("Redaction aborted: %s", exc)
            return RedactionResult(
                success=False,
                error=str(exc) or exc.__class__.__name__,
                redacted_count=tally.redacted,
                skipped_count=tally.skipped,
                warnings=tally.warnings,
                elapsed_ms=_elapsed_ms(started),
            )

        elapsed = _elapsed_ms(started)
        logger.info(
            "Redacted %d entities (%d skipped) across %d pages",
            tally.redacted, tally.skipped, len(pages),
            extra={"redacted_count": tally.redacted, "skipped_count": tally.skipped,
                   "duration_ms": elapsed},
        )
        return RedactionResult(
            success=True,
            data=data,
            redacted_count=tally.redacted,
            skipped_count=tally.skipped,
            warnings=tally.warnings,
            elapsed_ms=elapsed,
        )

    def _redact_page(
        self,
        backend: DocumentBackend,
        page_index: int,
        entities: list[Entity],
        tally: _Tally,
    ) -> None:
        try:
            page_height = backend.bounds_of(page_index).height
        except (IndexError, BackendOperationFailure) as exc:
            for entity in entities:
                tally.skip(f"Page {page_index} unavailable for entity {entity.id}: {exc}")
            return

        field_entities = [e for e in entities if e.position.is_field]
        text_entities = [e for e in entities if not e.position.is_field]

        for entity in field_entities:
            self._delete_field(backend, page_index, entity, tally)

        for entity in text_entities:
            box = entity.position.bounding_box
            if not has_geometry(box):
                tally.skip(f"Entity {entity.id} on page {page_index} has no box; skipped")
                continue
            rect = to_backend_rect(box, page_height, self.margin)
            try:
                region = backend.create_redaction_region(page_index, rect)
                region.apply_content_removal()
            except BackendOperationFailure as exc:
                tally.skip(f"Redaction of entity {entity.id} on page {page_index} failed: {exc}")
                continue
            tally.redacted += 1

    def find_field(self, fields: list[FormField], entity: Entity) -> Optional[FormField]:
        """Match by identifier, falling back to bounds within tolerance."""
        field_id = entity.position.source_field_id
        for field in fields:
            if field.id == field_id:
                return field
        box = entity.position.bounding_box
        for field in fields:
            if within_tolerance(field.bounds, box, self.field_tolerance):
                return field
        return None

    def _delete_field(
        self, backend: DocumentBackend, page_index: int, entity: Entity, tally: _Tally,
    ) -> None:
        # Re-list every time: earlier deletions change the widget list
        try:
            fields = backend.list_form_fields(page_index)
        except BackendOperationFailure as exc:
            tally.skip(f"Could not list fields on page {page_index}: {exc}")
            return
        field = self.find_field(fields, entity)
        if field is None:
            tally.skip(
                f"No form field for entity {entity.id} "
                f"({entity.position.source_field_id!r}) on page {page_index}"
            )
            return
        try:
            backend.delete_field(page_index, field.id)
        except BackendOperationFailure as exc:
            tally.skip(f"Deleting field {field.id!r} on page {page_index} failed: {exc}")
            return
        logger.debug("Deleted form field %r on page %d", field.id, page_index)
        tally.redacted += 1

    # ------------------------------------------------------------------
    # DOCX
    # ------------------------------------------------------------------

    async def redact_docx(
        self,
        data: bytes,
        entities: Iterable[Entity],
        sanitize: bool = False,
        cancel: Optional[CancelToken] = None,
    ) -> RedactionResult:
        started = time.perf_counter()
        confirmed = confirmed_entities(entities)
        if not confirmed:
            return RedactionResult(
                success=False,
                error="No entities confirmed for redaction",
                elapsed_ms=_elapsed_ms(started),
            )
        try:
            check_cancel(cancel)
            output = await asyncio.to_thread(redact_docx, data, confirmed, sanitize)
        except (FatalBackendFailure, DetectionCancelled) as exc:
            logger.error("DOCX redaction aborted: %s", exc)
            return RedactionResult(
                success=False, error=str(exc), elapsed_ms=_elapsed_ms(started),
            )
        warnings = [
            f"Entity {entity.id} ({entity.text!r}) could not be mapped to document text"
            for entity in output.skipped
        ]
        elapsed = _elapsed_ms(started)
        logger.info("Redacted %d DOCX entities, skipped %d", len(output.applied), len(output.skipped),
                    extra={"redacted_count": len(output.applied),
                           "skipped_count": len(output.skipped), "duration_ms": elapsed})
        return RedactionResult(
            success=True,
            data=output.data,
            redacted_count=len(output.applied),
            skipped_count=len(output.skipped),
            warnings=warnings,
            elapsed_ms=elapsed,
        )
