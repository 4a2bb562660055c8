"""Detection pipeline — pattern pass, optional classifier pass, reconcile, filter.

Stages run on the event loop and yield between pages and chunks so a
progress callback can update and a :class:`CancelToken` can stop the
job at the next boundary.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import NamedTuple, Optional

from saferedact.core.backend.base import DocumentBackend
from saferedact.core.cancellation import CancelToken, ProgressCallback, check_cancel, report
from saferedact.core.detection.classifier import TokenClassifier
from saferedact.core.detection.detection_config import (
    CHUNK_OVERLAP,
    CHUNK_SIZE,
    DISPLAY_CONTEXT_WINDOW,
    MAX_SEARCH_HITS,
    SCRIPT_SAMPLE_SIZE,
)
from saferedact.core.detection.pattern_catalog import PatternCatalog, PatternMatch
from saferedact.core.detection.reconciler import (
    EntityReconciler,
    filter_by_settings,
    sort_entities,
)
from saferedact.core.detection.scripts import ScriptClassifier
from saferedact.core.detection.span_locator import SpanLocator
from saferedact.core.detection.token_aggregator import (
    AggregatedEntity,
    TokenAggregator,
    dedupe_across_chunks,
)
from saferedact.core.errors import ClassifierUnavailable, LocatorMiss
from saferedact.core.text_utils import get_context_snippet, split_text_with_overlap
from saferedact.models.schemas import (
    AggregationStrategy,
    DetectionMethod,
    DetectionSettings,
    Entity,
    FormField,
    PageContent,
    Position,
    Script,
)

logger = logging.getLogger(__name__)


class FieldSegment(NamedTuple):
    """A form field's text appended after the page text for scanning."""
    start: int
    end: int
    field: FormField


def build_scan_text(page: PageContent) -> tuple[str, list[FieldSegment]]:
    """Page text followed by one ``"id label value"`` line per form field."""
    parts = [page.text]
    cursor = len(page.text)
    segments: list[FieldSegment] = []
    for field in page.form_fields:
        line = " ".join(p for p in (field.id, field.label, field.value) if p)
        if not line:
            continue
        parts.append("\n")
        cursor += 1
        segments.append(FieldSegment(cursor, cursor + len(line), field))
        parts.append(line)
        cursor += len(line)
    return "".join(parts), segments


def _segment_for(offset: int, segments: list[FieldSegment]) -> Optional[FieldSegment]:
    for seg in segments:
        if seg.start <= offset < seg.end:
            return seg
    return None


class DetectionPipeline:
    """Runs every detection stage over a document.

    Args:
        catalog: Pattern catalog (built-in patterns plus user words).
        classifier: Optional token classifier. Only used when
            ``settings.use_classifier`` is true and it reports ready.
        settings: Enabled types, thresholds and aggressiveness.
    """

    def __init__(
        self,
        catalog: Optional[PatternCatalog] = None,
        classifier: Optional[TokenClassifier] = None,
        settings: Optional[DetectionSettings] = None,
        reconciler: Optional[EntityReconciler] = None,
        aggregation: AggregationStrategy = AggregationStrategy.FIRST,
        chunk_size: int = CHUNK_SIZE,
        chunk_overlap: int = CHUNK_OVERLAP,
        max_search_hits: int = MAX_SEARCH_HITS,
    ) -> None:
        self.catalog = catalog or PatternCatalog()
        self.classifier = classifier
        self.settings = settings or DetectionSettings()
        self.reconciler = reconciler or EntityReconciler()
        self.aggregator = TokenAggregator(aggregation)
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.max_search_hits = max_search_hits
        self._scripts = ScriptClassifier()

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def detect_document(
        self,
        backend: DocumentBackend,
        progress: Optional[ProgressCallback] = None,
        cancel: Optional[CancelToken] = None,
    ) -> list[Entity]:
        """Extract every page of *backend* and detect entities on it."""
        pages: list[PageContent] = []
        total = backend.page_count
        for page_index in range(total):
            check_cancel(cancel)
            pages.append(await asyncio.to_thread(backend.extract_page, page_index))
            report(progress, "parse", page_index + 1, total)
            await asyncio.sleep(0)
        return await self.detect_pages(pages, backend, progress, cancel)

    async def detect_pages(
        self,
        pages: list[PageContent],
        backend: DocumentBackend,
        progress: Optional[ProgressCallback] = None,
        cancel: Optional[CancelToken] = None,
    ) -> list[Entity]:
        """Detect on already extracted pages, locating spans through *backend*."""
        t_start = time.perf_counter()
        timings: dict[str, float] = {}
        locator = SpanLocator(backend, self.max_search_hits)
        scripts = self._document_scripts(pages)

        # Stage 1: patterns
        t0 = time.perf_counter()
        entities: list[Entity] = []
        for done, page in enumerate(pages, start=1):
            check_cancel(cancel)
            # Backend search blocks; keep it off the event loop
            entities.extend(await asyncio.to_thread(self._pattern_page, page, locator, scripts))
            report(progress, "pattern", done, len(pages))
            await asyncio.sleep(0)
        timings["pattern"] = (time.perf_counter() - t0) * 1000

        # Stage 2: classifier (optional)
        if self._classifier_enabled():
            t0 = time.perf_counter()
            for done, page in enumerate(pages, start=1):
                check_cancel(cancel)
                spans = await self._classify_text(page.text, cancel)
                entities.extend(
                    await asyncio.to_thread(self._locate_classified, page, spans, locator)
                )
                report(progress, "classifier", done, len(pages))
            timings["classifier"] = (time.perf_counter() - t0) * 1000

        result = self._finish(entities, timings)
        logger.info(
            "Detected %d entities on %d pages in %.0fms",
            len(result), len(pages), (time.perf_counter() - t_start) * 1000,
            extra={"stage": "detect", "duration_ms": (time.perf_counter() - t_start) * 1000},
        )
        return result

    async def detect_text(
        self,
        text: str,
        progress: Optional[ProgressCallback] = None,
        cancel: Optional[CancelToken] = None,
    ) -> list[Entity]:
        """Detect on a text-only document (DOCX). Entities carry offsets, not boxes."""
        timings: dict[str, float] = {}
        check_cancel(cancel)
        scripts = self._scripts.classify(text[:SCRIPT_SAMPLE_SIZE])

        entities = [
            self._entity_from_match(text, m, page_index=0)
            for m in self.catalog.scan(text, self.settings.enabled_entity_types, scripts)
        ]
        report(progress, "pattern", 1, 1)
        await asyncio.sleep(0)

        if self._classifier_enabled():
            for span in await self._classify_text(text, cancel):
                entities.append(self._entity_from_span(text, span, Position(
                    page_index=0, source_offset=span.start,
                )))
            report(progress, "classifier", 1, 1)

        return self._finish(entities, timings)

    # ------------------------------------------------------------------
    # Stage helpers
    # ------------------------------------------------------------------

    def _document_scripts(self, pages: list[PageContent]) -> list[Script]:
        sample = ""
        for page in pages:
            if len(sample) >= SCRIPT_SAMPLE_SIZE:
                break
            sample += page.text + "\n"
        return self._scripts.classify(sample[:SCRIPT_SAMPLE_SIZE])

    def _classifier_enabled(self) -> bool:
        if not self.settings.use_classifier:
            return False
        if self.classifier is None or not self.classifier.ready:
            logger.warning("Classifier requested but not available; using patterns only")
            return False
        return True

    def _pattern_page(
        self, page: PageContent, locator: SpanLocator, scripts: list[Script],
    ) -> list[Entity]:
        scan_text, segments = build_scan_text(page)
        entities: list[Entity] = []
        for match in self.catalog.scan(scan_text, self.settings.enabled_entity_types, scripts):
            segment = _segment_for(match.start, segments)
            if segment is not None:
                position = Position(
                    page_index=page.page_index,
                    bounding_box=segment.field.bounds,
                    source_offset=-1,
                    source_field_id=segment.field.id,
                )
            else:
                try:
                    box = locator.locate(page, match.start, match.text)
                except LocatorMiss as exc:
                    logger.warning("Dropping %s match: %s", match.entity_type.value, exc,
                                   extra={"page_index": page.page_index})
                    continue
                position = Position(
                    page_index=page.page_index, bounding_box=box, source_offset=match.start,
                )
            entities.append(self._entity_from_match(scan_text, match, position=position))
        return entities

    def _entity_from_match(
        self,
        text: str,
        match: PatternMatch,
        position: Optional[Position] = None,
        page_index: int = 0,
    ) -> Entity:
        return Entity(
            text=match.text,
            entity_type=match.entity_type,
            confidence=match.confidence,
            position=position or Position(page_index=page_index, source_offset=match.start),
            detection_method=DetectionMethod.PATTERN,
            context_snippet=get_context_snippet(
                text, match.start, match.end, DISPLAY_CONTEXT_WINDOW,
            ),
        )

    async def _classify_text(
        self, text: str, cancel: Optional[CancelToken],
    ) -> list[AggregatedEntity]:
        """Classify *text* chunk by chunk; returns deduplicated full-text spans."""
        if not text.strip():
            return []
        per_chunk: list[tuple[int, list[AggregatedEntity]]] = []
        for chunk in split_text_with_overlap(text, self.chunk_size, self.chunk_overlap):
            check_cancel(cancel)
            try:
                tokens = await asyncio.to_thread(self.classifier.classify, chunk.text)
            except ClassifierUnavailable as exc:
                logger.warning("Classifier unavailable, skipping statistical detection: %s", exc)
                return []
            except Exception as e:
                logger.error("Classifier failed on chunk at %d: %s", chunk.offset, e)
                continue
            per_chunk.append((chunk.offset, self.aggregator.aggregate(tokens)))
            await asyncio.sleep(0)
        return dedupe_across_chunks(per_chunk)

    def _locate_classified(
        self, page: PageContent, spans: list[AggregatedEntity], locator: SpanLocator,
    ) -> list[Entity]:
        entities: list[Entity] = []
        for span in spans:
            # Use the page's own characters; tokenizer surface forms may differ
            surface = page.text[span.start:span.end] or span.text
            try:
                box = locator.locate(page, span.start, surface)
            except LocatorMiss as exc:
                logger.warning("Dropping classifier %s: %s", span.entity_type.value, exc,
                               extra={"page_index": page.page_index})
                continue
            entities.append(self._entity_from_span(page.text, span, Position(
                page_index=page.page_index, bounding_box=box, source_offset=span.start,
            )))
        return entities

    def _entity_from_span(self, text: str, span: AggregatedEntity, position: Position) -> Entity:
        surface = text[span.start:span.end] or span.text
        return Entity(
            text=surface,
            entity_type=span.entity_type,
            confidence=span.score,
            position=position,
            detection_method=DetectionMethod.CLASSIFIER,
            context_snippet=get_context_snippet(text, span.start, span.end, DISPLAY_CONTEXT_WINDOW),
        )

    def _finish(self, entities: list[Entity], timings: dict[str, float]) -> list[Entity]:
        t0 = time.perf_counter()
        reconciled = self.reconciler.reconcile(entities)
        filtered = filter_by_settings(reconciled, self.settings)
        timings["reconcile"] = (time.perf_counter() - t0) * 1000
        logger.debug(
            "Pipeline timings: %s",
            " | ".join(f"{k}={v:.0f}ms" for k, v in timings.items()),
        )
        return sort_entities(filtered, "page")
