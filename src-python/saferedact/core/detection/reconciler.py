"""Entity reconciliation — deduplicate detections from all sources.

Pattern and classifier passes frequently report the same span (or two
patterns match the same card number). Within each page, entities are
swept in reading order and compared pairwise:

- IoU at or above the threshold → same detection, keep the more confident
- same text (case-insensitive) at the same position → duplicate; when the
  two come from different methods they are merged with averaged
  confidence and attributed to the classifier

Entities without geometry (text-only documents) are compared on their
character spans instead of boxes.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Iterable, Literal

from saferedact.core.bbox_utils import has_geometry, iou, same_position
from saferedact.core.detection.detection_config import (
    IOU_EPSILON,
    IOU_THRESHOLD,
    POSITION_TOLERANCE,
)
from saferedact.models.schemas import DetectionMethod, DetectionSettings, Entity

logger = logging.getLogger(__name__)

SortKey = Literal["page", "confidence", "type"]


def _span(entity: Entity) -> tuple[int, int]:
    start = entity.position.source_offset
    return start, start + len(entity.text)


def span_iou(a: Entity, b: Entity) -> float:
    """IoU of two entities' character spans (0.0 if either has no offset)."""
    (a0, a1), (b0, b1) = _span(a), _span(b)
    if a0 < 0 or b0 < 0:
        return 0.0
    inter = min(a1, b1) - max(a0, b0)
    if inter <= 0:
        return 0.0
    return inter / (max(a1, b1) - min(a0, b0))


def _reading_order(entity: Entity) -> tuple[float, float, int]:
    box = entity.position.bounding_box
    return (box.y, box.x, entity.position.source_offset)


class EntityReconciler:
    """Merge duplicate detections into one canonical list.

    ``iou_threshold`` and ``position_tolerance`` are empirical and can
    be tuned per instance.

    The IoU test is inclusive: two boxes merge when their IoU is at
    least ``iou_threshold`` (less ``IOU_EPSILON`` for float error), so
    an IoU of exactly 0.8 merges and 0.79 does not. A strict ``>`` would
    keep the exact-threshold pair apart.
    """

    def __init__(
        self,
        iou_threshold: float = IOU_THRESHOLD,
        position_tolerance: float = POSITION_TOLERANCE,
    ) -> None:
        self.iou_threshold = iou_threshold
        self.position_tolerance = position_tolerance

    # ------------------------------------------------------------------
    # Pairwise tests
    # ------------------------------------------------------------------

    def _geometric(self, a: Entity, b: Entity) -> bool:
        return has_geometry(a.position.bounding_box) and has_geometry(b.position.bounding_box)

    def overlap(self, a: Entity, b: Entity) -> float:
        if self._geometric(a, b):
            return iou(a.position.bounding_box, b.position.bounding_box)
        if not has_geometry(a.position.bounding_box) and not has_geometry(b.position.bounding_box):
            return span_iou(a, b)
        return 0.0

    def is_same_detection(self, a: Entity, b: Entity) -> bool:
        return self.overlap(a, b) >= self.iou_threshold - IOU_EPSILON

    def is_duplicate(self, a: Entity, b: Entity) -> bool:
        if a.text.lower() != b.text.lower():
            return False
        if self._geometric(a, b):
            return same_position(
                a.position.bounding_box, b.position.bounding_box, self.position_tolerance,
            )
        return (
            a.position.source_offset == b.position.source_offset
            and a.position.source_field_id == b.position.source_field_id
        )

    # ------------------------------------------------------------------
    # Sweep
    # ------------------------------------------------------------------

    def _sweep(self, entities: list[Entity]) -> tuple[list[Entity], int]:
        """One pass over a page. Returns (survivors, number of merges)."""
        ordered = sorted(entities, key=_reading_order)
        used: set[int] = set()
        result: list[Entity] = []
        merges = 0

        for i, anchor in enumerate(ordered):
            if i in used:
                continue
            best = anchor
            for j in range(i + 1, len(ordered)):
                if j in used:
                    continue
                other = ordered[j]
                if self.is_same_detection(anchor, other):
                    if other.confidence > best.confidence:
                        best = other
                elif self.is_duplicate(anchor, other):
                    if anchor.detection_method != other.detection_method:
                        best = best.model_copy(update={
                            "confidence": (best.confidence + other.confidence) / 2.0,
                            "detection_method": DetectionMethod.CLASSIFIER,
                        })
                    elif other.confidence > best.confidence:
                        best = other
                else:
                    continue
                used.add(j)
                merges += 1
            result.append(best)
        return result, merges

    def reconcile_page(self, entities: list[Entity]) -> list[Entity]:
        """Sweep until no further merge happens, so the result is a fixpoint."""
        current = list(entities)
        while True:
            current, merges = self._sweep(current)
            if merges == 0:
                return current

    def reconcile(self, entities: Iterable[Entity]) -> list[Entity]:
        """Deduplicate per page; pages are returned in ascending order."""
        by_page: dict[int, list[Entity]] = defaultdict(list)
        total = 0
        for entity in entities:
            by_page[entity.position.page_index].append(entity)
            total += 1

        result: list[Entity] = []
        for page_index in sorted(by_page):
            result.extend(self.reconcile_page(by_page[page_index]))

        if total != len(result):
            logger.info("Reconciled %d detections into %d entities", total, len(result))
        return result


# ---------------------------------------------------------------------------
# Filtering and ordering
# ---------------------------------------------------------------------------

def filter_by_settings(entities: Iterable[Entity], settings: DetectionSettings) -> list[Entity]:
    """Keep enabled types at or above the aggressiveness tier's threshold.

    Manually added entities are never filtered out.
    """
    enabled = set(settings.enabled_entity_types)
    threshold = settings.min_confidence()
    return [
        e for e in entities
        if e.detection_method == DetectionMethod.MANUAL
        or (e.entity_type in enabled and e.confidence >= threshold)
    ]


def sort_entities(entities: Iterable[Entity], sort_by: SortKey = "page") -> list[Entity]:
    """Order entities for review: by page position, confidence, or type."""
    items = list(entities)
    if sort_by == "page":
        return sorted(items, key=lambda e: (e.position.page_index, *_reading_order(e)))
    if sort_by == "confidence":
        return sorted(items, key=lambda e: -e.confidence)
    if sort_by == "type":
        return sorted(items, key=lambda e: (e.entity_type.value, -e.confidence))
    raise ValueError(f"Unknown sort key: {sort_by!r}")
