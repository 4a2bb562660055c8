"""Tests for entity reconciliation, settings filtering and ordering."""

from __future__ import annotations

import pytest

from saferedact.core.detection.reconciler import (
    EntityReconciler,
    filter_by_settings,
    sort_entities,
    span_iou,
)
from saferedact.models.schemas import (
    Aggressiveness,
    BoundingBox,
    DetectionMethod,
    DetectionSettings,
    Entity,
    EntityType,
    Position,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _entity(
    text: str,
    box: tuple[float, float, float, float] | None = None,
    confidence: float = 0.9,
    method: DetectionMethod = DetectionMethod.PATTERN,
    entity_type: EntityType = EntityType.PERSON,
    page: int = 0,
    offset: int = 0,
) -> Entity:
    bbox = BoundingBox(x=box[0], y=box[1], width=box[2], height=box[3]) if box else BoundingBox(x=0, y=0)
    return Entity(
        text=text,
        entity_type=entity_type,
        confidence=confidence,
        detection_method=method,
        position=Position(page_index=page, bounding_box=bbox, source_offset=offset),
    )


# ---------------------------------------------------------------------------
# IoU merge
# ---------------------------------------------------------------------------

class TestSameDetection:
    def test_iou_exactly_threshold_merges(self):
        a = _entity("John Smith", (100, 700, 100, 10), confidence=0.90)
        b = _entity("John Smit", (100, 700, 80, 10), confidence=0.95)
        result = EntityReconciler().reconcile([a, b])
        assert len(result) == 1
        assert result[0].id == b.id

    def test_iou_below_threshold_keeps_both(self):
        a = _entity("John Smith", (100, 700, 100, 10))
        b = _entity("John Smit", (100, 700, 79, 10))
        assert len(EntityReconciler().reconcile([a, b])) == 2

    def test_keeps_more_confident(self):
        a = _entity("4111 1111 1111 1111", (10, 10, 100, 10), 0.6, entity_type=EntityType.CREDIT_CARD)
        b = _entity("4111 1111 1111 1111", (10, 10, 100, 10), 0.99, entity_type=EntityType.CREDIT_CARD)
        result = EntityReconciler().reconcile([a, b])
        assert [e.confidence for e in result] == [pytest.approx(0.99)]

    def test_custom_threshold(self):
        a = _entity("John Smith", (100, 700, 100, 10))
        b = _entity("John Smit", (100, 700, 60, 10))
        assert len(EntityReconciler(iou_threshold=0.5).reconcile([a, b])) == 1


class TestDuplicates:
    def test_cross_method_duplicate_averaged(self):
        a = _entity("Jane", (10, 10, 20, 10), 0.9, DetectionMethod.PATTERN)
        b = _entity("jane", (12, 11, 20, 10), 0.7, DetectionMethod.CLASSIFIER)
        result = EntityReconciler().reconcile([a, b])
        assert len(result) == 1
        assert result[0].confidence == pytest.approx(0.8)
        assert result[0].detection_method == DetectionMethod.CLASSIFIER

    def test_same_method_duplicate_keeps_best(self):
        a = _entity("Jane", (10, 10, 20, 10), 0.6)
        b = _entity("Jane", (12, 11, 20, 10), 0.8)
        result = EntityReconciler().reconcile([a, b])
        assert [e.id for e in result] == [b.id]

    def test_far_apart_same_text_kept(self):
        a = _entity("Jane", (10, 10, 20, 10))
        b = _entity("Jane", (10, 300, 20, 10))
        assert len(EntityReconciler().reconcile([a, b])) == 2

    def test_pages_reconciled_separately(self):
        a = _entity("Jane", (10, 10, 20, 10), page=0)
        b = _entity("Jane", (10, 10, 20, 10), page=1)
        result = EntityReconciler().reconcile([b, a])
        assert [e.position.page_index for e in result] == [0, 1]


class TestWithoutGeometry:
    def test_span_iou(self):
        a = _entity("Acme Corp", offset=5)
        b = _entity("Acme", offset=5)
        assert span_iou(a, b) == pytest.approx(4 / 9)
        assert span_iou(a, _entity("Acme", offset=-1)) == 0.0

    def test_same_span_merges(self):
        a = _entity("Acme Corp", confidence=0.8, offset=5, entity_type=EntityType.ORG)
        b = _entity("Acme Corp", confidence=0.9, offset=5, entity_type=EntityType.ORG,
                    method=DetectionMethod.CLASSIFIER)
        result = EntityReconciler().reconcile([a, b])
        assert len(result) == 1
        assert result[0].confidence == pytest.approx(0.9)

    def test_different_offsets_kept(self):
        a = _entity("Acme", offset=5)
        b = _entity("Acme", offset=40)
        assert len(EntityReconciler().reconcile([a, b])) == 2


class TestIdempotence:
    def test_second_pass_is_noop(self):
        entities = [
            _entity("John Smith", (100, 700, 100, 10), 0.9),
            _entity("John Smit", (100, 700, 80, 10), 0.95),
            _entity("Jane", (10, 10, 20, 10), 0.9),
            _entity("jane", (12, 11, 20, 10), 0.7, DetectionMethod.CLASSIFIER),
            _entity("Acme", offset=3),
        ]
        reconciler = EntityReconciler()
        once = reconciler.reconcile(entities)
        twice = reconciler.reconcile(once)
        assert [e.id for e in twice] == [e.id for e in once]
        assert [e.confidence for e in twice] == [e.confidence for e in once]

    def test_empty(self):
        assert EntityReconciler().reconcile([]) == []


# ---------------------------------------------------------------------------
# Filtering
# ---------------------------------------------------------------------------

class TestFilterBySettings:
    def test_balanced_threshold(self):
        low = _entity("a b", confidence=0.6)
        high = _entity("c d", confidence=0.75)
        kept = filter_by_settings([low, high], DetectionSettings())
        assert kept == [high]

    @pytest.mark.parametrize("tier, expected", [
        (Aggressiveness.CONSERVATIVE, 1),
        (Aggressiveness.BALANCED, 2),
        (Aggressiveness.AGGRESSIVE, 3),
    ])
    def test_tiers(self, tier, expected):
        entities = [_entity("x", confidence=c) for c in (0.95, 0.75, 0.55)]
        settings = DetectionSettings(aggressiveness=tier)
        assert len(filter_by_settings(entities, settings)) == expected

    def test_disabled_type_dropped(self):
        email = _entity("a@b.co", confidence=1.0, entity_type=EntityType.EMAIL)
        settings = DetectionSettings(enabled_entity_types=[EntityType.PERSON])
        assert filter_by_settings([email], settings) == []

    def test_manual_always_kept(self):
        manual = _entity("secret", confidence=0.1, method=DetectionMethod.MANUAL,
                         entity_type=EntityType.CUSTOM)
        settings = DetectionSettings(enabled_entity_types=[])
        assert filter_by_settings([manual], settings) == [manual]


# ---------------------------------------------------------------------------
# Ordering
# ---------------------------------------------------------------------------

class TestSortEntities:
    def test_page_order(self):
        a = _entity("a", (50, 10, 5, 5), page=1)
        b = _entity("b", (50, 10, 5, 5), page=0)
        c = _entity("c", (10, 10, 5, 5), page=0)
        d = _entity("d", (10, 5, 5, 5), page=0)
        assert [e.text for e in sort_entities([a, b, c, d])] == ["d", "c", "b", "a"]

    def test_confidence_order(self):
        entities = [_entity("a", confidence=0.5), _entity("b", confidence=0.9)]
        assert [e.text for e in sort_entities(entities, "confidence")] == ["b", "a"]

    def test_type_order(self):
        entities = [
            _entity("a", entity_type=EntityType.SSN),
            _entity("b", entity_type=EntityType.EMAIL),
        ]
        assert [e.text for e in sort_entities(entities, "type")] == ["b", "a"]

    def test_unknown_key(self):
        with pytest.raises(ValueError):
            sort_entities([], "size")  # type: ignore[arg-type]
