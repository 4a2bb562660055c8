"""Tests for token aggregation (sub-word merge, BIO grouping, chunk dedupe)."""

from __future__ import annotations

import pytest

from saferedact.core.detection.token_aggregator import (
    AggregatedEntity,
    TokenAggregator,
    dedupe_across_chunks,
    gather,
    map_label,
    split_tag,
)
from saferedact.models.schemas import AggregationStrategy, EntityType, RawToken


def _tok(tag: str, fragment: str, score: float, start: int, end: int) -> RawToken:
    return RawToken(tag=tag, fragment=fragment, score=score, start=start, end=end)


JOHNSON = [
    _tok("B-PER", "John", 0.99, 0, 4),
    _tok("I-PER", "##son", 0.70, 4, 7),
]


class TestLabels:
    def test_map_label(self):
        assert map_label("B-PER") == EntityType.PERSON
        assert map_label("I-ORG") == EntityType.ORG
        assert map_label("GPE") == EntityType.LOC
        assert map_label("B-MISC") == EntityType.CUSTOM
        assert map_label("SOMETHING") == EntityType.CUSTOM

    def test_split_tag(self):
        assert split_tag("B-PER") == ("B", "PER")
        assert split_tag("I-LOC") == ("I", "LOC")
        assert split_tag("PER") == ("I", "PER")


class TestGather:
    def test_continuation_flags(self):
        tokens = gather(JOHNSON)
        assert [t.is_continuation for t in tokens] == [False, True]

    def test_leading_subword_is_not_continuation(self):
        tokens = gather([_tok("B-PER", "##x", 0.5, 0, 1)])
        assert tokens[0].is_continuation is False


class TestAggregate:
    def test_johnson_first(self):
        entities = TokenAggregator(AggregationStrategy.FIRST).aggregate(JOHNSON)
        assert len(entities) == 1
        ent = entities[0]
        assert ent.text == "Johnson"
        assert ent.entity_type == EntityType.PERSON
        assert ent.score == pytest.approx(0.99)
        assert (ent.start, ent.end) == (0, 7)

    def test_johnson_average(self):
        entities = TokenAggregator(AggregationStrategy.AVERAGE).aggregate(JOHNSON)
        assert entities[0].score == pytest.approx((0.99 + 0.70) / 2)

    def test_max_takes_best_token_label(self):
        tokens = [
            _tok("B-ORG", "Wash", 0.40, 0, 4),
            _tok("B-LOC", "##ington", 0.90, 4, 10),
        ]
        entities = TokenAggregator(AggregationStrategy.MAX).aggregate(tokens)
        assert entities[0].entity_type == EntityType.LOC
        assert entities[0].score == pytest.approx(0.90)

    def test_inside_tags_join_words(self):
        tokens = [
            _tok("B-PER", "John", 0.9, 0, 4),
            _tok("I-PER", "Smith", 0.8, 5, 10),
        ]
        entities = TokenAggregator().aggregate(tokens)
        assert [e.text for e in entities] == ["John Smith"]
        assert entities[0].score == pytest.approx(0.85)
        assert (entities[0].start, entities[0].end) == (0, 10)

    def test_begin_tag_starts_new_entity(self):
        tokens = [
            _tok("B-PER", "John", 0.9, 0, 4),
            _tok("B-PER", "Mary", 0.9, 5, 9),
        ]
        assert [e.text for e in TokenAggregator().aggregate(tokens)] == ["John", "Mary"]

    def test_outside_tag_splits(self):
        tokens = [
            _tok("B-ORG", "Acme", 0.9, 0, 4),
            _tok("O", "in", 0.99, 5, 7),
            _tok("B-LOC", "Paris", 0.95, 8, 13),
        ]
        entities = TokenAggregator().aggregate(tokens)
        assert [(e.text, e.entity_type) for e in entities] == [
            ("Acme", EntityType.ORG), ("Paris", EntityType.LOC),
        ]

    def test_short_entities_dropped(self):
        tokens = [_tok("B-PER", "J", 0.9, 0, 1)]
        assert TokenAggregator().aggregate(tokens) == []

    def test_empty(self):
        assert TokenAggregator().aggregate([]) == []


class TestDedupeAcrossChunks:
    def test_offsets_shifted_and_duplicates_dropped(self):
        john = AggregatedEntity("John", "PER", EntityType.PERSON, 0.9, 0, 4)
        john_again = AggregatedEntity("John", "PER", EntityType.PERSON, 0.8, 200, 204)
        paris = AggregatedEntity("Paris", "LOC", EntityType.LOC, 0.9, 10, 15)
        result = dedupe_across_chunks([(0, [john]), (1800, [john_again, paris])])
        assert [(e.text, e.start) for e in result] == [("John", 0), ("Paris", 1810)]
