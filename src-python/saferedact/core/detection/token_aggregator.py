"""Aggregation of raw classifier tokens into entity spans.

Classifiers emit one prediction per sub-word token with a BIO label
(``B-PER``, ``I-PER``, ...). Aggregation runs in three steps:

1. gather — mark sub-word continuations (``##`` prefix, not first token)
2. word merge — fold continuations into their word, picking one label
   per word with the chosen strategy
3. entity grouping — join consecutive words that share a label into one
   entity, starting a new one on every ``B-`` prefix
"""

from __future__ import annotations

import logging
from typing import NamedTuple

from saferedact.core.detection.detection_config import MIN_ENTITY_LENGTH
from saferedact.models.schemas import AggregationStrategy, EntityType, RawToken

logger = logging.getLogger(__name__)

SUBWORD_PREFIX = "##"
OUTSIDE_TAG = "O"

# Classifier label → entity type (after stripping the BIO prefix)
LABEL_MAP: dict[str, EntityType] = {
    "PER": EntityType.PERSON,
    "PERSON": EntityType.PERSON,
    "ORG": EntityType.ORG,
    "ORGANIZATION": EntityType.ORG,
    "LOC": EntityType.LOC,
    "LOCATION": EntityType.LOC,
    "GPE": EntityType.LOC,
    "DATE": EntityType.DATE,
    "TIME": EntityType.DATE,
    "MISC": EntityType.CUSTOM,
}


class AggregatedEntity(NamedTuple):
    """An entity span assembled from classifier tokens (chunk-relative offsets)."""
    text: str
    label: str
    entity_type: EntityType
    score: float
    start: int
    end: int


class _Word(NamedTuple):
    word: str
    tag: str
    score: float
    start: int
    end: int


def map_label(label: str) -> EntityType:
    """Map a classifier label (with or without BIO prefix) to an entity type."""
    bare = label.upper()
    if bare.startswith(("B-", "I-")):
        bare = bare[2:]
    return LABEL_MAP.get(bare, EntityType.CUSTOM)


def split_tag(tag: str) -> tuple[str, str]:
    """Return (bio_prefix, bare_tag). Unprefixed tags count as inside ("I")."""
    if tag.startswith("B-"):
        return "B", tag[2:]
    if tag.startswith("I-"):
        return "I", tag[2:]
    return "I", tag


def _join_fragments(fragments: list[str]) -> str:
    """Concatenate token surface forms: ``##`` pieces attach, others get a space."""
    text = ""
    for i, fragment in enumerate(fragments):
        if fragment.startswith(SUBWORD_PREFIX):
            text += fragment[len(SUBWORD_PREFIX):]
        elif i == 0:
            text = fragment
        else:
            text += " " + fragment
    return text


# ---------------------------------------------------------------------------
# Step 1: gather
# ---------------------------------------------------------------------------

def gather(tokens: list[RawToken]) -> list[RawToken]:
    """Normalise continuation flags: ``##`` marks a continuation unless first."""
    return [
        tok.model_copy(update={
            "is_continuation": tok.fragment.startswith(SUBWORD_PREFIX) and idx > 0,
        })
        for idx, tok in enumerate(tokens)
    ]


# ---------------------------------------------------------------------------
# Step 2: word merge
# ---------------------------------------------------------------------------

def _aggregate_word(group: list[RawToken], strategy: AggregationStrategy) -> _Word:
    text = _join_fragments([t.fragment for t in group])
    if strategy == AggregationStrategy.FIRST:
        tag, score = group[0].tag, group[0].score
    elif strategy == AggregationStrategy.MAX:
        best = max(group, key=lambda t: t.score)
        tag, score = best.tag, best.score
    elif strategy == AggregationStrategy.AVERAGE:
        tag, score = group[0].tag, sum(t.score for t in group) / len(group)
    else:
        raise ValueError(f"Invalid aggregation strategy: {strategy!r}")
    return _Word(text, tag, score, group[0].start, group[-1].end)


def merge_words(tokens: list[RawToken], strategy: AggregationStrategy) -> list[_Word]:
    """Fold each run of continuation tokens into the preceding word."""
    words: list[_Word] = []
    group: list[RawToken] = []
    for tok in tokens:
        if group and not tok.is_continuation:
            words.append(_aggregate_word(group, strategy))
            group = []
        group.append(tok)
    if group:
        words.append(_aggregate_word(group, strategy))
    return words


# ---------------------------------------------------------------------------
# Step 3: entity grouping
# ---------------------------------------------------------------------------

def _group_entity(words: list[_Word]) -> AggregatedEntity:
    _, bare = split_tag(words[0].tag)
    label = bare.split("-")[-1]
    score = sum(w.score for w in words) / len(words)
    return AggregatedEntity(
        text=_join_fragments([w.word for w in words]),
        label=label,
        entity_type=map_label(label),
        score=score,
        start=words[0].start,
        end=words[-1].end,
    )


def group_entities(words: list[_Word]) -> list[AggregatedEntity]:
    """Join consecutive same-tag words; a ``B-`` prefix always starts a new entity."""
    entities: list[AggregatedEntity] = []
    current: list[_Word] = []
    for word in words:
        if word.tag == OUTSIDE_TAG:
            if current:
                entities.append(_group_entity(current))
                current = []
            continue
        if not current:
            current = [word]
            continue
        bio, tag = split_tag(word.tag)
        _, last_tag = split_tag(current[-1].tag)
        if tag == last_tag and bio != "B":
            current.append(word)
        else:
            entities.append(_group_entity(current))
            current = [word]
    if current:
        entities.append(_group_entity(current))
    return entities


# ---------------------------------------------------------------------------
# Public entry point
# ---------------------------------------------------------------------------

class TokenAggregator:
    """Turn one chunk's raw token stream into entity spans."""

    def __init__(
        self,
        strategy: AggregationStrategy = AggregationStrategy.FIRST,
        min_length: int = MIN_ENTITY_LENGTH,
    ) -> None:
        self.strategy = AggregationStrategy(strategy)
        self.min_length = min_length

    def aggregate(self, tokens: list[RawToken]) -> list[AggregatedEntity]:
        if not tokens:
            return []
        words = merge_words(gather(tokens), self.strategy)
        entities = group_entities(words)
        kept = [e for e in entities if len(e.text.strip()) >= self.min_length]
        if len(kept) < len(entities):
            logger.debug("Dropped %d entities shorter than %d chars",
                         len(entities) - len(kept), self.min_length)
        return kept


def dedupe_across_chunks(
    chunk_entities: list[tuple[int, list[AggregatedEntity]]],
) -> list[AggregatedEntity]:
    """Merge per-chunk results, shifting offsets and keeping the first (text, type).

    ``chunk_entities`` holds ``(chunk_offset, entities)`` pairs in chunk
    order. Returned offsets are relative to the full text.
    """
    seen: set[tuple[str, EntityType]] = set()
    result: list[AggregatedEntity] = []
    for chunk_offset, entities in chunk_entities:
        for ent in entities:
            key = (ent.text, ent.entity_type)
            if key in seen:
                continue
            seen.add(key)
            result.append(ent._replace(start=ent.start + chunk_offset, end=ent.end + chunk_offset))
    return result
