"""DOCX text extraction and text-node redaction (python-docx).

A DOCX body's visible text lives in ``w:t`` nodes. Detection runs on
the non-empty node texts joined with single spaces; redaction maps each
entity's offset back onto those nodes and splices the text:

- the first affected node keeps its text before the entity, then
  ``[ENTITY_TYPE]``, then its text after the entity
- later affected nodes only lose the entity's portion

Overlapping entities are merged into one span first, then spans are
applied in reverse offset order so earlier offsets stay valid while
later text changes length.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass, field
from typing import NamedTuple

from docx import Document
from docx.oxml.ns import qn

from saferedact.core.errors import FatalBackendFailure
from saferedact.models.schemas import Entity

logger = logging.getLogger(__name__)

NODE_SEPARATOR = " "


class NodeSpan(NamedTuple):
    """Where one text node sits in the joined document text."""
    index: int
    start: int
    end: int


def build_node_map(texts: list[str]) -> tuple[str, list[NodeSpan]]:
    """Join non-empty node texts with spaces and record each node's span."""
    parts: list[str] = []
    spans: list[NodeSpan] = []
    cursor = 0
    for index, text in enumerate(texts):
        if not text:
            continue
        if parts:
            parts.append(NODE_SEPARATOR)
            cursor += len(NODE_SEPARATOR)
        spans.append(NodeSpan(index, cursor, cursor + len(text)))
        parts.append(text)
        cursor += len(text)
    return "".join(parts), spans


class SpliceResult(NamedTuple):
    texts: list[str]
    applied: list[Entity]
    skipped: list[Entity]


@dataclass
class _Range:
    """A ``[start, end)`` span of the joined text covering one or more entities."""
    start: int
    end: int
    label: str
    entities: list[Entity] = field(default_factory=list)


def merge_ranges(entities: list[Entity]) -> tuple[list[_Range], list[Entity]]:
    """Group overlapping entity spans; return the ranges and entities without an offset.

    Each merged range is labelled with the type of its earliest entity.
    """
    ranges: list[_Range] = []
    skipped: list[Entity] = []
    ordered = sorted(entities, key=lambda e: (e.position.source_offset, -len(e.text)))
    for entity in ordered:
        start = entity.position.source_offset
        if start < 0 or not entity.text:
            logger.warning("Skipping DOCX entity %s without a text offset", entity.id)
            skipped.append(entity)
            continue
        end = start + len(entity.text)
        if ranges and start < ranges[-1].end:
            ranges[-1].end = max(ranges[-1].end, end)
            ranges[-1].entities.append(entity)
        else:
            ranges.append(_Range(start, end, entity.entity_type.value, [entity]))
    return ranges, skipped


def splice_nodes(texts: list[str], entities: list[Entity]) -> SpliceResult:
    """Replace every entity in the node texts with its type label.

    Offsets are ``entity.position.source_offset`` into the joined text
    produced by :func:`build_node_map`. Overlapping entities are merged
    into one label. Entities without an offset, or whose span falls
    outside every node, are returned as skipped.
    """
    result = list(texts)
    _, spans = build_node_map(texts)
    ranges, skipped = merge_ranges(entities)
    applied: list[Entity] = []

    for rng in reversed(ranges):
        first = True
        for span in spans:
            if not (span.start < rng.end and span.end > rng.start):
                continue
            original_len = span.end - span.start
            rel_start = max(0, rng.start - span.start)
            rel_end = min(original_len, rng.end - span.start)
            if rel_end <= rel_start:
                continue
            node_text = result[span.index]
            before = node_text[:rel_start]
            after = node_text[rel_end:]
            if first:
                result[span.index] = before + f"[{rng.label}]" + after
                first = False
            else:
                result[span.index] = before + after
        if first:
            logger.warning("DOCX range %d-%d matches no text node", rng.start, rng.end)
            skipped.extend(rng.entities)
        else:
            applied.extend(rng.entities)
    return SpliceResult(result, applied, skipped)


# ---------------------------------------------------------------------------
# python-docx adapter
# ---------------------------------------------------------------------------

def _load(data: bytes):
    try:
        return Document(io.BytesIO(data))
    except Exception as exc:
        raise FatalBackendFailure(f"Could not open DOCX: {exc}") from exc


def _text_nodes(document) -> list:
    return list(document.element.body.iter(qn("w:t")))


def extract_docx_text(data: bytes) -> str:
    """Text used for detection on a DOCX document."""
    document = _load(data)
    text, _ = build_node_map([node.text or "" for node in _text_nodes(document)])
    return text


def _scrub_core_properties(document) -> None:
    props = document.core_properties
    props.author = ""
    props.last_modified_by = ""
    props.title = ""
    props.subject = ""
    props.keywords = ""
    props.comments = ""
    props.category = ""
    props.content_status = ""
    props.revision = 1


class DocxRedaction(NamedTuple):
    data: bytes
    applied: list[Entity]
    skipped: list[Entity]


def redact_docx(data: bytes, entities: list[Entity], sanitize: bool = False) -> DocxRedaction:
    """Apply *entities* to a DOCX and return the new file bytes with the entities used.

    Raises FatalBackendFailure if the document cannot be read or written.
    """
    document = _load(data)
    nodes = _text_nodes(document)
    texts = [node.text or "" for node in nodes]
    spliced = splice_nodes(texts, entities)
    for node, old, new in zip(nodes, texts, spliced.texts):
        if old != new:
            node.text = new
            # Spliced text may now start or end with a space
            node.set(qn("xml:space"), "preserve")

    if sanitize:
        _scrub_core_properties(document)
        logger.info("Scrubbed DOCX core properties")

    buffer = io.BytesIO()
    try:
        document.save(buffer)
    except Exception as exc:
        raise FatalBackendFailure(f"Could not serialize DOCX: {exc}") from exc
    return DocxRedaction(buffer.getvalue(), spliced.applied, spliced.skipped)
