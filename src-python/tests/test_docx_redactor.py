"""Tests for DOCX text-node splicing and the python-docx round trip."""

from __future__ import annotations

import io

import pytest
from docx import Document

from saferedact.core.errors import FatalBackendFailure
from saferedact.core.redaction.docx_redactor import (
    build_node_map,
    extract_docx_text,
    redact_docx,
    splice_nodes,
)
from saferedact.models.schemas import Entity, EntityStatus, EntityType, Position


def _entity(text: str, offset: int, entity_type: EntityType = EntityType.PERSON) -> Entity:
    return Entity(
        text=text,
        entity_type=entity_type,
        status=EntityStatus.CONFIRMED,
        position=Position(source_offset=offset),
    )


def _docx(*paragraphs: str, author: str = "") -> bytes:
    document = Document()
    for text in paragraphs:
        document.add_paragraph(text)
    if author:
        document.core_properties.author = author
    buffer = io.BytesIO()
    document.save(buffer)
    return buffer.getvalue()


# ---------------------------------------------------------------------------
# Node map
# ---------------------------------------------------------------------------

class TestBuildNodeMap:
    def test_joined_with_spaces(self):
        text, spans = build_node_map(["Call ", "John", " Smith"])
        assert text == "Call  John  Smith"
        assert [(s.index, s.start, s.end) for s in spans] == [(0, 0, 5), (1, 6, 10), (2, 11, 17)]

    def test_empty_nodes_skipped(self):
        text, spans = build_node_map(["", "abc", "", "de"])
        assert text == "abc de"
        assert [s.index for s in spans] == [1, 3]


# ---------------------------------------------------------------------------
# Splicing
# ---------------------------------------------------------------------------

class TestSpliceNodes:
    def test_within_one_node(self):
        result = splice_nodes(["Contact John Smith today"], [_entity("John Smith", 8)])
        assert result.texts == ["Contact [PERSON] today"]

    def test_across_nodes(self):
        texts = ["Call ", "John", " Smith now"]
        result = splice_nodes(texts, [_entity("John  Smith", 6)])
        assert result.texts == ["Call ", "[PERSON]", " now"]

    def test_several_entities_in_one_node(self):
        result = splice_nodes(
            ["John and Mary"], [_entity("John", 0), _entity("Mary", 9)],
        )
        assert result.texts == ["[PERSON] and [PERSON]"]

    def test_offsets_after_empty_node(self):
        result = splice_nodes(["", "a@b.co"], [_entity("a@b.co", 0, EntityType.EMAIL)])
        assert result.texts == ["", "[EMAIL]"]

    def test_entity_without_offset_skipped(self):
        entity = _entity("John", -1)
        result = splice_nodes(["John"], [entity])
        assert result.texts == ["John"]
        assert result.applied == []
        assert result.skipped == [entity]

    def test_offset_past_text_skipped(self):
        result = splice_nodes(["John"], [_entity("Mary", 40)])
        assert result.texts == ["John"]
        assert len(result.skipped) == 1

    def test_overlapping_entities_merged(self):
        inner = _entity("Lee", 4)
        outer = _entity("Ann Lee Bob", 0)
        result = splice_nodes(["Ann Lee Bob Kay"], [inner, outer])
        assert result.texts == ["[PERSON] Kay"]
        assert {e.id for e in result.applied} == {inner.id, outer.id}
        assert result.skipped == []

    def test_partial_overlap_uses_first_label(self):
        result = splice_nodes(
            ["mail ann@x.io now"],
            [_entity("ann@x.io", 5, EntityType.EMAIL), _entity("ann", 5), _entity("x.io now", 9, EntityType.CUSTOM)],
        )
        assert result.texts == ["mail [EMAIL]"]

    def test_input_not_mutated(self):
        texts = ["John"]
        splice_nodes(texts, [_entity("John", 0)])
        assert texts == ["John"]


# ---------------------------------------------------------------------------
# python-docx round trip
# ---------------------------------------------------------------------------

class TestDocxRoundTrip:
    def test_extract(self):
        data = _docx("Contact John Smith today", "SSN 123-45-6789")
        assert extract_docx_text(data) == "Contact John Smith today SSN 123-45-6789"

    def test_redact(self):
        data = _docx("Contact John Smith today", "SSN 123-45-6789")
        entities = [
            _entity("John Smith", 8),
            _entity("123-45-6789", 29, EntityType.SSN),
        ]
        output = redact_docx(data, entities)
        assert len(output.applied) == 2
        assert extract_docx_text(output.data) == "Contact [PERSON] today SSN [SSN]"

    def test_sanitize_clears_core_properties(self):
        data = _docx("Hello", author="Alice Example")
        output = redact_docx(data, [_entity("Hello", 0)], sanitize=True)
        document = Document(io.BytesIO(output.data))
        assert document.core_properties.author == ""
        assert document.core_properties.revision == 1

    def test_without_sanitize_keeps_properties(self):
        data = _docx("Hello", author="Alice Example")
        output = redact_docx(data, [_entity("Hello", 0)])
        assert Document(io.BytesIO(output.data)).core_properties.author == "Alice Example"

    def test_invalid_bytes(self):
        with pytest.raises(FatalBackendFailure):
            extract_docx_text(b"not a zip archive")
