"""Shared fakes for detection and redaction tests.

``FakeBackend`` implements the document backend interface in memory:
search hits are looked up from a ``{(page_index, literal): hits}`` map
and every mutating call is recorded for assertions.

``make_pdf`` and ``make_docx`` build small real documents in memory
with PyMuPDF and python-docx for the backend, API and CLI tests.
"""

from __future__ import annotations

import io
from typing import Any, Callable, Optional

import fitz
import pytest
from docx import Document

from saferedact.core.errors import BackendOperationFailure, FatalBackendFailure
from saferedact.models.schemas import BoundingBox, FormField, PageContent, RawToken, SaveMode


class FakeRegion:
    def __init__(self, backend: "FakeBackend", page_index: int, rect) -> None:
        self.backend = backend
        self.page_index = page_index
        self.rect = rect

    def apply_content_removal(self) -> None:
        if self.backend.fail_regions:
            raise BackendOperationFailure("annotation rejected")
        self.backend.applied.append((self.page_index, self.rect))


class FakeBackend:
    def __init__(
        self,
        pages: Optional[list[PageContent]] = None,
        hits: Optional[dict[tuple[int, str], list[Any]]] = None,
    ) -> None:
        self.pages = pages or []
        self.hits = hits or {}
        self.fields: dict[int, list[FormField]] = {
            p.page_index: list(p.form_fields) for p in self.pages
        }
        self.searches: list[str] = []
        self.deleted: list[tuple[int, str]] = []
        self.applied: list[tuple[int, Any]] = []
        self.saved_modes: list[SaveMode] = []
        self.sanitized = False
        self.closed = False
        self.fail_save = False
        self.fail_regions = False

    @property
    def page_count(self) -> int:
        return len(self.pages)

    def bounds_of(self, page_index: int) -> BoundingBox:
        page = self.pages[page_index]
        return BoundingBox(x=0, y=0, width=page.width, height=page.height)

    def search_text(self, page_index: int, literal: str, max_hits: int) -> list[Any]:
        self.searches.append(literal)
        return list(self.hits.get((page_index, literal), []))[:max_hits]

    def list_form_fields(self, page_index: int) -> list[FormField]:
        return list(self.fields.get(page_index, []))

    def delete_field(self, page_index: int, field_id: str) -> None:
        fields = self.fields.get(page_index, [])
        remaining = [f for f in fields if f.id != field_id]
        if len(remaining) == len(fields):
            raise BackendOperationFailure(f"no field {field_id}")
        self.fields[page_index] = remaining
        self.deleted.append((page_index, field_id))

    def create_redaction_region(self, page_index: int, rect) -> FakeRegion:
        return FakeRegion(self, page_index, rect)

    def extract_page(self, page_index: int) -> PageContent:
        return self.pages[page_index]

    def sanitize(self) -> None:
        self.sanitized = True

    def save(self, mode: SaveMode = SaveMode.FULL) -> bytes:
        if self.fail_save:
            raise FatalBackendFailure("disk full")
        self.saved_modes.append(mode)
        return b"%PDF-redacted"

    def close(self) -> None:
        self.closed = True


class FakeClassifier:
    """Returns canned tokens for every chunk (or computes them from the text)."""

    def __init__(self, tokens: Callable[[str], list[RawToken]], ready: bool = True) -> None:
        self._tokens = tokens
        self._ready = ready
        self.calls: list[str] = []

    @property
    def ready(self) -> bool:
        return self._ready

    def classify(self, text: str) -> list[RawToken]:
        self.calls.append(text)
        return self._tokens(text)


def quad(x0: float, y0: float, x1: float, y1: float) -> list[float]:
    """Axis-aligned 8-number quad in top-left coordinates."""
    return [x0, y0, x1, y0, x0, y1, x1, y1]


@pytest.fixture
def fake_backend():
    return FakeBackend


@pytest.fixture
def fake_classifier():
    return FakeClassifier


@pytest.fixture
def make_quad():
    return quad


# ---------------------------------------------------------------------------
# Real documents built in memory
# ---------------------------------------------------------------------------

def build_pdf(lines: list[str], fields: Optional[dict[str, str]] = None) -> bytes:
    """One-page PDF with *lines* of text and optional text widgets (name → value)."""
    doc = fitz.open()
    page = doc.new_page(width=612, height=792)
    for i, line in enumerate(lines):
        page.insert_text((72, 72 + i * 20), line, fontsize=11)
    for i, (name, value) in enumerate((fields or {}).items()):
        widget = fitz.Widget()
        widget.field_name = name
        widget.field_type = fitz.PDF_WIDGET_TYPE_TEXT
        widget.rect = fitz.Rect(72, 300 + i * 40, 300, 320 + i * 40)
        widget.field_value = value
        page.add_widget(widget)
    data = doc.tobytes()
    doc.close()
    return data


def build_docx(paragraphs: list[str]) -> bytes:
    document = Document()
    for text in paragraphs:
        document.add_paragraph(text)
    buffer = io.BytesIO()
    document.save(buffer)
    return buffer.getvalue()


@pytest.fixture
def make_pdf():
    return build_pdf


@pytest.fixture
def make_docx():
    return build_docx
