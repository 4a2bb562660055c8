"""Document backend capability interface.

The core only talks to documents through :class:`DocumentBackend`.
Concrete backends (PyMuPDF today) adapt their own page/annotation
objects to these plain types at the boundary.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from saferedact.core.bbox_utils import Rect
from saferedact.core.detection.detection_config import LINE_BREAK_Y_DELTA
from saferedact.models.schemas import BoundingBox, FormField, PageContent, SaveMode, TextRun


@runtime_checkable
class RedactionRegion(Protocol):
    """A pending redaction; applying it removes the underlying content."""

    def apply_content_removal(self) -> None: ...


@runtime_checkable
class DocumentBackend(Protocol):
    """Narrow set of document operations used by detection and redaction.

    Page indices are 0-based. Rects passed to the backend are top-left
    ``(x0, y0, x1, y1)``; everything returned to the core uses
    bottom-left :class:`BoundingBox`, except ``search_text`` which returns
    the backend's raw quad structure (normalized by the span locator).
    """

    @property
    def page_count(self) -> int: ...

    def bounds_of(self, page_index: int) -> BoundingBox: ...

    def search_text(self, page_index: int, literal: str, max_hits: int) -> list[Any]: ...

    def list_form_fields(self, page_index: int) -> list[FormField]: ...

    def delete_field(self, page_index: int, field_id: str) -> None: ...

    def create_redaction_region(self, page_index: int, rect: Rect) -> RedactionRegion: ...

    def extract_page(self, page_index: int) -> PageContent: ...

    def sanitize(self) -> None: ...

    def save(self, mode: SaveMode = SaveMode.FULL) -> bytes: ...

    def close(self) -> None: ...


def build_page_text(runs: list[TextRun]) -> str:
    """Join runs into page text: a line break where the baseline moves, else a space.

    Every separator is exactly one character, so run offsets can be
    recovered by walking the runs with ``len(run.text) + 1``.
    """
    parts: list[str] = []
    prev_y: float | None = None
    for run in runs:
        if prev_y is not None:
            parts.append("\n" if abs(run.y - prev_y) > LINE_BREAK_Y_DELTA else " ")
        parts.append(run.text)
        prev_y = run.y
    return "".join(parts)
