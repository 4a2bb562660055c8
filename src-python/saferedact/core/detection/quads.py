"""Quadrilateral normalization for backend search results.

Backends report search hits as quadrilaterals of 8 numbers
``[ulx, uly, urx, ury, llx, lly, lrx, lry]`` (top-left origin), but the
nesting of those lists varies: a bare quad, a list of quads, a list of
single-quad lists, or a mix. This module turns any of those shapes
into ``list[QuadGroup]`` immediately; nothing downstream sees the raw
structure.
"""

from __future__ import annotations

import logging
import numbers
from typing import Any, NamedTuple, Sequence

from saferedact.core.detection.detection_config import (
    QUAD_MERGE_HORIZONTAL_RATIO,
    QUAD_MERGE_VERTICAL_FACTOR,
)
from saferedact.models.schemas import BoundingBox

logger = logging.getLogger(__name__)


class Quad(NamedTuple):
    """Four corner points, top-left page origin."""
    ulx: float
    uly: float
    urx: float
    ury: float
    llx: float
    lly: float
    lrx: float
    lry: float

    @property
    def xs(self) -> tuple[float, float, float, float]:
        return (self.ulx, self.urx, self.llx, self.lrx)

    @property
    def ys(self) -> tuple[float, float, float, float]:
        return (self.uly, self.ury, self.lly, self.lry)

    @property
    def center(self) -> tuple[float, float]:
        return (sum(self.xs) / 4.0, sum(self.ys) / 4.0)

    @property
    def height(self) -> float:
        return abs(self.lly - self.uly)


QuadGroup = list[Quad]


# ---------------------------------------------------------------------------
# Phase 1: flatten
# ---------------------------------------------------------------------------

def _is_number(value: Any) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, bool)


def _as_quad(value: Any) -> Quad | None:
    """Return a Quad if *value* is a sequence of exactly 8 numbers."""
    if isinstance(value, Quad):
        return value
    if isinstance(value, (str, bytes)) or not isinstance(value, Sequence):
        return None
    if len(value) != 8 or not all(_is_number(v) for v in value):
        return None
    return Quad(*(float(v) for v in value))


def _is_list(value: Any) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes))


def flatten_hits(hit: Any) -> list[QuadGroup]:
    """Normalize one search hit into quad groups.

    - a bare quad → one group of one quad
    - a list of single-quad lists → one group (the wrapping is dropped)
    - a list of quads → one group
    - a mixed list → one group per quad item; other items are dropped
    """
    quad = _as_quad(hit)
    if quad is not None:
        return [[quad]]
    if not _is_list(hit) or len(hit) == 0 or not _is_list(hit[0]):
        return []

    unwrapped = [
        _as_quad(item[0]) if _is_list(item) and len(item) == 1 else None
        for item in hit
    ]
    if all(q is not None for q in unwrapped):
        return [[q for q in unwrapped if q is not None]]

    direct = [_as_quad(item) for item in hit]
    if all(q is not None for q in direct):
        return [[q for q in direct if q is not None]]

    logger.debug("Mixed search-hit structure; keeping %d bare quads",
                 sum(1 for q in direct if q is not None))
    return [[q] for q in direct if q is not None]


def flatten_search_results(hits: Sequence[Any]) -> list[QuadGroup]:
    """Flatten a list of per-hit results, keeping hit order."""
    groups: list[QuadGroup] = []
    for hit in hits:
        groups.extend(g for g in flatten_hits(hit) if g)
    return groups


# ---------------------------------------------------------------------------
# Phase 2: conditional merge (multi-line matches only)
# ---------------------------------------------------------------------------

def quads_close(a: Quad, b: Quad, page_width: float) -> bool:
    """True when *b* plausibly continues *a* on the next line of the same match."""
    (ax, ay) = a.center
    (bx, by) = b.center
    avg_height = (a.height + b.height) / 2.0
    vertical_ok = abs(by - ay) < QUAD_MERGE_VERTICAL_FACTOR * avg_height
    horizontal_ok = abs(bx - ax) < QUAD_MERGE_HORIZONTAL_RATIO * page_width
    return vertical_ok and horizontal_ok


def merge_multiline_groups(
    groups: list[QuadGroup], search_text: str, page_width: float,
) -> list[QuadGroup]:
    """Merge consecutive groups that are the lines of one multi-line hit.

    Applies only when *search_text* contains a line break; a single-line
    string's separate hits are distinct occurrences and stay separate.
    """
    if "\n" not in search_text or len(groups) <= 1:
        return groups

    merged: list[QuadGroup] = [list(groups[0])]
    for group in groups[1:]:
        if quads_close(merged[-1][-1], group[0], page_width):
            merged[-1].extend(group)
        else:
            merged.append(list(group))
    return merged


# ---------------------------------------------------------------------------
# Bounds
# ---------------------------------------------------------------------------

def group_bounds(group: QuadGroup, page_height: float) -> BoundingBox:
    """Axis-aligned bound of *group*, converted to bottom-left origin."""
    if not group:
        raise ValueError("group_bounds() needs at least one quad")
    xs = [x for q in group for x in q.xs]
    ys = [y for q in group for y in q.ys]
    min_x, max_x = min(xs), max(xs)
    min_y, max_y = min(ys), max(ys)
    return BoundingBox(
        x=min_x,
        y=page_height - max_y,
        width=max_x - min_x,
        height=max_y - min_y,
    )
