"""Bounding-box geometry utilities.

Boxes in the core use a bottom-left origin (``BoundingBox``). Backends
work with top-left rectangles ``(x0, y0, x1, y1)``; conversion happens
only through :func:`to_backend_rect` / :func:`from_backend_rect`.
"""

from __future__ import annotations

from saferedact.models.schemas import BoundingBox

Rect = tuple[float, float, float, float]


def _bbox_overlap_area(a: BoundingBox, b: BoundingBox) -> float:
    """Return the area of intersection between two bounding boxes."""
    ix0 = max(a.x, b.x)
    iy0 = max(a.y, b.y)
    ix1 = min(a.x1, b.x1)
    iy1 = min(a.y1, b.y1)
    if ix1 <= ix0 or iy1 <= iy0:
        return 0.0
    return (ix1 - ix0) * (iy1 - iy0)


def iou(a: BoundingBox, b: BoundingBox) -> float:
    """Intersection-over-union of two boxes (0.0 when either is empty)."""
    inter = _bbox_overlap_area(a, b)
    if inter <= 0.0:
        return 0.0
    union = a.area + b.area - inter
    if union <= 0.0:
        return 0.0
    return inter / union


def same_position(a: BoundingBox, b: BoundingBox, tolerance: float) -> bool:
    """True when x, y, width and height all differ by less than *tolerance*."""
    return (
        abs(a.x - b.x) < tolerance
        and abs(a.y - b.y) < tolerance
        and abs(a.width - b.width) < tolerance
        and abs(a.height - b.height) < tolerance
    )


def within_tolerance(a: BoundingBox, b: BoundingBox, tolerance: float) -> bool:
    """Like :func:`same_position` but inclusive of the tolerance."""
    return (
        abs(a.x - b.x) <= tolerance
        and abs(a.y - b.y) <= tolerance
        and abs(a.width - b.width) <= tolerance
        and abs(a.height - b.height) <= tolerance
    )


def has_geometry(box: BoundingBox) -> bool:
    return box.width > 0.0 and box.height > 0.0


def union_box(boxes: list[BoundingBox]) -> BoundingBox:
    """Smallest box containing all *boxes*."""
    if not boxes:
        raise ValueError("union_box() needs at least one box")
    x0 = min(b.x for b in boxes)
    y0 = min(b.y for b in boxes)
    x1 = max(b.x1 for b in boxes)
    y1 = max(b.y1 for b in boxes)
    return BoundingBox(x=x0, y=y0, width=x1 - x0, height=y1 - y0)


# ---------------------------------------------------------------------------
# Coordinate-space conversion
# ---------------------------------------------------------------------------

def to_backend_rect(box: BoundingBox, page_height: float, margin: float = 0.0) -> Rect:
    """Convert a bottom-left box to a top-left ``(x0, y0, x1, y1)`` rect, grown by *margin*."""
    x0 = box.x - margin
    x1 = box.x1 + margin
    y0 = page_height - box.y1 - margin
    y1 = page_height - box.y + margin
    return (x0, y0, x1, y1)


def from_backend_rect(rect: Rect, page_height: float) -> BoundingBox:
    """Convert a top-left ``(x0, y0, x1, y1)`` rect to a bottom-left box."""
    x0, y0, x1, y1 = rect
    left, right = min(x0, x1), max(x0, x1)
    top, bottom = min(y0, y1), max(y0, y1)
    return BoundingBox(
        x=left,
        y=page_height - bottom,
        width=right - left,
        height=bottom - top,
    )
