"""Span location — map a text match to an on-page bounding box.

Primary strategy is the backend's literal text search; the hit that
corresponds to the match is chosen by counting earlier occurrences of
the same string in the page text. When search finds nothing at all the
box is estimated from the enclosing text run.
"""

from __future__ import annotations

import logging
from typing import Optional

from saferedact.core.backend.base import DocumentBackend
from saferedact.core.detection.detection_config import CHAR_PADDING_RATIO, MAX_SEARCH_HITS
from saferedact.core.detection.quads import (
    QuadGroup,
    flatten_search_results,
    group_bounds,
    merge_multiline_groups,
)
from saferedact.core.errors import LocatorMiss
from saferedact.core.text_utils import count_prior_occurrences
from saferedact.models.schemas import BoundingBox, PageContent, TextRun

logger = logging.getLogger(__name__)


def search_variants(text: str) -> list[str]:
    """Alternative spellings of a multi-line match, in retry order.

    Recovers soft-hyphenation: the extracted text may contain a hyphen
    and/or line break that the backend's search does not.
    """
    if "\n" not in text:
        return []
    variants: list[str] = []
    if "-\n" in text:
        variants.append(text.replace("-\n", "\n"))
        variants.append(text.replace("-\n", ""))
    variants.append(text.replace("\n", ""))
    # Keep order, drop duplicates and the original
    seen = {text}
    unique: list[str] = []
    for v in variants:
        if v and v not in seen:
            seen.add(v)
            unique.append(v)
    return unique


def select_occurrence(groups: list[QuadGroup], occurrence: int) -> QuadGroup:
    """Pick the Nth group, falling back to the first when N is out of range."""
    if 0 <= occurrence < len(groups):
        return groups[occurrence]
    if occurrence >= len(groups):
        logger.debug("Occurrence %d beyond %d hits, using first", occurrence, len(groups))
    return groups[0]


def estimate_from_runs(
    runs: list[TextRun], offset: int, length: int,
) -> Optional[BoundingBox]:
    """Approximate a box from the run containing *offset*.

    Runs are assumed to be joined with one-character separators (see
    ``build_page_text``). The sub-span is placed using the run's average
    character width and padded by a fraction of one character.
    """
    if offset < 0 or length <= 0:
        return None
    cursor = 0
    for run in runs:
        run_start = cursor
        run_end = cursor + len(run.text)
        if run_start <= offset < run_end and run.text:
            avg_char = run.width / len(run.text) if run.width > 0 else 0.0
            if avg_char <= 0.0:
                return None
            padding = avg_char * CHAR_PADDING_RATIO
            in_run = offset - run_start
            span_chars = min(length, len(run.text) - in_run)
            return BoundingBox(
                x=run.x + avg_char * in_run - padding,
                y=run.y,
                width=avg_char * span_chars + 2 * padding,
                height=max(0.0, run.height),
            )
        cursor = run_end + 1
    return None


class SpanLocator:
    """Resolve (page text, offset, matched text) to a bottom-left bounding box."""

    def __init__(self, backend: DocumentBackend, max_hits: int = MAX_SEARCH_HITS) -> None:
        self.backend = backend
        self.max_hits = max_hits

    def _search_groups(self, page: PageContent, literal: str, text: str) -> list[QuadGroup]:
        raw = self.backend.search_text(page.page_index, literal, self.max_hits)
        groups = flatten_search_results(raw or [])
        # Merge on the matched text: a variant without the line break
        # still hits both lines
        return merge_multiline_groups(groups, text, page.width)

    def search(self, page: PageContent, text: str) -> list[QuadGroup]:
        """Search the literal text, then its line-break variants until one hits."""
        groups = self._search_groups(page, text, text)
        if groups:
            return groups
        for variant in search_variants(text):
            groups = self._search_groups(page, variant, text)
            if groups:
                logger.debug("Located %r via variant %r", text, variant)
                return groups
        return []

    def locate(self, page: PageContent, offset: int, text: str) -> BoundingBox:
        """Return the box for *text* found at *offset* in ``page.text``.

        Raises LocatorMiss when neither search nor run estimation succeeds.
        """
        groups = self.search(page, text)
        if groups:
            occurrence = count_prior_occurrences(page.text, text, offset)
            return group_bounds(select_occurrence(groups, occurrence), page.height)

        box = estimate_from_runs(page.runs, offset, len(text))
        if box is not None:
            logger.debug("Located %r on page %d from text run", text, page.page_index)
            return box
        raise LocatorMiss(text, page.page_index, offset)
