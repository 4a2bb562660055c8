"""Tests for span location: search, occurrence selection, variants, run fallback."""

from __future__ import annotations

import pytest

from saferedact.core.detection.span_locator import (
    SpanLocator,
    estimate_from_runs,
    search_variants,
    select_occurrence,
)
from saferedact.core.errors import LocatorMiss
from saferedact.models.schemas import PageContent, TextRun

PAGE_W = 612.0
PAGE_H = 792.0


def _page(text: str, runs: list[TextRun] | None = None) -> PageContent:
    return PageContent(page_index=0, width=PAGE_W, height=PAGE_H, text=text, runs=runs or [])


class TestSearchVariants:
    def test_single_line_has_no_variants(self):
        assert search_variants("John Smith") == []

    def test_soft_hyphen(self):
        assert search_variants("inter-\nnational") == [
            "inter\nnational", "international", "inter-national",
        ]

    def test_plain_line_break(self):
        assert search_variants("Jane\nDoe") == ["JaneDoe"]


class TestSelectOccurrence:
    def test_in_range(self):
        groups = [["a"], ["b"], ["c"]]
        assert select_occurrence(groups, 2) == ["c"]

    def test_out_of_range_falls_back_to_first(self):
        groups = [["a"], ["b"]]
        assert select_occurrence(groups, 5) == ["a"]


class TestLocate:
    def test_single_hit(self, fake_backend, make_quad):
        page = _page("Call John Smith today")
        backend = fake_backend([page], {(0, "John Smith"): [make_quad(40, 100, 110, 112)]})
        box = SpanLocator(backend).locate(page, 5, "John Smith")
        assert box.x == pytest.approx(40)
        assert box.y == pytest.approx(PAGE_H - 112)
        assert box.width == pytest.approx(70)
        assert box.height == pytest.approx(12)

    def test_nth_occurrence(self, fake_backend, make_quad):
        page = _page("Ann met Ann")
        backend = fake_backend([page], {
            (0, "Ann"): [make_quad(10, 100, 30, 112), make_quad(100, 100, 120, 112)],
        })
        locator = SpanLocator(backend)
        assert locator.locate(page, 0, "Ann").x == pytest.approx(10)
        assert locator.locate(page, 8, "Ann").x == pytest.approx(100)

    def test_occurrence_beyond_hits_uses_first(self, fake_backend, make_quad):
        page = _page("Ann met Ann")
        backend = fake_backend([page], {(0, "Ann"): [make_quad(10, 100, 30, 112)]})
        assert SpanLocator(backend).locate(page, 8, "Ann").x == pytest.approx(10)

    def test_single_line_hits_stay_separate(self, fake_backend, make_quad):
        page = _page("A B and A B")
        backend = fake_backend([page], {
            (0, "A B"): [make_quad(10, 100, 30, 112), make_quad(34, 100, 54, 112)],
        })
        assert len(SpanLocator(backend).search(page, "A B")) == 2

    def test_multiline_hit_merged(self, fake_backend, make_quad):
        page = _page("Jane\nDoe")
        backend = fake_backend([page], {
            (0, "Jane\nDoe"): [make_quad(10, 100, 60, 112), make_quad(10, 114, 40, 126)],
        })
        locator = SpanLocator(backend)
        assert len(locator.search(page, "Jane\nDoe")) == 1
        box = locator.locate(page, 0, "Jane\nDoe")
        assert box.height == pytest.approx(26)
        assert box.width == pytest.approx(50)

    def test_hyphenation_variant(self, fake_backend, make_quad):
        page = _page("the inter-\nnational team")
        backend = fake_backend([page], {(0, "international"): [make_quad(30, 100, 90, 112)]})
        box = SpanLocator(backend).locate(page, 4, "inter-\nnational")
        assert box.x == pytest.approx(30)
        assert backend.searches == ["inter-\nnational", "inter\nnational", "international"]

    def test_variant_hit_on_two_lines_merged(self, fake_backend, make_quad):
        page = _page("the inter-\nnational team")
        backend = fake_backend([page], {
            (0, "international"): [[make_quad(30, 100, 90, 112)], [make_quad(30, 114, 80, 126)]],
        })
        box = SpanLocator(backend).locate(page, 4, "inter-\nnational")
        assert box.height == pytest.approx(26)
        assert box.width == pytest.approx(60)

    def test_run_fallback(self, fake_backend):
        runs = [
            TextRun(text="Hello", x=10, y=700, width=50, height=12),
            TextRun(text="World", x=70, y=700, width=50, height=12),
        ]
        page = _page("Hello World", runs)
        box = SpanLocator(fake_backend([page])).locate(page, 6, "World")
        # avg char width 10, padding 1
        assert box.x == pytest.approx(69)
        assert box.width == pytest.approx(52)
        assert box.y == pytest.approx(700)

    def test_miss(self, fake_backend):
        page = _page("Hello World")
        with pytest.raises(LocatorMiss) as exc_info:
            SpanLocator(fake_backend([page])).locate(page, 6, "World")
        assert exc_info.value.offset == 6


class TestEstimateFromRuns:
    def test_sub_span(self):
        runs = [TextRun(text="abcdefghij", x=0, y=0, width=100, height=10)]
        box = estimate_from_runs(runs, 2, 3)
        assert box.x == pytest.approx(20 - 1)
        assert box.width == pytest.approx(30 + 2)

    def test_offset_in_separator(self):
        runs = [TextRun(text="ab", x=0, y=0, width=20, height=10)]
        assert estimate_from_runs(runs, 2, 1) is None

    def test_zero_width_run(self):
        runs = [TextRun(text="ab", x=0, y=0, width=0, height=10)]
        assert estimate_from_runs(runs, 0, 2) is None
