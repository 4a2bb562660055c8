"""PyMuPDF (fitz) implementation of :class:`DocumentBackend`.

Every fitz object (Page, Quad, Widget, Rect) is converted to plain
core types here. PyMuPDF uses a top-left origin; boxes handed to the
core are bottom-left.
"""

from __future__ import annotations

import logging
from typing import Optional

import fitz  # PyMuPDF

from saferedact.core.backend.base import build_page_text
from saferedact.core.bbox_utils import Rect, from_backend_rect
from saferedact.core.errors import BackendOperationFailure, FatalBackendFailure
from saferedact.models.schemas import BoundingBox, FormField, PageContent, SaveMode, TextRun

logger = logging.getLogger(__name__)


def _quad_to_list(quad: fitz.Quad) -> list[float]:
    return [
        quad.ul.x, quad.ul.y, quad.ur.x, quad.ur.y,
        quad.ll.x, quad.ll.y, quad.lr.x, quad.lr.y,
    ]


def _widget_id(widget: fitz.Widget) -> str:
    return widget.field_name or f"xref{widget.xref}"


class PdfRedactionRegion:
    """A redaction annotation on one page; applying it removes the content beneath."""

    def __init__(self, page: fitz.Page, annot: fitz.Annot) -> None:
        self._page = page
        self._annot = annot

    def apply_content_removal(self) -> None:
        try:
            self._page.apply_redactions()
        except Exception as exc:
            raise BackendOperationFailure(
                f"apply_redactions failed on page {self._page.number}: {exc}"
            ) from exc


class PyMuPDFBackend:
    """A loaded PDF. Use :meth:`open` to construct from bytes."""

    def __init__(self, doc: fitz.Document) -> None:
        self._doc = doc

    @classmethod
    def open(cls, data: bytes) -> "PyMuPDFBackend":
        """Load a PDF from bytes. Raises FatalBackendFailure when it cannot be parsed."""
        try:
            doc = fitz.open(stream=data, filetype="pdf")
        except Exception as exc:
            raise FatalBackendFailure(f"Could not open PDF: {exc}") from exc
        if not doc.is_pdf:
            doc.close()
            raise FatalBackendFailure("Document is not a PDF")
        logger.info("Opened PDF with %d pages", doc.page_count)
        return cls(doc)

    # ------------------------------------------------------------------
    # Page access
    # ------------------------------------------------------------------

    @property
    def page_count(self) -> int:
        return self._doc.page_count

    def _page(self, page_index: int) -> fitz.Page:
        if not 0 <= page_index < self._doc.page_count:
            raise IndexError(f"Page index {page_index} out of range")
        return self._doc[page_index]

    def bounds_of(self, page_index: int) -> BoundingBox:
        rect = self._page(page_index).rect
        return BoundingBox(x=0, y=0, width=rect.width, height=rect.height)

    def search_text(self, page_index: int, literal: str, max_hits: int) -> list[list[list[float]]]:
        """One list of 8-number quads per hit, in reading order.

        fitz reports a flat list with one quad per matched line. A literal
        spanning N lines yields N quads per hit, so the flat list is cut
        into runs of N; when the count does not divide evenly every quad
        becomes its own hit.
        """
        if not literal:
            return []
        page = self._page(page_index)
        quads = [_quad_to_list(q) for q in page.search_for(literal, quads=True)]
        lines = literal.count("\n") + 1
        if lines > 1 and quads and len(quads) % lines == 0:
            hits = [quads[i:i + lines] for i in range(0, len(quads), lines)]
        else:
            hits = [[q] for q in quads]
        return hits[:max_hits]

    def extract_page(self, page_index: int) -> PageContent:
        page = self._page(page_index)
        height = page.rect.height
        runs: list[TextRun] = []
        # (x0, y0, x1, y1, word, block_no, line_no, word_no)
        for x0, y0, x1, y1, word, *_ in page.get_text("words", sort=True):
            if not word:
                continue
            box = from_backend_rect((x0, y0, x1, y1), height)
            runs.append(TextRun(
                text=word, x=box.x, y=box.y, width=box.width, height=box.height,
            ))
        return PageContent(
            page_index=page_index,
            width=page.rect.width,
            height=height,
            text=build_page_text(runs),
            runs=runs,
            form_fields=self.list_form_fields(page_index),
        )

    # ------------------------------------------------------------------
    # Form fields
    # ------------------------------------------------------------------

    def list_form_fields(self, page_index: int) -> list[FormField]:
        page = self._page(page_index)
        height = page.rect.height
        fields: list[FormField] = []
        for widget in page.widgets() or []:
            r = widget.rect
            fields.append(FormField(
                id=_widget_id(widget),
                label=widget.field_label or "",
                value=str(widget.field_value or ""),
                bounds=from_backend_rect((r.x0, r.y0, r.x1, r.y1), height),
                field_type=widget.field_type_string or "",
            ))
        return fields

    def delete_field(self, page_index: int, field_id: str) -> None:
        page = self._page(page_index)
        target: Optional[fitz.Widget] = None
        for widget in page.widgets() or []:
            if _widget_id(widget) == field_id:
                target = widget
                break
        if target is None:
            raise BackendOperationFailure(
                f"Field '{field_id}' not found on page {page_index}"
            )
        try:
            page.delete_widget(target)
        except Exception as exc:
            raise BackendOperationFailure(
                f"Could not delete field '{field_id}' on page {page_index}: {exc}"
            ) from exc

    # ------------------------------------------------------------------
    # Redaction
    # ------------------------------------------------------------------

    def create_redaction_region(self, page_index: int, rect: Rect) -> PdfRedactionRegion:
        page = self._page(page_index)
        try:
            annot = page.add_redact_annot(fitz.Rect(*rect), fill=(0, 0, 0))
        except Exception as exc:
            raise BackendOperationFailure(
                f"Could not create redaction on page {page_index}: {exc}"
            ) from exc
        return PdfRedactionRegion(page, annot)

    def sanitize(self) -> None:
        """Strip metadata and hidden content before serialization."""
        doc = self._doc

        # ── Metadata ───────────────────────────────────────────────────
        doc.set_metadata({})
        doc.del_xml_metadata()
        doc.set_toc([])

        # ── Annotations (redactions were consumed by apply_redactions) ─
        removed = 0
        for page in doc:
            for annot in list(page.annots() or []):
                page.delete_annot(annot)
                removed += 1

        # ── Embedded files ─────────────────────────────────────────────
        names = doc.embfile_names()
        for name in names:
            doc.embfile_del(name)

        # ── JavaScript ─────────────────────────────────────────────────
        doc.scrub(
            attached_files=False, clean_pages=False, embedded_files=False,
            hidden_text=False, javascript=True, metadata=False,
            redactions=False, remove_links=False, reset_fields=False,
            reset_responses=False, thumbnails=False, xml_metadata=False,
        )

        # ── Layers: switch every optional content group on, then drop
        # the OC properties so nothing stays hidden in an "off" layer
        ocgs = doc.get_ocgs()
        if ocgs:
            doc.set_layer(-1, on=list(ocgs))
            doc.xref_set_key(doc.pdf_catalog(), "OCProperties", "null")

        logger.info(
            "Sanitized PDF: %d annotations, %d embedded files, %d layers",
            removed, len(names), len(ocgs or {}),
        )

    def save(self, mode: SaveMode = SaveMode.FULL) -> bytes:
        """Serialize the document.

        ``FULL`` rewrites every object and garbage-collects unreferenced
        ones, so removed content is purged. ``INCREMENTAL`` keeps the
        object table as is and must not be used after redaction.
        """
        try:
            if SaveMode(mode) == SaveMode.FULL:
                return self._doc.tobytes(garbage=4, deflate=True, clean=True)
            return self._doc.tobytes()
        except Exception as exc:
            raise FatalBackendFailure(f"Could not serialize PDF: {exc}") from exc

    def close(self) -> None:
        self._doc.close()
