"""Find the lowest point already occupied by content on a page.

Four independent sources are scanned, because any of them can be the visually
lowest element of a page:

  1) text spans (baseline of every span, via PyMuPDF)
  2) image placements (via PyMuPDF)
  3) the page's /Annots entries (declared /Rect, via pikepdf)
  4) every field of the document's /AcroForm (declared /Rect, via pikepdf)

Each source yields ``ContentEvent`` values; ``measure_extent`` folds them into
an ``ExtentResult``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterable, Iterator, Tuple

import fitz  # PyMuPDF
import pikepdf

from .geometry import ContentBoundingBox, PageGeometry

logger = logging.getLogger(__name__)

# candidates closer than this to the top edge are running headers
TOP_GUARD = 10.0
# stamp-space offset reported when the page has no qualifying content
FALLBACK_OFFSET = 50.0


class EventKind(Enum):
    TEXT = "text"
    IMAGE = "image"
    ANNOTATION = "annotation"
    FORM_FIELD = "form_field"


@dataclass(frozen=True)
class ContentEvent:
    """One piece of page content.

    ``payload`` depends on ``kind``:
      TEXT        baseline endpoints (x0, y0, x1, y1), unrotated page space
      IMAGE       placement bbox (x0, y0, x1, y1), unrotated page space
      ANNOTATION  declared /Rect, PDF user space
      FORM_FIELD  declared /Rect, PDF user space
    """

    kind: EventKind
    payload: Tuple[float, ...]


@dataclass(frozen=True)
class ExtentResult:
    lowest_y: float
    found: bool


# ----------------------------------------------------------------------
# Event -> bounding box dispatch
# ----------------------------------------------------------------------
def _baseline_box(geometry: PageGeometry, payload: Tuple[float, ...]) -> ContentBoundingBox:
    x0, y0, x1, y1 = payload
    return geometry.box_from_page_rect((min(x0, x1), min(y0, y1), max(x0, x1), max(y0, y1)))


_BOX_READERS: Dict[EventKind, Callable[[PageGeometry, Tuple[float, ...]], ContentBoundingBox]] = {
    EventKind.TEXT: _baseline_box,
    EventKind.IMAGE: lambda geometry, payload: geometry.box_from_page_rect(payload),
    EventKind.ANNOTATION: lambda geometry, payload: geometry.box_from_pdf_rect(payload),
    EventKind.FORM_FIELD: lambda geometry, payload: geometry.box_from_pdf_rect(payload),
}


def bounding_box(event: ContentEvent, geometry: PageGeometry) -> ContentBoundingBox:
    return _BOX_READERS[event.kind](geometry, event.payload)


# ----------------------------------------------------------------------
# Event sources
# ----------------------------------------------------------------------
def iter_text_events(page: fitz.Page) -> Iterator[ContentEvent]:
    """One event per text span, carrying the span's baseline."""
    content = page.get_text("dict")
    for block in content.get("blocks", []):
        if block.get("type") != 0:  # image blocks are covered by get_image_info
            continue
        for line in block.get("lines", []):
            dx, dy = line.get("dir", (1.0, 0.0))
            for span in line.get("spans", []):
                if not span.get("text"):
                    continue
                try:
                    ox, oy = span["origin"]
                    x0, y0, x1, y1 = span["bbox"]
                except (KeyError, TypeError, ValueError):
                    logger.debug("Skipping span without geometry on page %d", page.number + 1)
                    continue
                length = abs((x1 - x0) * dx) + abs((y1 - y0) * dy)
                yield ContentEvent(
                    EventKind.TEXT,
                    (ox, oy, ox + dx * length, oy + dy * length),
                )


def iter_image_events(page: fitz.Page) -> Iterator[ContentEvent]:
    for info in page.get_image_info():
        bbox = info.get("bbox")
        if bbox is None:
            continue
        yield ContentEvent(EventKind.IMAGE, tuple(float(v) for v in bbox))


def _pdf_rect(obj: pikepdf.Object) -> Tuple[float, ...]:
    return tuple(float(v) for v in obj)


def iter_annotation_events(pdf: pikepdf.Pdf, page_index: int) -> Iterator[ContentEvent]:
    page = pdf.pages[page_index]
    if "/Annots" not in page:
        return
    for annot in page.Annots:
        if not isinstance(annot, pikepdf.Dictionary) or "/Rect" not in annot:
            continue
        try:
            rect = _pdf_rect(annot.Rect)
        except (TypeError, ValueError):
            logger.debug("Skipping annotation with unreadable /Rect on page %d", page_index + 1)
            continue
        yield ContentEvent(EventKind.ANNOTATION, rect)


def iter_form_field_events(pdf: pikepdf.Pdf) -> Iterator[ContentEvent]:
    """Every field of the document, not only the ones on the analyzed page."""
    if "/AcroForm" not in pdf.Root:
        return
    acroform = pdf.Root.AcroForm
    if "/Fields" not in acroform:
        return

    pending = list(acroform.Fields)
    seen = set()
    while pending:
        field = pending.pop()
        if not isinstance(field, pikepdf.Dictionary):
            continue
        if field.is_indirect:
            if field.objgen in seen:
                continue
            seen.add(field.objgen)

        if "/Rect" in field:
            try:
                yield ContentEvent(EventKind.FORM_FIELD, _pdf_rect(field.Rect))
            except (TypeError, ValueError):
                logger.debug("Skipping form field with unreadable /Rect")
        if "/Kids" in field:
            pending.extend(field.Kids)


def iter_content_events(page: fitz.Page, pdf: pikepdf.Pdf) -> Iterator[ContentEvent]:
    """Chain all sources; a source that fails is skipped, not fatal."""
    sources = (
        ("text", lambda: iter_text_events(page)),
        ("image", lambda: iter_image_events(page)),
        ("annotation", lambda: iter_annotation_events(pdf, page.number)),
        ("form field", lambda: iter_form_field_events(pdf)),
    )
    for name, source in sources:
        try:
            yield from source()
        except Exception as exc:
            logger.warning("Skipping %s content on page %d: %s", name, page.number + 1, exc)


# ----------------------------------------------------------------------
# Extent
# ----------------------------------------------------------------------
def measure_extent(events: Iterable[ContentEvent], geometry: PageGeometry) -> ExtentResult:
    lowest_y = geometry.top_edge
    found = False

    for event in events:
        try:
            y = bounding_box(event, geometry).bottom_y
        except (TypeError, ValueError) as exc:
            logger.warning("Skipping malformed %s event: %s", event.kind.value, exc)
            continue
        if geometry.bottom_edge < y < geometry.top_edge - TOP_GUARD and y < lowest_y:
            lowest_y = y
            found = True

    if found and lowest_y > geometry.bottom_edge:
        return ExtentResult(lowest_y=lowest_y, found=True)
    return ExtentResult(lowest_y=geometry.bottom_edge + FALLBACK_OFFSET, found=False)


class ContentExtentAnalyzer:
    """Read-only pass over a page and its owning document."""

    def analyze(self, page: fitz.Page, pdf: pikepdf.Pdf) -> ExtentResult:
        geometry = PageGeometry.from_page(page)
        result = measure_extent(iter_content_events(page, pdf), geometry)
        logger.debug(
            "Page %d extent: lowest_y=%.2f found=%s", page.number + 1, result.lowest_y, result.found
        )
        return result
