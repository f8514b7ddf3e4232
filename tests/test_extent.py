import logging

import fitz  # PyMuPDF
import pytest

from verifystamp import extent
from verifystamp.extent import (
    ContentEvent,
    ContentExtentAnalyzer,
    EventKind,
    ExtentResult,
    iter_content_events,
    measure_extent,
)
from verifystamp.geometry import PageGeometry
from verifystamp.signing import open_source

from .conftest import build_pdf, build_rotated_pdf

A4 = PageGeometry(width=595, height=842, bottom_edge=0, top_edge=842)


def analyze_last_page(path):
    with open_source(path) as (doc, pdf):
        return ContentExtentAnalyzer().analyze(doc[-1], pdf)


def text_at(stamp_y, x=72.0):
    page_y = 842 - stamp_y
    return ContentEvent(EventKind.TEXT, (x, page_y, x + 50, page_y))


# ----------------------------------------------------------------------
# measure_extent on synthetic events
# ----------------------------------------------------------------------
def test_no_events_falls_back_above_bottom_edge():
    assert measure_extent([], A4) == ExtentResult(lowest_y=50, found=False)


def test_lowest_candidate_wins():
    result = measure_extent([text_at(500), text_at(300), text_at(650)], A4)
    assert result == ExtentResult(lowest_y=300, found=True)


def test_candidate_near_top_edge_is_rejected():
    result = measure_extent([text_at(842 - 5)], A4)
    assert result == ExtentResult(lowest_y=50, found=False)


def test_candidates_on_page_edges_are_rejected():
    events = [text_at(0), text_at(842 - 10), ContentEvent(EventKind.IMAGE, (0, 842, 10, 900))]
    assert measure_extent(events, A4).found is False


def test_accepted_extent_is_strictly_inside_page():
    events = [text_at(y) for y in (0.5, 120, 831.9)]
    result = measure_extent(events, A4)
    assert result.found
    assert A4.bottom_edge < result.lowest_y < A4.top_edge - extent.TOP_GUARD


def test_pdf_rect_sources_use_declared_rectangle():
    events = [
        ContentEvent(EventKind.ANNOTATION, (50, 200, 150, 260)),
        ContentEvent(EventKind.FORM_FIELD, (300, 180, 200, 140)),  # unnormalized
    ]
    assert measure_extent(events, A4) == ExtentResult(lowest_y=140, found=True)


def test_malformed_event_is_skipped(caplog):
    events = [ContentEvent(EventKind.ANNOTATION, (1, 2, 3)), text_at(420)]
    with caplog.at_level(logging.WARNING, logger="verifystamp.extent"):
        result = measure_extent(events, A4)
    assert result == ExtentResult(lowest_y=420, found=True)
    assert "malformed annotation" in caplog.text


def test_pdf_rect_on_sideways_page_uses_visible_height():
    # A4 portrait with /Rotate 90, seen as 842 x 595
    geometry = PageGeometry(
        width=842,
        height=595,
        bottom_edge=0,
        top_edge=595,
        matrix=(1, 0, 0, -1, 0, 842),
        rotation=(0, 1, -1, 0, 842, 0),
    )
    events = [ContentEvent(EventKind.ANNOTATION, (100, 500, 200, 520))]
    assert measure_extent(events, geometry) == ExtentResult(lowest_y=395, found=True)


# ----------------------------------------------------------------------
# Real documents
# ----------------------------------------------------------------------
def test_blank_page_has_no_extent(tmp_path):
    path = build_pdf(tmp_path / "blank.pdf")
    assert analyze_last_page(path) == ExtentResult(lowest_y=50, found=False)


def test_single_text_line_reports_its_baseline(tmp_path):
    path = build_pdf(tmp_path / "text.pdf", texts=[(0, 72, 300, "Hello world")])
    result = analyze_last_page(path)
    assert result.found
    assert result.lowest_y == pytest.approx(300, abs=0.01)


def test_image_below_text_wins(tmp_path):
    path = build_pdf(
        tmp_path / "image.pdf",
        texts=[(0, 72, 300, "Caption")],
        images=[(0, fitz.Rect(100, 600, 200, 700))],
    )
    result = analyze_last_page(path)
    assert result.found
    assert result.lowest_y == pytest.approx(842 - 700, abs=0.01)


def test_annotation_is_counted(tmp_path):
    path = tmp_path / "annot.pdf"
    doc = fitz.open()
    page = doc.new_page(width=595, height=842)
    page.insert_text((72, 842 - 400), "Body")
    page.add_rect_annot(fitz.Rect(50, 742, 150, 792))
    doc.save(str(path))
    doc.close()

    result = analyze_last_page(path)
    assert result.found
    assert result.lowest_y == pytest.approx(50, abs=2)


def test_form_fields_of_other_pages_are_counted(tmp_path):
    path = tmp_path / "form.pdf"
    doc = fitz.open()
    doc.new_page(width=595, height=842)
    doc.new_page(width=595, height=842)
    doc[1].insert_text((72, 842 - 400), "Last page body")

    widget = fitz.Widget()
    widget.field_name = "approver"
    widget.field_type = fitz.PDF_WIDGET_TYPE_TEXT
    widget.rect = fitz.Rect(72, 722, 272, 742)  # stamp bottom = 100
    first = doc[0]
    first.add_widget(widget)
    doc.save(str(path))
    doc.close()

    result = analyze_last_page(path)
    assert result.found
    assert result.lowest_y == pytest.approx(100, abs=0.01)


def test_failing_source_is_skipped(tmp_path, monkeypatch, caplog):
    path = build_pdf(tmp_path / "text.pdf", texts=[(0, 72, 300, "Hello")])

    def broken(page):
        raise RuntimeError("bad image stream")
        yield  # pragma: no cover

    monkeypatch.setattr(extent, "iter_image_events", broken)
    with caplog.at_level(logging.WARNING, logger="verifystamp.extent"):
        with open_source(path) as (doc, pdf):
            events = list(iter_content_events(doc[-1], pdf))

    assert [e.kind for e in events] == [EventKind.TEXT]
    assert "bad image stream" in caplog.text


@pytest.mark.parametrize("visible_x", [100, 400, 700])
def test_rotated_page_is_measured_as_displayed(tmp_path, visible_x):
    path = build_rotated_pdf(tmp_path / "rotated.pdf", texts=[(visible_x, 297, "Rotated page body")])
    result = analyze_last_page(path)
    assert result.found
    assert result.lowest_y == pytest.approx(297, abs=0.5)


def test_rotated_page_geometry_is_the_visible_page(tmp_path):
    path = build_rotated_pdf(tmp_path / "rotated.pdf", rotation=270)
    with open_source(path) as (doc, _):
        geometry = PageGeometry.from_page(doc[0])
    assert (geometry.width, geometry.height) == (842, 595)
    assert geometry.top_edge == 595
