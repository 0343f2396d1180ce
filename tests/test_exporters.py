import io
import zipfile

import fitz
import pytest

import pdf_exporter
import raster_exporter
from document import SourceDocument
from errors import ExportError
from history import AnnotationSet
from models import Callout, Point, Rect
from sample_pdf import make_pdf
from snippet_renderer import SnippetCache

# Black square of the sample page, doubled and placed lower on the same page.
SAME_PAGE = Callout(0, Rect(100, 100, 50, 40), Point(300, 400), 2)


def _annotations(document):
    composition = document.add_composition_page("A4")
    cross = Callout(0, Rect(100, 100, 50, 40), Point(100, 100), 3)
    return AnnotationSet({0: (SAME_PAGE,), composition: (cross,)}), composition


# ── Raster ────────────────────────────────────────────────────────────────────

def test_zip_has_one_png_per_page(qapp, document, cache):
    annotations, _ = _annotations(document)
    progress = []
    data = raster_exporter.export_zip(document, annotations, cache, dpi=72,
                                      progress_cb=lambda d, t: progress.append((d, t)))
    with zipfile.ZipFile(io.BytesIO(data)) as zf:
        names = zf.namelist()
        assert names == [f"page_{n}.png" for n in range(1, document.total_pages + 1)]
        first = fitz.Pixmap(zf.read("page_1.png"))
        last = fitz.Pixmap(zf.read(names[-1]))
    assert (first.width, first.height) == (612, 792)
    assert (last.width, last.height) == (595, 842)
    assert progress[-1] == (document.total_pages, document.total_pages)


def test_raster_draws_snippet_at_destination(qapp, document, cache):
    entries = raster_exporter.export_page_images(
        document, AnnotationSet({0: (SAME_PAGE,)}), cache, dpi=72)
    pix = fitz.Pixmap(entries[0][1])
    # Inside the placed image (300..400, 400..480), away from the arrow.
    r, g, b = pix.pixel(310, 470)[:3]
    assert max(r, g, b) < 60
    # Outside every callout the page stays white.
    assert pix.pixel(580, 20)[:3] == (255, 255, 255)


def test_raster_scales_with_dpi(qapp, document, cache):
    entries = raster_exporter.export_page_images(document, AnnotationSet(), cache, dpi=144)
    pix = fitz.Pixmap(entries[0][1])
    assert (pix.width, pix.height) == (1224, 1584)


def test_raster_failure_raises_export_error(qapp, document, cache, monkeypatch):
    def boom(img):
        raise RuntimeError("disk on fire")
    monkeypatch.setattr(raster_exporter, "encode_png", boom)
    with pytest.raises(ExportError):
        raster_exporter.export_zip(document, AnnotationSet(), cache, dpi=72)


# ── Structured PDF ────────────────────────────────────────────────────────────

def _image_rects(page):
    rects = []
    for info in page.get_images(full=True):
        rects.extend(page.get_image_rects(info[0]))
    return rects


def test_pdf_keeps_pages_and_adds_composition_pages(document, cache):
    annotations, composition = _annotations(document)
    out = fitz.open(stream=pdf_exporter.export_pdf(document, annotations, cache),
                    filetype="pdf")
    assert out.page_count == document.total_pages
    assert out[composition].rect == fitz.Rect(0, 0, 595, 842)
    assert "Page 2" in out[1].get_text()
    assert "Detail from Page 1" in out[composition].get_text()
    assert "Detail from Page" not in out[0].get_text()
    out.close()


def test_pdf_image_matches_callout_geometry(document, cache):
    data = pdf_exporter.export_pdf(document, AnnotationSet({0: (SAME_PAGE,)}), cache)
    out = fitz.open(stream=data, filetype="pdf")
    (rect,) = _image_rects(out[0])
    assert rect.x0 == pytest.approx(300, abs=0.01)
    assert rect.y0 == pytest.approx(400, abs=0.01)
    assert rect.width == pytest.approx(100, abs=0.01)
    assert rect.height == pytest.approx(80, abs=0.01)
    out.close()


def test_pdf_rotated_page_uses_visual_coordinates():
    doc = SourceDocument.open(make_pdf(pages=((612, 792),), rotate_last=90))
    cache = SnippetCache(doc.page, scheduler=lambda fn: None)
    width, height = doc.page_size(0)
    assert (width, height) == (792, 612)
    callout = Callout(0, Rect(10, 10, 20, 20), Point(600, 50), 2)
    out = fitz.open(stream=pdf_exporter.export_pdf(
        doc, AnnotationSet({0: (callout,)}), cache), filetype="pdf")
    page = out[0]
    assert page.rotation == 0
    assert page.rect.width == pytest.approx(792)
    (rect,) = _image_rects(page)
    assert rect.x0 == pytest.approx(600, abs=0.01)
    assert rect.y0 == pytest.approx(50, abs=0.01)
    out.close()
    doc.close()


def test_pdf_skips_unrenderable_snippets(document, cache):
    broken = Callout(42, Rect(0, 0, 10, 10), Point(10, 10), 2)
    data = pdf_exporter.export_pdf(document, AnnotationSet({0: (broken,)}), cache)
    out = fitz.open(stream=data, filetype="pdf")
    assert _image_rects(out[0]) == []
    assert "Detail from Page 43" in out[0].get_text()
    out.close()


def test_pdf_failure_raises_export_error(document, cache, monkeypatch):
    def boom(*args):
        raise RuntimeError("broken page")
    monkeypatch.setattr(pdf_exporter, "bake_page", boom)
    with pytest.raises(ExportError):
        pdf_exporter.export_pdf(document, AnnotationSet({0: (SAME_PAGE,)}), cache)
