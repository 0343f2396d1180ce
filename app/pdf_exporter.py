"""Rebuild the source PDF with every callout embedded as vector content.

Coordinate notes
----------------
All stored geometry is top-left, rotation-aware document space (what
``page.rect`` reports).  PDF content space is bottom-left and offset by the
page's crop box, so every placement goes through
:func:`placement.to_output_space` against the crop box expressed in PDF user
space, then back through ``page.transformation_matrix`` into the coordinates
PyMuPDF's drawing methods take.

PyMuPDF's ``draw_*`` / ``insert_*`` methods work in the *unrotated* page
space.  Rotated pages are normalised with ``page.remove_rotation()`` first,
which keeps their appearance but makes the visual and native spaces
coincide.
"""
import logging
from typing import Callable, List, Optional

import fitz  # pymupdf

import placement
from document import SourceDocument
from errors import ExportError
from history import AnnotationSet
from models import Point, Rect
from placement import ResolvedPlacement
from snippet_renderer import SnippetCache

logger = logging.getLogger(__name__)

PDF_NAME = "detailed_document.pdf"

_FONT = "helv"

ProgressCb = Optional[Callable[[int, int], None]]


def crop_box_in_pdf_space(page: fitz.Page) -> Rect:
    """The visible page area in PDF user space (bottom-left origin)."""
    r = page.rect * ~page.transformation_matrix
    return Rect(r.x0, r.y0, r.width, r.height)


def _to_draw_rect(rect: Rect, page: fitz.Page, crop: Rect) -> fitz.Rect:
    out = placement.to_output_space(rect, crop)
    return fitz.Rect(out.x, out.y, out.right, out.bottom) * page.transformation_matrix


def _to_draw_point(p: Point, page: fitz.Page, crop: Rect) -> fitz.Point:
    out = placement.point_to_output_space(p, crop)
    return fitz.Point(out.x, out.y) * page.transformation_matrix


def output_rects(page: fitz.Page, placements: List[ResolvedPlacement]) -> List[Rect]:
    """Destination rects of *placements* in the page's PDF user space."""
    crop = crop_box_in_pdf_space(page)
    return [placement.to_output_space(item.dest_rect, crop) for item in placements]


def _draw_arrow(page: fitz.Page, tail: Point, tip: Point, crop: Rect):
    """Shaft plus open chevron head at *tip*, both in document space."""
    left, right = placement.arrow_head(tail, tip, placement.ARROW_HEAD_PT)
    tip_d = _to_draw_point(tip, page, crop)
    shape = page.new_shape()
    shape.draw_line(_to_draw_point(tail, page, crop), tip_d)
    if (tail.x, tail.y) != (tip.x, tip.y):
        shape.draw_line(tip_d, _to_draw_point(left, page, crop))
        shape.draw_line(tip_d, _to_draw_point(right, page, crop))
    shape.finish(color=placement.ARROW_COLOR_RGB, width=placement.ARROW_WIDTH_PT,
                 lineCap=1, lineJoin=1)
    shape.commit()


def _draw_label(page: fitz.Page, text: str, anchor: Point, crop: Rect):
    size = placement.LABEL_FONT_PT
    width = fitz.get_text_length(text, fontname=_FONT, fontsize=size)
    origin = _to_draw_point(Point(anchor.x - width / 2, anchor.y), page, crop)
    page.insert_text(origin, text, fontname=_FONT, fontsize=size,
                     color=placement.LABEL_COLOR_RGB)


def bake_page(page: fitz.Page, placements: List[ResolvedPlacement],
              cache: SnippetCache) -> int:
    """Draw *placements* on *page*; return how many snippets were skipped."""
    if page.rotation:
        page.remove_rotation()
    crop = crop_box_in_pdf_space(page)
    skipped = 0
    for item in placements:
        png = cache.render_now(item.callout)
        if png is None:
            skipped += 1
        else:
            page.insert_image(_to_draw_rect(item.dest_rect, page, crop),
                              stream=png, keep_proportion=False)
        if item.same_page:
            _draw_arrow(page, item.source_center, item.dest_center, crop)
        elif item.label:
            _draw_label(page, item.label, item.label_anchor, crop)
    return skipped


def _save(out: fitz.Document) -> bytes:
    # garbage=0 first: the xref rebuild at higher levels chokes on some
    # producers' streams.  Fall back to a full cleanup pass.
    last_exc: Optional[Exception] = None
    for garbage_level in (0, 4):
        try:
            return out.tobytes(garbage=garbage_level, deflate=True)
        except Exception as exc:
            logger.warning("PDF save failed (garbage=%d): %s", garbage_level, exc)
            last_exc = exc
    raise ExportError(f"The PDF could not be saved: {last_exc}") from last_exc


def build_document(document: SourceDocument, annotations: AnnotationSet,
                   cache: SnippetCache, progress_cb: ProgressCb = None) -> bytes:
    """Return the rebuilt PDF: source pages, composition pages, callouts."""
    src = fitz.open(stream=document.data, filetype="pdf")
    out = fitz.open()
    try:
        out.insert_pdf(src)
        for custom in document.custom_pages:
            out.new_page(width=custom.width, height=custom.height)
        if out.page_count != document.total_pages:
            raise ExportError(f"Rebuilt document has {out.page_count} page(s), "
                              f"expected {document.total_pages}")

        total = out.page_count
        skipped = 0
        for index in range(total):
            if progress_cb:
                progress_cb(index, total)
            placements = placement.resolve_page(annotations, index)
            if placements:
                skipped += bake_page(out[index], placements, cache)
                logger.debug("PDF export: page %d/%d, %d callout(s)",
                             index + 1, total, len(placements))
        if skipped:
            logger.warning("PDF export: %d callout image(s) could not be rendered", skipped)
        data = _save(out)
        if progress_cb:
            progress_cb(total, total)
        return data
    finally:
        out.close()
        src.close()


def export_pdf(document: SourceDocument, annotations: AnnotationSet,
               cache: SnippetCache, progress_cb: ProgressCb = None) -> bytes:
    """Build the whole PDF; any failure aborts with :class:`ExportError`."""
    try:
        data = build_document(document, annotations, cache, progress_cb)
    except ExportError:
        logger.exception("PDF export failed")
        raise
    except Exception as exc:
        logger.exception("PDF export failed")
        raise ExportError(f"PDF export failed: {exc}") from exc
    logger.info("PDF export: %d page(s), %d callout(s), %d bytes",
                document.total_pages, len(annotations), len(data))
    return data
