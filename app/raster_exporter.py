"""Export every page as a PNG with its callouts burnt in, bundled into a ZIP.

Each page is rasterised at the export DPI, then the overlay helpers draw the
resolved placements with the painter scaled by ``dpi / 72`` so the document
space geometry lands on export pixels without any extra arithmetic.
"""
import io
import logging
import zipfile
from typing import Callable, List, Optional, Tuple

import fitz  # pymupdf
from PySide6.QtCore import QBuffer, QByteArray, QIODevice, Qt
from PySide6.QtGui import QImage, QPainter

import annotation_overlay
import placement
from document import SourceDocument
from errors import ExportError
from history import AnnotationSet
from models import ceil_px, dpi_scale
from snippet_renderer import SnippetCache

logger = logging.getLogger(__name__)

ZIP_NAME = "detailed_pages.zip"
PAGE_NAME = "page_{number}.png"

ProgressCb = Optional[Callable[[int, int], None]]


def _blank_page(width: float, height: float, scale: float) -> QImage:
    img = QImage(ceil_px(width * scale), ceil_px(height * scale),
                 QImage.Format.Format_RGB32)
    img.fill(Qt.GlobalColor.white)
    return img


def render_page_image(document: SourceDocument, index: int, scale: float) -> QImage:
    """Full page *index* at *scale* pixels per point; white for composition pages."""
    width, height = document.page_size(index)
    page = document.page(index)
    if page is None:
        return _blank_page(width, height, scale)
    try:
        pix = page.get_pixmap(matrix=fitz.Matrix(scale, scale), alpha=False)
        img = QImage(pix.samples, pix.width, pix.height,
                     pix.stride, QImage.Format.Format_RGB888)
        # Detach from the pixmap buffer before it is released.
        return img.convertToFormat(QImage.Format.Format_RGB32)
    except Exception as exc:
        logger.warning("Page %d failed to render, exporting it blank: %s", index + 1, exc)
        return _blank_page(width, height, scale)


def encode_png(img: QImage) -> bytes:
    data = QByteArray()
    buf = QBuffer(data)
    buf.open(QIODevice.OpenModeFlag.WriteOnly)
    if not img.save(buf, "PNG"):
        raise ExportError("PNG encoding failed")
    buf.close()
    return bytes(data.data())


def compose_page(document: SourceDocument, annotations: AnnotationSet,
                 cache: SnippetCache, index: int, dpi: float) -> QImage:
    scale = dpi_scale(dpi)
    img = render_page_image(document, index, scale)
    placements = placement.resolve_page(annotations, index)
    if not placements:
        return img

    def image_for(callout):
        return annotation_overlay.image_from_png(cache.render_now(callout))

    painter = QPainter(img)
    try:
        annotation_overlay.begin(painter)
        painter.scale(scale, scale)
        missing = annotation_overlay.draw_placements(painter, placements, image_for)
    finally:
        painter.end()
    if missing:
        logger.warning("Page %d: %d callout image(s) could not be rendered",
                       index + 1, missing)
    return img


def export_page_images(document: SourceDocument, annotations: AnnotationSet,
                       cache: SnippetCache, dpi: float = 300.0,
                       progress_cb: ProgressCb = None) -> List[Tuple[str, bytes]]:
    """Return ``(file name, PNG bytes)`` for every page, in page order."""
    total = document.total_pages
    entries = []
    for index in range(total):
        if progress_cb:
            progress_cb(index, total)
        img = compose_page(document, annotations, cache, index, dpi)
        entries.append((PAGE_NAME.format(number=index + 1), encode_png(img)))
        logger.debug("Raster export: page %d/%d (%dx%d px)",
                     index + 1, total, img.width(), img.height())
    if progress_cb:
        progress_cb(total, total)
    return entries


def build_zip(entries: List[Tuple[str, bytes]]) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as zf:
        for name, data in entries:
            zf.writestr(name, data)
    return buf.getvalue()


def export_zip(document: SourceDocument, annotations: AnnotationSet,
               cache: SnippetCache, dpi: float = 300.0,
               progress_cb: ProgressCb = None) -> bytes:
    """Build the whole image bundle; any failure aborts with :class:`ExportError`."""
    try:
        data = build_zip(export_page_images(document, annotations, cache,
                                            dpi, progress_cb))
    except ExportError:
        logger.exception("Raster export failed")
        raise
    except Exception as exc:
        logger.exception("Raster export failed")
        raise ExportError(f"Image export failed: {exc}") from exc
    logger.info("Raster export: %d page(s), %d callout(s), %d bytes",
                document.total_pages, len(annotations), len(data))
    return data
