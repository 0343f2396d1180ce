"""One page on screen: pan/zoom viewport, selection and callout placement.

PDF rendering backend
---------------------
PyMuPDF (fitz).  Only the part of the page inside the widget is rasterised,
at the current zoom times the screen's device pixel ratio.  Pan and zoom
repaint immediately by stretching the previous raster; a single-shot timer
re-rasterises once the transform has settled.  Restarting the timer on every
change means only the latest transform is ever rendered.
"""
import logging
from typing import Callable, Dict, Hashable, Optional

import fitz  # pymupdf
from PySide6.QtCore import QPointF, QSize, QTimer, Qt, Signal
from PySide6.QtGui import QColor, QImage, QPainter
from PySide6.QtWidgets import QSizePolicy, QWidget

import annotation_overlay
import placement
from clipboard import Clipboard
from document import SourceDocument
from history import AnnotationSet
from interaction import (
    Button, CURSOR_ARROW, CURSOR_CROSS, CURSOR_FORBIDDEN, CURSOR_GRAB, CURSOR_PREVIEW,
    CaptureRequest, PageInteraction, State,
)
from models import Callout, MagnifierSettings, Point, Rect
from snippet_renderer import SnippetCache, Tier, render_region, render_snippet

logger = logging.getLogger(__name__)

_BACKGROUND = QColor(60, 60, 60)

_CURSORS = {
    CURSOR_CROSS: Qt.CursorShape.CrossCursor,
    CURSOR_ARROW: Qt.CursorShape.ArrowCursor,
    CURSOR_GRAB: Qt.CursorShape.ClosedHandCursor,
    CURSOR_PREVIEW: Qt.CursorShape.BlankCursor,
    CURSOR_FORBIDDEN: Qt.CursorShape.ForbiddenCursor,
}

_BUTTONS = {
    Qt.MouseButton.LeftButton: Button.LEFT,
    Qt.MouseButton.MiddleButton: Button.MIDDLE,
    Qt.MouseButton.RightButton: Button.RIGHT,
}


def _screen_point(pos: QPointF) -> Point:
    return Point(pos.x(), pos.y())


def pixmap_to_image(pix: fitz.Pixmap) -> QImage:
    """Copy an RGB fitz pixmap into a standalone QImage."""
    img = QImage(pix.samples, pix.width, pix.height,
                 pix.stride, QImage.Format.Format_RGB888)
    return img.copy()


class PageView(QWidget):
    callout_placed    = Signal(int, object)   # (dest page index, Callout)
    capture_requested = Signal(object)        # CaptureRequest for the clipboard
    remove_requested  = Signal(int, int)      # (page index, z-order position)
    transform_changed = Signal(int)

    def __init__(self, document: SourceDocument, page_index: int,
                 clipboard: Clipboard, cache: SnippetCache,
                 annotations: Callable[[], AnnotationSet],
                 settings: MagnifierSettings, parent=None):
        super().__init__(parent)
        self._document = document
        self._index = page_index
        self._clipboard = clipboard
        self._cache = cache
        self._annotations = annotations
        self._settings = settings
        self._interaction = PageInteraction(
            page_index, document.page_size(page_index), clipboard, settings,
            is_composition=document.is_composition(page_index),
        )
        self._raster: Optional[QImage] = None
        self._raster_rect: Optional[Rect] = None   # document rect the raster covers
        self._decoded: Dict[Hashable, QImage] = {}

        self._render_timer = QTimer(self)
        self._render_timer.setSingleShot(True)
        self._render_timer.setInterval(settings.render_debounce_ms)
        self._render_timer.timeout.connect(self._render_visible)

        self.setMouseTracking(True)
        self.setMinimumHeight(120)
        policy = QSizePolicy(QSizePolicy.Policy.Expanding, QSizePolicy.Policy.Preferred)
        policy.setHeightForWidth(True)
        self.setSizePolicy(policy)
        self._update_cursor()

    # ── Public API ────────────────────────────────────────────────────────────

    @property
    def page_index(self) -> int:
        return self._index

    @property
    def interaction(self) -> PageInteraction:
        return self._interaction

    def hasHeightForWidth(self) -> bool:
        return True

    def heightForWidth(self, width: int) -> int:
        page_w, page_h = self._interaction.page_size
        return max(120, round(width * page_h / page_w))

    def sizeHint(self) -> QSize:
        return QSize(600, self.heightForWidth(600))

    def escape(self) -> bool:
        cancelled = self._interaction.escape()
        if cancelled:
            self._refresh()
        return cancelled

    def pan_step(self, dx: int, dy: int) -> bool:
        if self._interaction.pan_key(dx, dy):
            self._transform_changed()
            return True
        return False

    def zoom_by(self, factor: float):
        if self._interaction.zoom_by(factor):
            self._transform_changed()

    def reset_view(self):
        self._interaction.reset_view()
        self._transform_changed()

    def rerender(self):
        """Re-rasterise, e.g. after the hi-DPI preference changed."""
        self._schedule_render()

    # ── Rendering ─────────────────────────────────────────────────────────────

    def _dpr(self) -> float:
        return self.devicePixelRatioF() if self._settings.hi_dpr else 1.0

    def _visible_rect(self) -> Optional[Rect]:
        t = self._interaction.transform
        page_w, page_h = self._interaction.page_size
        x0 = max(0.0, -t.x / t.scale)
        y0 = max(0.0, -t.y / t.scale)
        x1 = min(page_w, (self.width() - t.x) / t.scale)
        y1 = min(page_h, (self.height() - t.y) / t.scale)
        if x1 <= x0 or y1 <= y0:
            return None
        return Rect(x0, y0, x1 - x0, y1 - y0)

    def _schedule_render(self):
        # Restarting a running single-shot timer cancels the pending render.
        self._render_timer.start(self._settings.render_debounce_ms)

    def _render_visible(self):
        page = self._document.page(self._index)
        visible = self._visible_rect()
        if page is None or visible is None:
            self._raster = self._raster_rect = None
            self.update()
            return
        scale = self._interaction.transform.scale * self._dpr()
        try:
            pix = render_region(page, visible, scale)
        except Exception as exc:
            logger.warning("Page %d failed to render: %s", self._index + 1, exc)
            self.update()
            return
        self._raster = pixmap_to_image(pix)
        self._raster_rect = visible
        logger.debug("Page %d rendered %s at %.2fx", self._index + 1, visible, scale)
        self.update()

    def _image_for(self, callout: Callout) -> Optional[QImage]:
        key = callout.cache_key
        if key in self._decoded:
            return self._decoded[key]
        png = self._cache.get(callout)
        if png is None:
            self._cache.request(callout)
            return None
        img = annotation_overlay.image_from_png(png)
        if img is not None:
            self._decoded[key] = img
        return img

    def _is_waiting(self, callout: Callout) -> bool:
        # A failed snippet is simply not drawn.
        return not self._cache.has_failed(callout)

    def paintEvent(self, event):
        painter = QPainter(self)
        painter.fillRect(self.rect(), _BACKGROUND)
        annotation_overlay.begin(painter)
        t = self._interaction.transform
        painter.translate(t.x, t.y)
        painter.scale(t.scale, t.scale)

        page_w, page_h = self._interaction.page_size
        painter.fillRect(annotation_overlay.qrect(Rect(0, 0, page_w, page_h)),
                         Qt.GlobalColor.white)
        if self._raster is not None and self._raster_rect is not None:
            painter.drawImage(annotation_overlay.qrect(self._raster_rect), self._raster)

        placements = placement.resolve_page(self._annotations(), self._index)
        live = {p.callout.cache_key for p in placements}
        for key in [k for k in self._decoded if k not in live]:
            del self._decoded[key]
        annotation_overlay.draw_placements(painter, placements, self._image_for,
                                           is_pending=self._is_waiting)

        selection = self._interaction.selection_rect
        if selection is not None:
            annotation_overlay.draw_selection(painter, selection)

        preview = self._interaction.preview_callout()
        if preview is not None:
            if self._interaction.state is State.PLACING:
                png = self._interaction.pending_preview
                annotation_overlay.draw_arrow(painter, preview.source_rect.center,
                                              preview.dest_rect.center)
            else:
                png = self._clipboard.item.preview_image
            annotation_overlay.draw_preview(painter, preview,
                                            annotation_overlay.image_from_png(png),
                                            self._interaction.placement_valid)
        painter.end()

    def _refresh(self):
        self._update_cursor()
        self.update()

    def _transform_changed(self):
        self._schedule_render()
        self._refresh()
        self.transform_changed.emit(self._index)

    def _update_cursor(self):
        self.setCursor(_CURSORS[self._interaction.cursor])

    # ── Qt events ─────────────────────────────────────────────────────────────

    def resizeEvent(self, event):
        super().resizeEvent(event)
        self._interaction.set_viewport((float(self.width()), float(self.height())))
        self._transform_changed()

    def mousePressEvent(self, event):
        button = _BUTTONS.get(event.button())
        if button is None:
            return
        point = _screen_point(event.position())
        if button is Button.RIGHT:
            position = self._interaction.callout_at(point, self._annotations())
            if position is not None:
                self.remove_requested.emit(self._index, position)
            return
        before = self._interaction.transform
        alt = bool(event.modifiers() & Qt.KeyboardModifier.AltModifier)
        callout = self._interaction.press(point, button, alt=alt)
        if callout is not None:
            self.callout_placed.emit(self._index, callout)
        if self._interaction.transform != before:
            self._transform_changed()
        else:
            self._refresh()

    def mouseMoveEvent(self, event):
        panning = self._interaction.state is State.PANNING
        self._interaction.move(_screen_point(event.position()))
        if panning:
            self._transform_changed()
        else:
            self._refresh()

    def mouseReleaseEvent(self, event):
        button = _BUTTONS.get(event.button())
        if button is None:
            return
        request = self._interaction.release(_screen_point(event.position()), button)
        if request is not None:
            if request.to_clipboard:
                self.capture_requested.emit(request)
            else:
                QTimer.singleShot(0, self, lambda: self._render_preview(request))
        self._refresh()

    def _render_preview(self, request: CaptureRequest):
        png = render_snippet(self._document.page(request.page_index), request.source_rect,
                             request.magnification, Tier.PREVIEW,
                             dpi=self._settings.preview_dpi)
        if self._interaction.preview_ready(request.token, png):
            self.update()

    def wheelEvent(self, event):
        if not event.modifiers() & Qt.KeyboardModifier.AltModifier:
            event.ignore()   # plain wheel scrolls the page list
            return
        delta = event.angleDelta()
        # Qt reports Alt+wheel on the x axis on some platforms.
        notch = delta.y() or delta.x()
        if self._interaction.wheel(_screen_point(event.position()), -notch):
            self._transform_changed()
        event.accept()

    def leaveEvent(self, event):
        self._interaction.leave()
        self._refresh()
        super().leaveEvent(event)
