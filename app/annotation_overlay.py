"""Annotation overlay: draw callouts on top of a rendered page with QPainter.

Every helper draws in *document space*: the caller sets the painter's world
transform first (``translate(x, y)`` + ``scale(s, s)`` for the on-screen view,
``scale(dpi / 72)`` for the raster export), so the same code serves both and
the resolved geometry from :mod:`placement` is used without conversion.
"""
from typing import Callable, Iterable, Optional

from PySide6.QtCore import QPointF, QRectF, Qt
from PySide6.QtGui import QColor, QFont, QFontMetricsF, QImage, QPainter, QPen

import placement
from models import Callout, Point, Rect
from placement import ResolvedPlacement

_ARROW   = QColor.fromRgbF(*placement.ARROW_COLOR_RGB)
_LABEL   = QColor.fromRgbF(*placement.LABEL_COLOR_RGB)
_SELECT  = QColor(33, 150, 243)          # selection outline
_INVALID = QColor(204, 20, 20)           # placement refused here
_PENDING = QColor(0, 0, 0, 40)           # snippet still rendering

_PREVIEW_OPACITY = 0.85

ImageLookup = Callable[[Callout], Optional[QImage]]


def image_from_png(png: Optional[bytes]) -> Optional[QImage]:
    """Decode PNG bytes, returning None for missing or undecodable data."""
    if not png:
        return None
    img = QImage.fromData(png, "PNG")
    return None if img.isNull() else img


def qrect(rect: Rect) -> QRectF:
    return QRectF(rect.x, rect.y, rect.width, rect.height)


def _qpoint(p: Point) -> QPointF:
    return QPointF(p.x, p.y)


def begin(painter: QPainter):
    painter.setRenderHint(QPainter.RenderHint.Antialiasing)
    painter.setRenderHint(QPainter.RenderHint.SmoothPixmapTransform)
    painter.setRenderHint(QPainter.RenderHint.TextAntialiasing)


# ── Placed callouts ───────────────────────────────────────────────────────────

def draw_placements(painter: QPainter, placements: Iterable[ResolvedPlacement],
                    image_for: ImageLookup,
                    is_pending: Optional[Callable[[Callout], bool]] = None) -> int:
    """Draw every placement in z-order; return how many images were missing.

    A placement without an image is skipped, or drawn as a faint box while
    *is_pending* says its snippet is still on the way. Its arrow or label is
    drawn either way.
    """
    missing = 0
    for item in placements:
        image = image_for(item.callout)
        if image is not None:
            painter.drawImage(qrect(item.dest_rect), image)
        else:
            missing += 1
            if is_pending is not None and is_pending(item.callout):
                painter.fillRect(qrect(item.dest_rect), _PENDING)
        if item.same_page:
            draw_arrow(painter, item.source_center, item.dest_center)
        elif item.label:
            draw_label(painter, item.label, item.label_anchor)
    return missing


def draw_arrow(painter: QPainter, tail: Point, tip: Point):
    """Straight shaft plus an open chevron head at *tip*."""
    pen = QPen(_ARROW, placement.ARROW_WIDTH_PT)
    pen.setCapStyle(Qt.PenCapStyle.RoundCap)
    pen.setJoinStyle(Qt.PenJoinStyle.RoundJoin)
    painter.save()
    painter.setPen(pen)
    painter.drawLine(_qpoint(tail), _qpoint(tip))
    if (tail.x, tail.y) != (tip.x, tip.y):
        left, right = placement.arrow_head(tail, tip, placement.ARROW_HEAD_PT)
        painter.drawLine(_qpoint(tip), _qpoint(left))
        painter.drawLine(_qpoint(tip), _qpoint(right))
    painter.restore()


def label_font() -> QFont:
    font = QFont("Helvetica")
    font.setPixelSize(round(placement.LABEL_FONT_PT))
    return font


def draw_label(painter: QPainter, text: str, anchor: Point):
    """Draw *text* horizontally centred on *anchor*, baseline at anchor.y."""
    font = label_font()
    width = QFontMetricsF(font).horizontalAdvance(text)
    painter.save()
    painter.setFont(font)
    painter.setPen(_LABEL)
    painter.drawText(QPointF(anchor.x - width / 2, anchor.y), text)
    painter.restore()


# ── Interaction feedback (on-screen only) ─────────────────────────────────────

def draw_selection(painter: QPainter, rect: Rect):
    pen = QPen(_SELECT, 1.5, Qt.PenStyle.DashLine)
    pen.setCosmetic(True)
    painter.save()
    painter.setPen(pen)
    painter.setBrush(QColor(33, 150, 243, 30))
    painter.drawRect(qrect(rect))
    painter.restore()


def draw_preview(painter: QPainter, callout: Callout, image: Optional[QImage],
                 valid: bool):
    """Ghost of the callout a click would place, outlined red when refused."""
    target = qrect(callout.dest_rect)
    painter.save()
    painter.setOpacity(_PREVIEW_OPACITY)
    if image is not None:
        painter.drawImage(target, image)
    else:
        painter.fillRect(target, _PENDING)
    painter.setOpacity(1.0)
    pen = QPen(_ARROW if valid else _INVALID, 2)
    pen.setCosmetic(True)
    if not valid:
        pen.setStyle(Qt.PenStyle.DashLine)
    painter.setPen(pen)
    painter.setBrush(Qt.BrushStyle.NoBrush)
    painter.drawRect(target)
    painter.restore()
