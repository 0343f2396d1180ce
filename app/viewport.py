"""Per-page pan/zoom transform and screen <-> document coordinate mapping.

A :class:`Transform` maps document space to screen space as::

    screen = document * scale + (x, y)

where *screen* is measured in logical pixels from the top-left corner of the
page's viewport widget.  Every function here is pure: callers replace their
transform with the returned value.
"""
from dataclasses import dataclass, replace
from typing import Optional, Tuple

from models import Point

MIN_SCALE = 0.1
MAX_SCALE = 20.0
WHEEL_ZOOM_STEP = 0.2   # one wheel notch zooms by 20 %


@dataclass(frozen=True)
class Transform:
    scale: float = 1.0
    x: float = 0.0
    y: float = 0.0


def to_document(screen_point: Point, transform: Transform) -> Point:
    return Point((screen_point.x - transform.x) / transform.scale,
                 (screen_point.y - transform.y) / transform.scale)


def to_screen(document_point: Point, transform: Transform) -> Point:
    return Point(document_point.x * transform.scale + transform.x,
                 document_point.y * transform.scale + transform.y)


def _clamp_axis(offset: float, page_extent: float, viewport_extent: float) -> float:
    if page_extent > viewport_extent:
        return max(viewport_extent - page_extent, min(0.0, offset))
    # A page smaller than the viewport is centred, never corner-anchored.
    return (viewport_extent - page_extent) / 2


def clamp(transform: Transform, page_size: Tuple[float, float],
          viewport_size: Tuple[float, float]) -> Transform:
    """Restrict the pan offset so the page can never leave the viewport."""
    page_w, page_h = page_size
    view_w, view_h = viewport_size
    if page_w <= 0 or page_h <= 0 or view_w <= 0 or view_h <= 0:
        return transform
    return replace(
        transform,
        x=_clamp_axis(transform.x, page_w * transform.scale, view_w),
        y=_clamp_axis(transform.y, page_h * transform.scale, view_h),
    )


def clamp_scale(scale: float) -> float:
    return max(MIN_SCALE, min(MAX_SCALE, scale))


def zoom_at(transform: Transform, anchor: Point, factor: float,
            page_size: Optional[Tuple[float, float]] = None,
            viewport_size: Optional[Tuple[float, float]] = None) -> Transform:
    """Zoom by *factor* keeping the document point under *anchor* fixed.

    The result is clamped when both sizes are known; clamping may then move
    the anchor if the zoomed page would otherwise leave the viewport.
    """
    doc = to_document(anchor, transform)
    new_scale = clamp_scale(transform.scale * factor)
    zoomed = Transform(
        scale=new_scale,
        x=anchor.x - doc.x * new_scale,
        y=anchor.y - doc.y * new_scale,
    )
    if page_size is None or viewport_size is None:
        return zoomed
    return clamp(zoomed, page_size, viewport_size)


def wheel_factor(delta_y: float) -> float:
    """Zoom factor for a wheel event: scrolling up (negative dy) zooms in."""
    if delta_y == 0:
        return 1.0
    direction = 1 if delta_y > 0 else -1
    return 1 - direction * WHEEL_ZOOM_STEP


def fit_to_width(page_size: Tuple[float, float],
                 viewport_size: Tuple[float, float]) -> Transform:
    """Scale the page to the viewport width; clamping centres it vertically."""
    page_w = page_size[0]
    view_w = viewport_size[0]
    if page_w <= 0 or view_w <= 0:
        return Transform()
    fitted = Transform(scale=clamp_scale(view_w / page_w), x=0.0, y=0.0)
    return clamp(fitted, page_size, viewport_size)


def pan_by(transform: Transform, dx: float, dy: float,
           page_size: Tuple[float, float],
           viewport_size: Tuple[float, float]) -> Transform:
    """Shift the page by *(dx, dy)* screen pixels, then clamp."""
    moved = replace(transform, x=transform.x + dx, y=transform.y + dy)
    return clamp(moved, page_size, viewport_size)
