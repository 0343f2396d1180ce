"""Resolved placement geometry shared by the on-screen view and both exporters.

Everything returned here is page-local document space (PDF points, top-left
origin).  Each consumer applies only its own convention on top:

* screen   -> :mod:`viewport` transform
* raster   -> ``rect.scaled(export_dpi / 72)``
* PDF      -> :func:`to_output_space` (bottom-left origin + crop box offset)
"""
import math
from dataclasses import dataclass
from typing import List, Optional, Tuple

from history import AnnotationSet
from models import Callout, Point, Rect

ARROW_COLOR_RGB = (0.81, 0.4, 0.47)   # #cf6679
LABEL_COLOR_RGB = (0.2, 0.2, 0.2)

# Sizes in PDF points; exporters and the view scale them to their own units.
ARROW_WIDTH_PT = 1.44        # 6 px at 300 dpi
ARROW_HEAD_PT = 9.6          # 40 px at 300 dpi
ARROW_HEAD_ANGLE = math.pi / 6
LABEL_FONT_PT = 12.0
LABEL_GAP_PT = 16.0          # label baseline below the placed image

DETAIL_LABEL = "Detail from Page {page}"


@dataclass(frozen=True)
class ResolvedPlacement:
    page_index: int                 # destination page
    position: int                   # z-order index on that page
    callout: Callout
    dest_rect: Rect
    source_center: Optional[Point]  # same-page callouts only (arrow tail)
    label: Optional[str]            # cross-page callouts only

    @property
    def same_page(self) -> bool:
        return self.source_center is not None

    @property
    def dest_center(self) -> Point:
        return self.dest_rect.center

    @property
    def label_anchor(self) -> Point:
        """Baseline centre of the cross-page label."""
        return Point(self.dest_rect.center.x, self.dest_rect.bottom + LABEL_GAP_PT)


def detail_label(source_page_index: int) -> str:
    return DETAIL_LABEL.format(page=source_page_index + 1)


def resolve(page_index: int, position: int, callout: Callout) -> ResolvedPlacement:
    same_page = callout.source_page_index == page_index
    return ResolvedPlacement(
        page_index=page_index,
        position=position,
        callout=callout,
        dest_rect=callout.dest_rect,
        source_center=callout.source_rect.center if same_page else None,
        label=None if same_page else detail_label(callout.source_page_index),
    )


def resolve_page(annotations: AnnotationSet, page_index: int) -> List[ResolvedPlacement]:
    """Placements on *page_index* in draw order (later ones on top)."""
    return [resolve(page_index, i, c)
            for i, c in enumerate(annotations.for_page(page_index))]


def hit_test(placements: List[ResolvedPlacement], point: Point) -> Optional[ResolvedPlacement]:
    """Return the topmost placement whose image contains *point*."""
    for placement in reversed(placements):
        if placement.dest_rect.contains_point(point):
            return placement
    return None


def placement_fits(dest_rect: Rect, page_size: Tuple[float, float]) -> bool:
    """True when *dest_rect* lies entirely on a page of *page_size*."""
    return Rect(0.0, 0.0, page_size[0], page_size[1]).contains_rect(dest_rect)


def arrow_head(tail: Point, tip: Point, length: float) -> Tuple[Point, Point]:
    """Return the two barb end points of an open arrow head at *tip*."""
    angle = math.atan2(tip.y - tail.y, tip.x - tail.x)
    return (
        Point(tip.x - length * math.cos(angle - ARROW_HEAD_ANGLE),
              tip.y - length * math.sin(angle - ARROW_HEAD_ANGLE)),
        Point(tip.x - length * math.cos(angle + ARROW_HEAD_ANGLE),
              tip.y - length * math.sin(angle + ARROW_HEAD_ANGLE)),
    )


# ── Output document space (bottom-left origin) ────────────────────────────────

def to_output_space(rect: Rect, crop_box: Rect) -> Rect:
    """Map a top-left page rect into bottom-left output space.

    *crop_box* is the output page's visible box in its own (bottom-left)
    coordinates; its origin need not be (0, 0).
    """
    return Rect(
        x=crop_box.x + rect.x,
        y=(crop_box.y + crop_box.height) - rect.y - rect.height,
        width=rect.width,
        height=rect.height,
    )


def from_output_space(rect: Rect, crop_box: Rect) -> Rect:
    """Inverse of :func:`to_output_space`."""
    return Rect(
        x=rect.x - crop_box.x,
        y=(crop_box.y + crop_box.height) - rect.y - rect.height,
        width=rect.width,
        height=rect.height,
    )


def point_to_output_space(p: Point, crop_box: Rect) -> Point:
    return Point(crop_box.x + p.x, (crop_box.y + crop_box.height) - p.y)
