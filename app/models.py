"""Data models for the magnifier.

Every geometry value stored here is in *document space*: PDF points of one
page, top-left origin, unscaled.  Screen pixels and output-document
coordinates only ever appear transiently inside viewport.py and the exporters.
"""
import math
from dataclasses import dataclass, field
from typing import Dict, Tuple


@dataclass(frozen=True)
class Point:
    x: float
    y: float

    def offset(self, dx: float, dy: float) -> "Point":
        return Point(self.x + dx, self.y + dy)


@dataclass(frozen=True)
class Rect:
    x: float
    y: float
    width: float
    height: float

    @classmethod
    def normalized(cls, start: Point, end: Point) -> "Rect":
        """Return the rect spanned by two drag points, top-left origin."""
        return cls(
            x=min(start.x, end.x),
            y=min(start.y, end.y),
            width=abs(start.x - end.x),
            height=abs(start.y - end.y),
        )

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def center(self) -> Point:
        return Point(self.x + self.width / 2, self.y + self.height / 2)

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    def scaled(self, factor: float) -> "Rect":
        """Scale position *and* size, e.g. document units -> export pixels."""
        return Rect(self.x * factor, self.y * factor,
                    self.width * factor, self.height * factor)

    def contains_rect(self, other: "Rect") -> bool:
        return (other.x >= self.x and other.y >= self.y
                and other.right <= self.right and other.bottom <= self.bottom)

    def contains_point(self, p: Point) -> bool:
        return self.x <= p.x <= self.right and self.y <= p.y <= self.bottom

    def as_tuple(self) -> Tuple[float, float, float, float]:
        return (self.x, self.y, self.width, self.height)


@dataclass(frozen=True)
class Callout:
    """A magnified copy of *source_rect* placed at *dest_point*.

    The destination page is not stored: it is the key under which the
    callout lives in the annotation set.
    """
    source_page_index: int
    source_rect: Rect
    dest_point: Point
    scale: float

    def __post_init__(self):
        if not self.scale > 0:
            raise ValueError(f"callout scale must be > 0, got {self.scale!r}")
        if self.source_rect.is_empty:
            raise ValueError(f"callout source rect must have a positive size: {self.source_rect}")
        if self.source_page_index < 0:
            raise ValueError(f"invalid source page index {self.source_page_index}")

    @property
    def dest_size(self) -> Tuple[float, float]:
        return (self.source_rect.width * self.scale,
                self.source_rect.height * self.scale)

    @property
    def dest_rect(self) -> Rect:
        w, h = self.dest_size
        return Rect(self.dest_point.x, self.dest_point.y, w, h)

    @property
    def cache_key(self) -> Tuple:
        """Content key of the high-resolution snippet this callout shows."""
        r = self.source_rect
        return (self.source_page_index, r.x, r.y, r.width, r.height, self.scale)


def callout_centered_at(source_page_index: int, source_rect: Rect,
                        scale: float, center: Point) -> Callout:
    """Build the callout whose placed footprint is centred on *center*."""
    w = source_rect.width * scale
    h = source_rect.height * scale
    return Callout(
        source_page_index=source_page_index,
        source_rect=source_rect,
        dest_point=Point(center.x - w / 2, center.y - h / 2),
        scale=scale,
    )


@dataclass(frozen=True)
class ClipboardItem:
    """A captured selection waiting to be placed on some page."""
    source_page_index: int
    source_rect: Rect
    scale: float
    preview_image: bytes = field(default=b"", repr=False, compare=False)

    def callout_at(self, center: Point) -> Callout:
        return callout_centered_at(self.source_page_index, self.source_rect,
                                   self.scale, center)


# ── Composition pages ─────────────────────────────────────────────────────────

PAGE_SIZES: Dict[str, Tuple[float, float]] = {
    "A4": (595.0, 842.0),
    "A3": (842.0, 1191.0),
}

PORTRAIT = "portrait"
LANDSCAPE = "landscape"


@dataclass(frozen=True)
class CustomPage:
    """A blank page appended after the source pages to hold callouts."""
    width: float
    height: float

    @classmethod
    def from_preset(cls, size_name: str, orientation: str = PORTRAIT) -> "CustomPage":
        try:
            w, h = PAGE_SIZES[size_name]
        except KeyError:
            raise ValueError(f"unknown page size {size_name!r}") from None
        if orientation == LANDSCAPE:
            w, h = h, w
        elif orientation != PORTRAIT:
            raise ValueError(f"unknown orientation {orientation!r}")
        return cls(width=w, height=h)


# ── Settings ──────────────────────────────────────────────────────────────────

PLACEMENT_CLIPBOARD = "clipboard"   # capture, then place on any page
PLACEMENT_SAME_PAGE = "same_page"   # preview under the pointer on the source page

MIN_MAGNIFICATION = 1.5
MAX_MAGNIFICATION = 10.0
MAGNIFICATION_STEP = 0.5

MAX_PREVIEW_DPI = 300.0
MAX_EXPORT_DPI = 1200.0


@dataclass
class MagnifierSettings:
    magnification: float = 3.0            # scale applied to new selections
    placement_mode: str = PLACEMENT_CLIPBOARD
    preview_dpi: float = 96.0             # live preview tier
    export_dpi: float = 300.0             # stored callouts and both exports
    min_selection: float = 5.0            # smaller drags are discarded (doc units)
    pan_step: int = 20                    # arrow-key pan, screen pixels
    render_debounce_ms: int = 100         # page re-raster delay after pan/zoom
    debug_mode: bool = False              # DEBUG logging + console handler
    hi_dpr: bool = True                   # render at the screen's device pixel ratio

    def clamped(self) -> "MagnifierSettings":
        """Return a copy with every value forced into its legal range.

        Non-finite numbers (JSON accepts `Infinity` and `NaN`) fall back
        to the field default.
        """
        defaults = MagnifierSettings()

        def num(name: str) -> float:
            value = float(getattr(self, name))
            return value if math.isfinite(value) else float(getattr(defaults, name))

        mag = min(MAX_MAGNIFICATION, max(MIN_MAGNIFICATION, num("magnification")))
        mag = round(mag / MAGNIFICATION_STEP) * MAGNIFICATION_STEP
        mode = self.placement_mode
        if mode not in (PLACEMENT_CLIPBOARD, PLACEMENT_SAME_PAGE):
            mode = PLACEMENT_CLIPBOARD
        return MagnifierSettings(
            magnification=mag,
            placement_mode=mode,
            preview_dpi=min(MAX_PREVIEW_DPI, max(36.0, num("preview_dpi"))),
            export_dpi=min(MAX_EXPORT_DPI, max(72.0, num("export_dpi"))),
            min_selection=max(0.0, num("min_selection")),
            pan_step=max(1, int(num("pan_step"))),
            render_debounce_ms=max(0, int(num("render_debounce_ms"))),
            debug_mode=bool(self.debug_mode),
            hi_dpr=bool(self.hi_dpr),
        )


def dpi_scale(dpi: float) -> float:
    """Pixels per PDF point at *dpi*."""
    return dpi / 72.0


def ceil_px(value: float) -> int:
    """Pixel count for a floating-point extent, never below 1."""
    return max(1, math.ceil(value - 1e-9))
