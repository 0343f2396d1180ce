"""Per-page pointer/keyboard state machine.

Qt-free: the page widget translates Qt events into calls on
:class:`PageInteraction` and acts on the return values.  All points passed in
are *screen* points (logical pixels relative to the page widget).

States
------
``idle``       nothing in progress (a clipboard capture may still be pending)
``selecting``  left button held, dragging out a source rectangle
``placing``    same-page capture following the pointer until confirmed
``panning``    Alt + left button held, dragging the page around
"""
import enum
import logging
from dataclasses import dataclass
from typing import Optional, Tuple

import viewport
from clipboard import Clipboard
from history import AnnotationSet
from models import (
    Callout, MagnifierSettings, PLACEMENT_CLIPBOARD, Point, Rect, callout_centered_at,
)
from placement import hit_test, placement_fits, resolve_page
from viewport import Transform

logger = logging.getLogger(__name__)


class State(enum.Enum):
    IDLE = "idle"
    SELECTING = "selecting"
    PLACING = "placing"
    PANNING = "panning"


class Button(enum.Enum):
    LEFT = "left"
    MIDDLE = "middle"
    RIGHT = "right"


# Cursor kinds; the widget maps them onto Qt cursor shapes.
CURSOR_CROSS = "cross"
CURSOR_ARROW = "arrow"
CURSOR_GRAB = "grab"
CURSOR_PREVIEW = "preview"      # hidden pointer, the preview image follows it
CURSOR_FORBIDDEN = "forbidden"


@dataclass(frozen=True)
class CaptureRequest:
    """A finished selection that needs a preview-tier snippet.

    *to_clipboard* captures go straight into the shared clipboard; the
    others are answered through :meth:`PageInteraction.preview_ready`.
    """
    page_index: int
    source_rect: Rect
    magnification: float
    token: int
    to_clipboard: bool


@dataclass
class _PendingPlacement:
    source_rect: Rect
    scale: float
    token: int
    preview: Optional[bytes] = None


class PageInteraction:
    def __init__(self, page_index: int, page_size: Tuple[float, float],
                 clipboard: Clipboard, settings: MagnifierSettings,
                 is_composition: bool = False):
        self.page_index = page_index
        self.page_size = page_size
        self.is_composition = is_composition
        self._clipboard = clipboard
        self._settings = settings

        self.state = State.IDLE
        self.transform = Transform()
        self.viewport_size: Tuple[float, float] = (0.0, 0.0)

        self._drag_start: Optional[Point] = None   # document space
        self._drag_end: Optional[Point] = None
        self._pan_last: Optional[Point] = None     # screen space
        self._pointer: Optional[Point] = None      # document space, while hovering
        self._pending: Optional[_PendingPlacement] = None
        self._next_token = 0

    # ── Derived state for drawing ─────────────────────────────────────────────

    @property
    def selection_rect(self) -> Optional[Rect]:
        if self.state is not State.SELECTING or self._drag_start is None:
            return None
        return Rect.normalized(self._drag_start, self._drag_end)

    @property
    def pending_preview(self) -> Optional[bytes]:
        return self._pending.preview if self._pending else None

    def preview_callout(self) -> Optional[Callout]:
        """The callout a click at the current pointer position would create."""
        if self._pointer is None:
            return None
        if self.state is State.PLACING and self._pending is not None:
            return callout_centered_at(self.page_index, self._pending.source_rect,
                                       self._pending.scale, self._pointer)
        item = self._clipboard.item
        if self.state is State.IDLE and item is not None:
            return item.callout_at(self._pointer)
        return None

    @property
    def placement_valid(self) -> bool:
        callout = self.preview_callout()
        if callout is None:
            return False
        if self.state is State.PLACING:
            return placement_fits(callout.dest_rect, self.page_size)
        # Clipboard placements may overhang the page edge.
        return True

    @property
    def cursor(self) -> str:
        if self.state is State.PANNING:
            return CURSOR_GRAB
        if self.state is State.PLACING or (self.state is State.IDLE and self._clipboard):
            if self._pointer is None:
                return CURSOR_ARROW
            return CURSOR_PREVIEW if self.placement_valid else CURSOR_FORBIDDEN
        if self.is_composition:
            return CURSOR_ARROW
        return CURSOR_CROSS

    # ── Viewport ──────────────────────────────────────────────────────────────

    def set_viewport(self, size: Tuple[float, float]):
        """Track a widget resize; the first real size fits the page to width."""
        first = self.viewport_size[0] <= 0 or self.viewport_size[1] <= 0
        self.viewport_size = size
        if first:
            self.transform = viewport.fit_to_width(self.page_size, size)
        else:
            self.transform = viewport.clamp(self.transform, self.page_size, size)

    def reset_view(self):
        """Fit to width and abandon whatever was in progress."""
        self.transform = viewport.fit_to_width(self.page_size, self.viewport_size)
        self._to_idle()

    def to_document(self, screen: Point) -> Point:
        return viewport.to_document(screen, self.transform)

    # ── Pointer events ────────────────────────────────────────────────────────

    def press(self, screen: Point, button: Button = Button.LEFT,
              alt: bool = False) -> Optional[Callout]:
        """Handle a button press; return a callout when one is placed here."""
        if button is Button.MIDDLE:
            self.reset_view()
            return None
        if button is not Button.LEFT:
            return None

        doc = self.to_document(screen)
        if self.state is State.IDLE and alt:
            self.state = State.PANNING
            self._pan_last = screen
            return None

        if self.state is State.PLACING:
            self._pointer = doc
            if not self.placement_valid:
                return None
            callout = self.preview_callout()
            logger.debug("Page %d: placed same-page callout at %s",
                         self.page_index + 1, callout.dest_point)
            self._to_idle()
            return callout

        if self.state is State.IDLE and self._clipboard:
            callout = self._clipboard.item.callout_at(doc)
            logger.debug("Page %d: placed callout from page %d at %s",
                         self.page_index + 1, callout.source_page_index + 1,
                         callout.dest_point)
            self._pointer = None
            return callout

        if self.state is State.IDLE and not self.is_composition:
            self.state = State.SELECTING
            self._drag_start = self._drag_end = doc
        return None

    def move(self, screen: Point):
        if self.state is State.SELECTING:
            self._drag_end = self.to_document(screen)
        elif self.state is State.PANNING:
            dx = screen.x - self._pan_last.x
            dy = screen.y - self._pan_last.y
            self._pan_last = screen
            self.transform = viewport.pan_by(self.transform, dx, dy,
                                             self.page_size, self.viewport_size)
        else:
            self._pointer = self.to_document(screen)

    def release(self, screen: Point, button: Button = Button.LEFT) -> Optional[CaptureRequest]:
        """Finish a drag; return a capture request for a usable selection."""
        if button is not Button.LEFT:
            return None
        if self.state is State.PANNING:
            self._to_idle()
            return None
        if self.state is not State.SELECTING:
            return None

        end = self.to_document(screen)
        rect = Rect.normalized(self._drag_start, end)
        minimum = self._settings.min_selection
        if rect.width < minimum or rect.height < minimum:
            self._to_idle()
            return None

        self._next_token += 1
        to_clipboard = self._settings.placement_mode == PLACEMENT_CLIPBOARD
        request = CaptureRequest(
            page_index=self.page_index,
            source_rect=rect,
            magnification=self._settings.magnification,
            token=self._next_token,
            to_clipboard=to_clipboard,
        )
        self._to_idle()
        if not to_clipboard:
            self.state = State.PLACING
            self._pending = _PendingPlacement(rect, request.magnification, request.token)
            self._pointer = end
        logger.debug("Page %d: selected %s (request %d)", self.page_index + 1,
                     rect, request.token)
        return request

    def preview_ready(self, token: int, png: Optional[bytes]) -> bool:
        """Attach a rendered preview; stale or failed results are dropped."""
        if (self.state is not State.PLACING or self._pending is None
                or self._pending.token != token):
            logger.debug("Page %d: ignoring stale preview %d", self.page_index + 1, token)
            return False
        if png is None:
            return False
        self._pending.preview = png
        return True

    def leave(self):
        if self.state in (State.SELECTING, State.PANNING):
            self._to_idle()
        self._pointer = None

    def escape(self) -> bool:
        """Cancel a drag or a pending same-page placement."""
        if self.state is State.IDLE:
            return False
        self._to_idle()
        return True

    def callout_at(self, screen: Point, annotations: AnnotationSet) -> Optional[int]:
        """Z-order position of the topmost callout under *screen*, if any."""
        hit = hit_test(resolve_page(annotations, self.page_index), self.to_document(screen))
        return hit.position if hit else None

    # ── Zoom / pan ────────────────────────────────────────────────────────────

    def wheel(self, screen: Point, delta_y: float) -> bool:
        """Zoom at *screen*; refused mid-drag."""
        if self.state in (State.SELECTING, State.PANNING) or delta_y == 0:
            return False
        self._zoom(screen, viewport.wheel_factor(delta_y), hover=screen)
        return True

    def zoom_by(self, factor: float) -> bool:
        """Zoom anchored at the viewport centre."""
        if self.state in (State.SELECTING, State.PANNING):
            return False
        centre = Point(self.viewport_size[0] / 2, self.viewport_size[1] / 2)
        hover = None
        if self._pointer is not None:
            hover = viewport.to_screen(self._pointer, self.transform)
        self._zoom(centre, factor, hover=hover)
        return True

    def _zoom(self, anchor: Point, factor: float, hover: Optional[Point] = None):
        self.transform = viewport.zoom_at(self.transform, anchor, factor,
                                          self.page_size, self.viewport_size)
        # The hover point is kept in document space; re-read it under the cursor.
        if self._pointer is not None and hover is not None:
            self._pointer = self.to_document(hover)

    def pan_key(self, dx: int, dy: int) -> bool:
        """Arrow-key pan by one step per unit of *dx* / *dy*."""
        if self.state is not State.IDLE:
            return False
        step = self._settings.pan_step
        hover = None
        if self._pointer is not None:
            hover = viewport.to_screen(self._pointer, self.transform)
        self.transform = viewport.pan_by(self.transform, dx * step, dy * step,
                                         self.page_size, self.viewport_size)
        if hover is not None:
            self._pointer = self.to_document(hover)
        return True

    def _to_idle(self):
        self.state = State.IDLE
        self._drag_start = self._drag_end = None
        self._pan_last = None
        self._pending = None
