"""Rasterise exactly one document-space rectangle of a page.

The output pixmap is ``ceil(w * s) x ceil(h * s)`` pixels where
``s = dpi / 72 * magnification``.  The page is rendered at scale *s* with the
snippet's top-left translated to the pixmap origin, so only the requested
region lands in the buffer.  MuPDF's ``clip`` keeps the work proportional to
the snippet rather than to the whole (magnified) page.
"""
import enum
import logging
from typing import Callable, Dict, Hashable, List, Optional, Set

import fitz  # pymupdf

from errors import SnippetRenderError
from models import Callout, Rect, ceil_px, dpi_scale

logger = logging.getLogger(__name__)


class Tier(enum.Enum):
    PREVIEW = "preview"   # live placement preview: fast
    HIGH = "high"         # stored callouts and exports: crisp


DEFAULT_DPI = {Tier.PREVIEW: 96.0, Tier.HIGH: 300.0}

# Guard against pathological requests (e.g. a huge rect at 10x / 300 dpi).
MAX_SNIPPET_PIXELS = 64_000_000


def total_scale(magnification: float, tier: Tier = Tier.HIGH,
                dpi: Optional[float] = None) -> float:
    return dpi_scale(dpi if dpi is not None else DEFAULT_DPI[tier]) * magnification


def snippet_size(source_rect: Rect, scale: float):
    """Return the *(width, height)* in pixels of a snippet at *scale*."""
    return ceil_px(source_rect.width * scale), ceil_px(source_rect.height * scale)


def render_region(page: fitz.Page, source_rect: Rect, scale: float) -> fitz.Pixmap:
    """Render exactly *source_rect* at *scale*; raise :class:`SnippetRenderError`."""
    if page is None:
        raise SnippetRenderError("no page to render")
    if source_rect.is_empty:
        raise SnippetRenderError(f"empty source rect {source_rect}")
    width, height = snippet_size(source_rect, scale)
    if width * height > MAX_SNIPPET_PIXELS:
        raise SnippetRenderError(f"snippet too large ({width}x{height} px)")

    target = fitz.Pixmap(fitz.csRGB, fitz.IRect(0, 0, width, height), False)
    target.clear_with(255)

    clip = fitz.Rect(source_rect.x, source_rect.y,
                     source_rect.right, source_rect.bottom)
    if (clip & page.rect).is_empty:
        # Entirely off the page: a white snippet of the requested size.
        return target
    rendered = page.get_pixmap(matrix=fitz.Matrix(scale, scale), clip=clip,
                               alpha=False, colorspace=fitz.csRGB)
    # Translate by (-x*s, -y*s): the rendered tile keeps its device origin,
    # shift it so the rect's top-left corner sits at target (0, 0).
    rendered.set_origin(round(rendered.x - source_rect.x * scale),
                        round(rendered.y - source_rect.y * scale))
    target.copy(rendered, target.irect)
    return target


def render_snippet(page: Optional[fitz.Page], source_rect: Rect,
                   magnification: float, tier: Tier = Tier.HIGH,
                   dpi: Optional[float] = None) -> Optional[bytes]:
    """Return PNG bytes of *source_rect* on *page*, or None on any failure."""
    try:
        scale = total_scale(magnification, tier, dpi)
        if not scale > 0:
            raise SnippetRenderError(f"invalid magnification {magnification!r}")
        return render_region(page, source_rect, scale).tobytes("png")
    except Exception as exc:
        logger.warning("Snippet render failed (%s tier, rect=%s, mag=%s): %s",
                       tier.value, source_rect, magnification, exc)
        return None


# ── Per-callout high-resolution cache ─────────────────────────────────────────

Scheduler = Callable[[Callable[[], None]], None]


def _qt_scheduler(fn: Callable[[], None]) -> None:
    from PySide6.QtCore import QTimer
    QTimer.singleShot(0, fn)


class SnippetCache:
    """Memoised high-tier snippets keyed by callout content.

    *page_provider(index)* returns the fitz page for a 0-based source index.
    Renders are deferred through *scheduler* and never submitted twice for
    the same key while cached or in flight.
    """

    def __init__(self, page_provider: Callable[[int], Optional[fitz.Page]],
                 dpi: float = DEFAULT_DPI[Tier.HIGH],
                 scheduler: Optional[Scheduler] = None):
        self._page_provider = page_provider
        self._dpi = dpi
        self._schedule = scheduler or _qt_scheduler
        self._images: Dict[Hashable, bytes] = {}
        self._pending: Set[Hashable] = set()
        self._failed: Set[Hashable] = set()
        self._generation = 0
        self._listeners: List[Callable[[Hashable], None]] = []

    def subscribe(self, listener: Callable[[Hashable], None]):
        """Call *listener(key)* each time a snippet finishes rendering."""
        self._listeners.append(listener)

    def get(self, callout: Callout) -> Optional[bytes]:
        return self._images.get(callout.cache_key)

    def __contains__(self, callout: Callout) -> bool:
        return callout.cache_key in self._images

    def is_pending(self, callout: Callout) -> bool:
        return callout.cache_key in self._pending

    def has_failed(self, callout: Callout) -> bool:
        """True once a render for *callout* failed; it will not be retried."""
        return callout.cache_key in self._failed

    def request(self, callout: Callout) -> bool:
        """Queue a render for *callout*; return False if nothing was queued."""
        key = callout.cache_key
        if key in self._images or key in self._pending or key in self._failed:
            return False
        self._pending.add(key)
        generation = self._generation
        logger.debug("Snippet cache: queued %s", key)
        self._schedule(lambda: self._run(key, callout, generation))
        return True

    def render_now(self, callout: Callout) -> Optional[bytes]:
        """Return the snippet, rendering synchronously on a cache miss."""
        key = callout.cache_key
        if key in self._images:
            return self._images[key]
        png = self._render(callout)
        if png is not None:
            self._images[key] = png
        return png

    def prune(self, live_keys: Set[Hashable]):
        """Drop snippets whose callouts no longer exist in any snapshot."""
        dead = [k for k in self._images if k not in live_keys]
        for key in dead:
            del self._images[key]
        self._failed &= live_keys
        if dead:
            logger.debug("Snippet cache: pruned %d entr(y/ies)", len(dead))

    def clear(self):
        """Forget everything; renders still in flight are ignored on arrival."""
        self._images.clear()
        self._pending.clear()
        self._failed.clear()
        self._generation += 1

    def _render(self, callout: Callout) -> Optional[bytes]:
        try:
            page = self._page_provider(callout.source_page_index)
        except Exception as exc:
            logger.warning("Snippet cache: no page %d: %s",
                           callout.source_page_index + 1, exc)
            return None
        return render_snippet(page, callout.source_rect, callout.scale,
                              Tier.HIGH, dpi=self._dpi)

    def _run(self, key: Hashable, callout: Callout, generation: int):
        if generation != self._generation:
            return  # stale: the document changed after this was queued
        png = self._render(callout)
        self._pending.discard(key)
        if png is None:
            self._failed.add(key)
            return
        self._images[key] = png
        for listener in list(self._listeners):
            listener(key)
