"""Annotation store: immutable page-indexed callout snapshots with undo/redo.

``history[0]`` is always the empty set.  Appending a snapshot drops every
snapshot after the current index first, so redo history is discarded as soon
as a new action is taken.  Undo and redo only move the index.
"""
import logging
from types import MappingProxyType
from typing import Dict, Iterator, List, Mapping, Optional, Set, Tuple

from models import Callout

logger = logging.getLogger(__name__)


class AnnotationSet:
    """Read-only mapping ``page index -> tuple of callouts`` (z-order).

    Only pages that carry at least one callout are present.
    """

    __slots__ = ("_pages",)

    def __init__(self, pages: Optional[Mapping[int, Tuple[Callout, ...]]] = None):
        frozen: Dict[int, Tuple[Callout, ...]] = {}
        for page, callouts in (pages or {}).items():
            if callouts:
                frozen[int(page)] = tuple(callouts)
        self._pages = MappingProxyType(frozen)

    @property
    def pages(self) -> Mapping[int, Tuple[Callout, ...]]:
        return self._pages

    def for_page(self, page_index: int) -> Tuple[Callout, ...]:
        return self._pages.get(page_index, ())

    def page_indices(self) -> List[int]:
        return sorted(self._pages)

    def with_callout(self, page_index: int, callout: Callout) -> "AnnotationSet":
        pages = dict(self._pages)
        pages[page_index] = self.for_page(page_index) + (callout,)
        return AnnotationSet(pages)

    def without_callout(self, page_index: int, position: int) -> "AnnotationSet":
        current = self.for_page(page_index)
        if not 0 <= position < len(current):
            raise IndexError(f"no callout #{position} on page {page_index}")
        pages = dict(self._pages)
        pages[page_index] = current[:position] + current[position + 1:]
        return AnnotationSet(pages)

    def items(self) -> Iterator[Tuple[int, Callout]]:
        """Yield ``(dest_page_index, callout)`` in page then z-order."""
        for page in self.page_indices():
            for callout in self._pages[page]:
                yield page, callout

    def __len__(self) -> int:
        return sum(len(c) for c in self._pages.values())

    def __eq__(self, other) -> bool:
        if not isinstance(other, AnnotationSet):
            return NotImplemented
        return dict(self._pages) == dict(other._pages)

    def __repr__(self) -> str:
        return f"AnnotationSet({dict(self._pages)!r})"


EMPTY = AnnotationSet()


class AnnotationHistory:
    def __init__(self):
        self._snapshots: List[AnnotationSet] = [EMPTY]
        self._index: int = 0

    # ── Read access ───────────────────────────────────────────────────────────

    @property
    def current(self) -> AnnotationSet:
        return self._snapshots[self._index]

    @property
    def index(self) -> int:
        return self._index

    def __len__(self) -> int:
        return len(self._snapshots)

    def can_undo(self) -> bool:
        return self._index > 0

    def can_redo(self) -> bool:
        return self._index < len(self._snapshots) - 1

    def live_cache_keys(self) -> Set[Tuple]:
        """Snippet keys of every callout reachable through undo/redo."""
        return {c.cache_key for snap in self._snapshots for _, c in snap.items()}

    # ── Mutations ─────────────────────────────────────────────────────────────

    def append(self, dest_page_index: int, callout: Callout) -> AnnotationSet:
        """Record *callout* on *dest_page_index* as a new snapshot."""
        return self._push(self.current.with_callout(dest_page_index, callout))

    def remove(self, dest_page_index: int, position: int) -> AnnotationSet:
        """Record a snapshot without the callout at *position* on the page."""
        return self._push(self.current.without_callout(dest_page_index, position))

    def undo(self) -> bool:
        if self._index > 0:
            self._index -= 1
            logger.debug("Undo -> snapshot %d/%d", self._index, len(self._snapshots) - 1)
            return True
        return False

    def redo(self) -> bool:
        if self._index < len(self._snapshots) - 1:
            self._index += 1
            logger.debug("Redo -> snapshot %d/%d", self._index, len(self._snapshots) - 1)
            return True
        return False

    def reset(self):
        self._snapshots = [EMPTY]
        self._index = 0

    def _push(self, snapshot: AnnotationSet) -> AnnotationSet:
        dropped = len(self._snapshots) - (self._index + 1)
        del self._snapshots[self._index + 1:]
        self._snapshots.append(snapshot)
        self._index += 1
        logger.debug("New snapshot %d (%d callout(s)); discarded %d redo snapshot(s)",
                     self._index, len(snapshot), dropped)
        return snapshot
