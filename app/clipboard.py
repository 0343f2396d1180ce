"""Cross-page clipboard: at most one captured selection awaiting placement.

Owned by the main window and handed to every page view; never a module
global.
"""
import logging
from typing import Callable, List, Optional

from models import ClipboardItem

logger = logging.getLogger(__name__)


class Clipboard:
    def __init__(self):
        self._item: Optional[ClipboardItem] = None
        self._listeners: List[Callable[[Optional[ClipboardItem]], None]] = []

    @property
    def item(self) -> Optional[ClipboardItem]:
        return self._item

    def is_empty(self) -> bool:
        return self._item is None

    def __bool__(self) -> bool:
        return self._item is not None

    def subscribe(self, listener: Callable[[Optional[ClipboardItem]], None]):
        """Call *listener(item)* whenever the content changes."""
        self._listeners.append(listener)

    def capture(self, item: ClipboardItem):
        """Store *item*, replacing any pending capture."""
        if self._item is not None:
            logger.debug("Clipboard: replacing pending capture from page %d",
                         self._item.source_page_index + 1)
        self._item = item
        logger.debug("Clipboard: captured %s from page %d at %.1fx",
                     item.source_rect, item.source_page_index + 1, item.scale)
        self._notify()

    def clear(self):
        if self._item is None:
            return
        self._item = None
        logger.debug("Clipboard: cleared")
        self._notify()

    def _notify(self):
        for listener in list(self._listeners):
            listener(self._item)
