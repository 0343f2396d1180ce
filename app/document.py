"""Source document: the loaded PDF plus appended composition pages.

PDF rendering backend
---------------------
PyMuPDF (fitz).  ``page.rect`` is rotation-aware, so page sizes and every
document-space coordinate used by the engine are in the *visual* orientation
of the page, exactly as it appears on screen.

Page indices are 0-based everywhere except :meth:`SourceDocument.get_page`,
which mirrors the 1-based page numbers shown to the user.
"""
import logging
import os
from typing import List, Optional, Tuple

import fitz  # pymupdf

from errors import DocumentLoadError
from models import CustomPage, PORTRAIT

logger = logging.getLogger(__name__)


class SourceDocument:
    def __init__(self, doc: fitz.Document, data: bytes, name: str = ""):
        self._doc = doc
        self._data = data
        self.name = name
        self._custom_pages: List[CustomPage] = []

    # ── Loading ───────────────────────────────────────────────────────────────

    @classmethod
    def open(cls, data: bytes, name: str = "") -> "SourceDocument":
        """Open PDF *data*; raise :class:`DocumentLoadError` if it is unusable."""
        if not data:
            raise DocumentLoadError("The file is empty.")
        try:
            doc = fitz.open(stream=data, filetype="pdf")
        except Exception as exc:
            raise DocumentLoadError(f"Not a readable PDF: {exc}") from exc
        if not doc.is_pdf or doc.page_count == 0:
            doc.close()
            raise DocumentLoadError("The PDF has no pages.")
        if doc.needs_pass:
            doc.close()
            raise DocumentLoadError("The PDF is password protected.")
        logger.info("Loaded %s (%d page(s), %d bytes)", name or "<memory>",
                    doc.page_count, len(data))
        return cls(doc, data, name)

    @classmethod
    def open_path(cls, path: str) -> "SourceDocument":
        try:
            with open(path, "rb") as f:
                data = f.read()
        except OSError as exc:
            raise DocumentLoadError(f"Cannot read {path}: {exc}") from exc
        return cls.open(data, name=os.path.basename(path))

    def close(self):
        if self._doc is not None:
            self._doc.close()
            self._doc = None

    # ── Pages ─────────────────────────────────────────────────────────────────

    @property
    def data(self) -> bytes:
        """Original PDF bytes, used by the structured export rebuild."""
        return self._data

    @property
    def page_count(self) -> int:
        """Number of pages in the source PDF (composition pages excluded)."""
        return self._doc.page_count if self._doc is not None else 0

    @property
    def total_pages(self) -> int:
        return self.page_count + len(self._custom_pages)

    @property
    def custom_pages(self) -> Tuple[CustomPage, ...]:
        return tuple(self._custom_pages)

    def is_composition(self, index: int) -> bool:
        return self.page_count <= index < self.total_pages

    def get_page(self, number: int) -> fitz.Page:
        """Return source page *number* (1-based, as shown to the user)."""
        if self._doc is None:
            raise ValueError("document is closed")
        if not 1 <= number <= self.page_count:
            raise IndexError(f"page {number} out of range 1..{self.page_count}")
        return self._doc[number - 1]

    def page(self, index: int) -> Optional[fitz.Page]:
        """Return the fitz page at 0-based *index*, or None for composition pages."""
        if self.is_composition(index):
            return None
        return self.get_page(index + 1)

    def page_size(self, index: int) -> Tuple[float, float]:
        """Return *(width, height)* of page *index* in PDF points."""
        if self.is_composition(index):
            custom = self._custom_pages[index - self.page_count]
            return custom.width, custom.height
        rect = self.get_page(index + 1).rect
        return rect.width, rect.height

    def add_composition_page(self, size_name: str = "A4",
                             orientation: str = PORTRAIT) -> int:
        """Append a blank page and return its index."""
        page = CustomPage.from_preset(size_name, orientation)
        self._custom_pages.append(page)
        index = self.total_pages - 1
        logger.info("Added composition page %d (%s %s, %.0fx%.0f pt)",
                    index + 1, size_name, orientation, page.width, page.height)
        return index
