"""Main entry point for the Quick Magnifier desktop app."""
import logging
import os
import subprocess
import sys
from typing import Callable, List, Optional

from PySide6.QtCore import QEvent, QObject, Qt
from PySide6.QtGui import QAction, QCursor, QKeySequence
from PySide6.QtWidgets import (
    QAbstractSpinBox,
    QApplication,
    QComboBox,
    QDialog,
    QDialogButtonBox,
    QDoubleSpinBox,
    QFileDialog,
    QLabel,
    QLineEdit,
    QMainWindow,
    QMessageBox,
    QProgressBar,
    QScrollArea,
    QToolBar,
    QVBoxLayout,
    QWidget,
)

import data_store
import pdf_exporter
import raster_exporter
from clipboard import Clipboard
from document import SourceDocument
from errors import DocumentLoadError, ExportError
from history import AnnotationHistory
from models import (
    ClipboardItem, LANDSCAPE, MAGNIFICATION_STEP, MAX_MAGNIFICATION, MIN_MAGNIFICATION,
    PAGE_SIZES, PLACEMENT_CLIPBOARD, PLACEMENT_SAME_PAGE, PORTRAIT, MagnifierSettings,
)
from page_view import PageView
from snippet_renderer import SnippetCache, Tier, render_snippet

logger = logging.getLogger(__name__)

_ZOOM_BUTTON_FACTOR = 1.25

_ARROW_KEYS = {
    Qt.Key.Key_Left: (1, 0),
    Qt.Key.Key_Right: (-1, 0),
    Qt.Key.Key_Up: (0, 1),
    Qt.Key.Key_Down: (0, -1),
}

_RELEVANT = (Qt.KeyboardModifier.ShiftModifier
             | Qt.KeyboardModifier.ControlModifier
             | Qt.KeyboardModifier.AltModifier
             | Qt.KeyboardModifier.MetaModifier)


class _KeyFilter(QObject):
    """App-level event filter: Escape cancels, arrow keys pan the hovered page."""

    def __init__(self, window: "MainWindow", parent=None):
        super().__init__(parent)
        self._window = window

    def eventFilter(self, obj, event):
        if event.type() != QEvent.Type.KeyPress:
            return False
        # Don't steal keys while a text or number field has focus
        fw = QApplication.focusWidget()
        if isinstance(fw, (QLineEdit, QAbstractSpinBox)):
            return False
        key = event.key()
        if key == Qt.Key.Key_Escape:
            return self._window.cancel_pending()
        # Mask out non-standard modifiers (e.g. KeypadModifier on arrow keys)
        mods = event.modifiers() & _RELEVANT
        if key in _ARROW_KEYS and not mods:
            view = self._window.page_view_under_cursor()
            if view is not None:
                dx, dy = _ARROW_KEYS[key]
                return view.pan_step(dx, dy)
        return False


class MainWindow(QMainWindow):
    def __init__(self, settings: Optional[MagnifierSettings] = None):
        super().__init__()
        self.setWindowTitle("Quick Magnifier")
        self.resize(1100, 900)

        self._settings = settings or data_store.load_settings()
        self._document: Optional[SourceDocument] = None
        self._history = AnnotationHistory()
        self._clipboard = Clipboard()
        self._clipboard.subscribe(self._on_clipboard_changed)
        self._cache: Optional[SnippetCache] = None
        self._views: List[PageView] = []
        self._last_dir = os.path.expanduser("~")

        self._setup_ui()
        self._update_actions()

        self._key_filter = _KeyFilter(self)
        QApplication.instance().installEventFilter(self._key_filter)

    # ── UI construction ───────────────────────────────────────────────────────

    def _setup_ui(self):
        file_menu = self.menuBar().addMenu("File")
        open_action = file_menu.addAction("Open PDF…")
        open_action.setShortcut(QKeySequence.StandardKey.Open)
        open_action.triggered.connect(self._open_pdf)
        file_menu.addSeparator()
        self._export_zip_action = file_menu.addAction("Export Pages as Images (ZIP)…")
        self._export_zip_action.triggered.connect(self._export_zip)
        self._export_pdf_action = file_menu.addAction("Export Detailed PDF…")
        self._export_pdf_action.triggered.connect(self._export_pdf)
        file_menu.addSeparator()
        file_menu.addAction("Quit").triggered.connect(self.close)

        edit_menu = self.menuBar().addMenu("Edit")
        self._undo_action = edit_menu.addAction("Undo")
        self._undo_action.setShortcut(QKeySequence("Ctrl+Z"))
        self._undo_action.triggered.connect(self._undo)
        self._redo_action = edit_menu.addAction("Redo")
        self._redo_action.setShortcut(QKeySequence("Ctrl+Shift+Z"))
        self._redo_action.triggered.connect(self._redo)

        page_menu = self.menuBar().addMenu("Pages")
        self._add_page_actions: List[QAction] = []
        for size_name in PAGE_SIZES:
            for orientation in (PORTRAIT, LANDSCAPE):
                action = page_menu.addAction(f"Add {size_name} {orientation.title()} Page")
                action.triggered.connect(
                    lambda checked=False, s=size_name, o=orientation: self._add_page(s, o))
                self._add_page_actions.append(action)

        options_menu = self.menuBar().addMenu("Options")
        self._hi_dpr_action = options_menu.addAction("High-DPI Rendering")
        self._hi_dpr_action.setCheckable(True)
        self._hi_dpr_action.setChecked(self._settings.hi_dpr)
        self._hi_dpr_action.toggled.connect(self._set_hi_dpr)
        self._debug_action = options_menu.addAction("Debug Logging")
        self._debug_action.setCheckable(True)
        self._debug_action.setChecked(self._settings.debug_mode)
        self._debug_action.toggled.connect(self._set_debug)

        toolbar = QToolBar("Main")
        toolbar.setMovable(False)
        self.addToolBar(toolbar)
        toolbar.addAction("Open…").triggered.connect(self._open_pdf)
        toolbar.addSeparator()

        toolbar.addWidget(QLabel(" Magnification: "))
        self._mag_spin = QDoubleSpinBox()
        self._mag_spin.setRange(MIN_MAGNIFICATION, MAX_MAGNIFICATION)
        self._mag_spin.setSingleStep(MAGNIFICATION_STEP)
        self._mag_spin.setDecimals(1)
        self._mag_spin.setSuffix("×")
        self._mag_spin.setValue(self._settings.magnification)
        self._mag_spin.valueChanged.connect(self._set_magnification)
        toolbar.addWidget(self._mag_spin)

        toolbar.addWidget(QLabel("  Placement: "))
        self._mode_combo = QComboBox()
        self._mode_combo.addItem("Any page (clipboard)", PLACEMENT_CLIPBOARD)
        self._mode_combo.addItem("Same page", PLACEMENT_SAME_PAGE)
        self._mode_combo.setCurrentIndex(
            max(0, self._mode_combo.findData(self._settings.placement_mode)))
        self._mode_combo.currentIndexChanged.connect(self._set_placement_mode)
        toolbar.addWidget(self._mode_combo)
        toolbar.addSeparator()

        toolbar.addAction(self._undo_action)
        toolbar.addAction(self._redo_action)
        toolbar.addSeparator()
        for label, tip, slot in [
            ("−", "Zoom out", lambda: self._zoom_all(1 / _ZOOM_BUTTON_FACTOR)),
            ("+", "Zoom in", lambda: self._zoom_all(_ZOOM_BUTTON_FACTOR)),
            ("Reset View", "Fit every page to the window width", self._reset_all),
        ]:
            action = toolbar.addAction(label)
            action.setToolTip(tip)
            action.triggered.connect(slot)

        self._scroll = QScrollArea()
        self._scroll.setWidgetResizable(True)
        self.setCentralWidget(self._scroll)
        self._show_placeholder()

        self._status = QLabel()
        self.statusBar().addWidget(self._status, 1)

    def _show_placeholder(self, message: str = "No PDF loaded.\nUse File → Open PDF…"):
        label = QLabel(message)
        label.setAlignment(Qt.AlignmentFlag.AlignCenter)
        self._scroll.setWidget(label)
        self._views = []

    def _build_page_list(self):
        container = QWidget()
        layout = QVBoxLayout(container)
        layout.setSpacing(6)
        self._views = []
        self._scroll.setWidget(container)
        layout.addStretch(1)
        for index in range(self._document.total_pages):
            self._append_view(index)

    def _append_view(self, index: int):
        layout = self._scroll.widget().layout()
        title = f"Page {index + 1}"
        if self._document.is_composition(index):
            title += " (composition)"
        view = PageView(self._document, index, self._clipboard, self._cache,
                        lambda: self._history.current, self._settings)
        view.callout_placed.connect(self._on_callout_placed)
        view.capture_requested.connect(self._on_capture_requested)
        view.remove_requested.connect(self._on_remove_requested)
        # Keep the trailing stretch last.
        at = layout.count() - 1
        layout.insertWidget(at, QLabel(title))
        layout.insertWidget(at + 1, view)
        self._views.append(view)

    # ── Document lifecycle ────────────────────────────────────────────────────

    def _open_pdf(self):
        path, _ = QFileDialog.getOpenFileName(self, "Open PDF", self._last_dir,
                                              "PDF files (*.pdf)")
        if path:
            self.open_path(path)

    def open_path(self, path: str):
        data_store.dbg(f"Opening {path}")
        try:
            document = SourceDocument.open_path(path)
        except DocumentLoadError as exc:
            logger.warning("Could not open %s: %s", path, exc)
            self._set_document(None)
            QMessageBox.critical(self, "Open PDF", f"Could not open {os.path.basename(path)}:\n{exc}")
            return
        self._last_dir = os.path.dirname(os.path.abspath(path))
        self._set_document(document)

    def _set_document(self, document: Optional[SourceDocument]):
        """Swap documents; everything derived from the old one is discarded."""
        if self._cache is not None:
            self._cache.clear()
        if self._document is not None:
            self._document.close()
        self._history.reset()
        self._clipboard.clear()
        self._document = document
        if document is None:
            self._cache = None
            self._show_placeholder()
            self.setWindowTitle("Quick Magnifier")
        else:
            self._cache = SnippetCache(self._source_page, dpi=self._settings.export_dpi)
            self._cache.subscribe(self._on_snippet_ready)
            self._build_page_list()
            self.setWindowTitle(f"Quick Magnifier - {document.name}")
        self._update_actions()

    def _source_page(self, index: int):
        return self._document.page(index) if self._document is not None else None

    def _add_page(self, size_name: str, orientation: str):
        if self._document is None:
            return
        index = self._document.add_composition_page(size_name, orientation)
        self._append_view(index)

    # ── Placement flow ────────────────────────────────────────────────────────

    def _on_capture_requested(self, request):
        page = self._source_page(request.page_index)
        preview = render_snippet(page, request.source_rect, request.magnification,
                                 Tier.PREVIEW, dpi=self._settings.preview_dpi)
        self._clipboard.capture(ClipboardItem(
            source_page_index=request.page_index,
            source_rect=request.source_rect,
            scale=request.magnification,
            preview_image=preview or b"",
        ))

    def _on_callout_placed(self, page_index: int, callout):
        self._history.append(page_index, callout)
        self._clipboard.clear()
        self._after_history_change()

    def _on_remove_requested(self, page_index: int, position: int):
        self._history.remove(page_index, position)
        self._after_history_change()

    def _undo(self):
        if self._history.undo():
            self._after_history_change()

    def _redo(self):
        if self._history.redo():
            self._after_history_change()

    def _after_history_change(self):
        if self._cache is not None:
            self._cache.prune(self._history.live_cache_keys())
        self._update_actions()
        self._repaint_pages()

    def _on_snippet_ready(self, key):
        self._repaint_pages()

    def _on_clipboard_changed(self, item: Optional[ClipboardItem]):
        # Magnification is frozen while a capture waits to be placed.
        self._mag_spin.setEnabled(item is None)
        self._update_status()
        self._repaint_pages()

    def cancel_pending(self) -> bool:
        """Escape: drop the clipboard and every in-progress page interaction."""
        cancelled = bool(self._clipboard)
        self._clipboard.clear()
        for view in self._views:
            cancelled = view.escape() or cancelled
        self._update_status()
        return cancelled

    def page_view_under_cursor(self) -> Optional[PageView]:
        widget = QApplication.widgetAt(QCursor.pos())
        while widget is not None and not isinstance(widget, PageView):
            widget = widget.parentWidget()
        return widget

    def _repaint_pages(self):
        for view in self._views:
            view.update()

    def _zoom_all(self, factor: float):
        for view in self._views:
            view.zoom_by(factor)

    def _reset_all(self):
        for view in self._views:
            view.reset_view()

    def _update_actions(self):
        has_doc = self._document is not None
        self._undo_action.setEnabled(self._history.can_undo())
        self._redo_action.setEnabled(self._history.can_redo())
        self._export_zip_action.setEnabled(has_doc)
        self._export_pdf_action.setEnabled(has_doc)
        for action in self._add_page_actions:
            action.setEnabled(has_doc)
        self._update_status()

    def _update_status(self):
        item = self._clipboard.item
        if item is not None:
            self._status.setText(
                f"Click on any page to place the detail from page "
                f"{item.source_page_index + 1} at {item.scale:g}×. Esc cancels.")
        elif self._document is not None:
            n = len(self._history.current)
            self._status.setText(
                f"{self._document.name}: {self._document.total_pages} page(s), "
                f"{n} callout(s). Drag to select, Alt+drag to pan, Alt+wheel to zoom.")
        else:
            self._status.setText("")

    # ── Settings ──────────────────────────────────────────────────────────────

    def _set_magnification(self, value: float):
        self._settings.magnification = value
        self._save_settings()

    def _set_placement_mode(self, _index: int):
        self._settings.placement_mode = self._mode_combo.currentData()
        self._save_settings()

    def _set_hi_dpr(self, enabled: bool):
        self._settings.hi_dpr = enabled
        self._save_settings()
        for view in self._views:
            view.rerender()

    def _set_debug(self, enabled: bool):
        self._settings.debug_mode = enabled
        data_store.set_debug(enabled)
        self._save_settings()

    def _save_settings(self):
        try:
            data_store.save_settings(self._settings)
        except OSError as exc:
            logger.warning("Could not save settings: %s", exc)

    # ── Export ────────────────────────────────────────────────────────────────

    def _export_zip(self):
        self._run_export("Export Pages as Images", raster_exporter.ZIP_NAME,
                         "ZIP archives (*.zip)",
                         lambda cb: raster_exporter.export_zip(
                             self._document, self._history.current, self._cache,
                             dpi=self._settings.export_dpi, progress_cb=cb))

    def _export_pdf(self):
        self._run_export("Export Detailed PDF", pdf_exporter.PDF_NAME,
                         "PDF files (*.pdf)",
                         lambda cb: pdf_exporter.export_pdf(
                             self._document, self._history.current, self._cache,
                             progress_cb=cb))

    def _run_export(self, title: str, default_name: str, file_filter: str,
                    build: Callable[[Callable[[int, int], None]], bytes]):
        if self._document is None:
            QMessageBox.warning(self, title, "No PDF loaded.")
            return
        path, _ = QFileDialog.getSaveFileName(
            self, title, os.path.join(self._last_dir, default_name), file_filter)
        if not path:
            return

        # Single dialog: progress bar → completion message
        dlg = QDialog(self)
        dlg.setWindowTitle(title)
        dlg.setMinimumWidth(420)
        dlg_layout = QVBoxLayout(dlg)
        status_label = QLabel("Exporting…")
        dlg_layout.addWidget(status_label)
        progress_bar = QProgressBar()
        progress_bar.setRange(0, self._document.total_pages)
        dlg_layout.addWidget(progress_bar)
        btn_box = QDialogButtonBox()
        dlg_layout.addWidget(btn_box)
        dlg.setModal(True)
        dlg.show()

        def on_progress(done: int, total: int):
            progress_bar.setMaximum(total)
            progress_bar.setValue(done)
            status_label.setText(f"Exporting… ({min(done + 1, total)}/{total})")
            QApplication.processEvents()

        try:
            data = build(on_progress)
            with open(path, "wb") as f:
                f.write(data)
        except (ExportError, OSError) as exc:
            dlg.close()
            QMessageBox.warning(self, title, f"Export failed:\n{exc}")
            return

        logger.info("Exported %s (%d bytes)", path, len(data))
        status_label.setText(f"Exported to:\n{path}")
        progress_bar.hide()
        open_btn = btn_box.addButton("Open Folder", QDialogButtonBox.ButtonRole.ActionRole)
        ok_btn = btn_box.addButton(QDialogButtonBox.StandardButton.Ok)
        ok_btn.setDefault(True)
        open_btn.clicked.connect(lambda: _open_path(os.path.dirname(path)))
        ok_btn.clicked.connect(dlg.accept)
        dlg.exec()

    def closeEvent(self, event):
        QApplication.instance().removeEventFilter(self._key_filter)
        self._set_document(None)
        super().closeEvent(event)


def _open_path(path: str) -> None:
    """Open *path* with the platform's default handler (file or directory)."""
    if not os.path.exists(path):
        return
    try:
        if sys.platform == "darwin":
            subprocess.Popen(["open", path])
        elif sys.platform == "win32":
            os.startfile(path)  # type: ignore[attr-defined]
        else:
            subprocess.Popen(["xdg-open", path])
    except OSError as exc:
        logger.warning("Could not open %s: %s", path, exc)


def main():
    settings = data_store.load_settings()
    data_store.configure_logging(settings.debug_mode)
    app = QApplication(sys.argv)
    app.setApplicationName("Quick Magnifier")
    window = MainWindow(settings)
    window.show()
    if len(sys.argv) > 1:
        window.open_path(sys.argv[1])
    sys.exit(app.exec())


if __name__ == "__main__":
    main()
