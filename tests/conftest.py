import os

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

import pytest  # noqa: E402

import data_store  # noqa: E402
from clipboard import Clipboard  # noqa: E402
from document import SourceDocument  # noqa: E402
from models import MagnifierSettings  # noqa: E402
from sample_pdf import make_pdf  # noqa: E402
from snippet_renderer import SnippetCache  # noqa: E402


@pytest.fixture(autouse=True)
def tmp_settings_home(tmp_path, monkeypatch):
    """Redirect settings and log files to a temporary directory."""
    home = tmp_path / "home"
    monkeypatch.setenv("QUICK_MAGNIFIER_HOME", str(home))
    return home


@pytest.fixture(scope="session")
def qapp():
    from PySide6.QtWidgets import QApplication
    app = QApplication.instance() or QApplication([])
    yield app


@pytest.fixture()
def pdf_bytes():
    return make_pdf()


@pytest.fixture()
def document(pdf_bytes):
    doc = SourceDocument.open(pdf_bytes, name="sample.pdf")
    yield doc
    doc.close()


@pytest.fixture()
def settings():
    return MagnifierSettings()


@pytest.fixture()
def clipboard():
    return Clipboard()


@pytest.fixture()
def cache(document):
    """Snippet cache whose deferred renders are queued for the test to run."""
    queued = []
    c = SnippetCache(document.page, scheduler=queued.append)
    c.queued = queued
    return c


@pytest.fixture()
def fresh_logging():
    import logging
    root = logging.getLogger()
    before = list(root.handlers)
    level = root.level
    yield
    for handler in list(root.handlers):
        if handler not in before:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)
    data_store._console_handler = None
