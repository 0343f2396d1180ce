"""Exception types raised by the magnifier engine."""


class MagnifierError(Exception):
    """Base class for every error the UI reports to the user."""


class DocumentLoadError(MagnifierError):
    """The selected file is not a readable PDF (or has no pages)."""


class SnippetRenderError(MagnifierError):
    """A page region could not be rasterised."""


class ExportError(MagnifierError):
    """Building the image bundle or the rebuilt PDF failed."""
