"""Data persistence: user preferences and logging setup.

Nothing about an open document is persisted; only the preferences in
:class:`models.MagnifierSettings` survive a restart.
"""
import json
import logging
import os
from dataclasses import asdict, fields
from logging.handlers import RotatingFileHandler
from typing import Optional

from models import MagnifierSettings

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_FILE_BYTES = 1_000_000
LOG_FILE_COUNT = 3

_HOME_ENV = "QUICK_MAGNIFIER_HOME"

_console_handler: Optional[logging.Handler] = None


# ── Paths ─────────────────────────────────────────────────────────────────────

def config_dir() -> str:
    """Per-user directory for settings and logs (``$QUICK_MAGNIFIER_HOME``)."""
    override = os.environ.get(_HOME_ENV)
    if override:
        return os.path.abspath(override)
    return os.path.join(os.path.expanduser("~"), ".quick_magnifier")


def settings_path() -> str:
    return os.path.join(config_dir(), "settings.json")


def log_path() -> str:
    return os.path.join(config_dir(), "quick_magnifier.log")


def ensure_config_dir():
    os.makedirs(config_dir(), exist_ok=True)


# ── Settings ──────────────────────────────────────────────────────────────────

def load_settings() -> MagnifierSettings:
    """Read saved preferences; fall back to defaults for anything unusable."""
    path = settings_path()
    if not os.path.exists(path):
        return MagnifierSettings()
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
    except (OSError, ValueError) as exc:
        logger.warning("Ignoring unreadable settings file %s: %s", path, exc)
        return MagnifierSettings()
    if not isinstance(raw, dict):
        logger.warning("Ignoring settings file %s: expected an object", path)
        return MagnifierSettings()

    known = {f.name for f in fields(MagnifierSettings)}
    values = {k: v for k, v in raw.items() if k in known}
    try:
        return MagnifierSettings(**values).clamped()
    except (TypeError, ValueError, OverflowError) as exc:
        logger.warning("Ignoring invalid settings in %s: %s", path, exc)
        return MagnifierSettings()


def save_settings(settings: MagnifierSettings):
    ensure_config_dir()
    with open(settings_path(), "w", encoding="utf-8") as f:
        json.dump(asdict(settings.clamped()), f, indent=2)
        f.write("\n")
    logger.debug("Settings saved to %s", settings_path())


# ── Logging ───────────────────────────────────────────────────────────────────

def configure_logging(debug: bool = False, to_file: bool = True):
    """Install the root handlers once; call again only through :func:`set_debug`."""
    root = logging.getLogger()
    formatter = logging.Formatter(LOG_FORMAT)
    if to_file and not any(isinstance(h, RotatingFileHandler) for h in root.handlers):
        try:
            ensure_config_dir()
            handler = RotatingFileHandler(log_path(), maxBytes=LOG_FILE_BYTES,
                                          backupCount=LOG_FILE_COUNT, encoding="utf-8")
            handler.setFormatter(formatter)
            root.addHandler(handler)
        except OSError as exc:
            logging.basicConfig(format=LOG_FORMAT)
            logger.warning("File logging disabled: %s", exc)
    set_debug(debug)


def set_debug(enabled: bool):
    """Switch DEBUG logging and the console echo on or off at runtime."""
    global _console_handler
    root = logging.getLogger()
    root.setLevel(logging.DEBUG if enabled else logging.INFO)
    if enabled and _console_handler is None:
        _console_handler = logging.StreamHandler()
        _console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(_console_handler)
    elif not enabled and _console_handler is not None:
        root.removeHandler(_console_handler)
        _console_handler = None


def dbg(msg: str):
    """Shorthand used by the UI layer for one-off debug traces."""
    logging.getLogger("quick_magnifier").debug(msg)
