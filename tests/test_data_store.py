import json
import logging
from logging.handlers import RotatingFileHandler

import data_store
from models import MagnifierSettings, PLACEMENT_SAME_PAGE


def test_missing_file_gives_defaults(tmp_settings_home):
    assert data_store.config_dir() == str(tmp_settings_home)
    assert data_store.load_settings() == MagnifierSettings()


def test_save_and_load(tmp_settings_home):
    saved = MagnifierSettings(magnification=4.5, placement_mode=PLACEMENT_SAME_PAGE,
                              debug_mode=True)
    data_store.save_settings(saved)
    assert (tmp_settings_home / "settings.json").exists()
    assert data_store.load_settings() == saved


def test_corrupt_file_gives_defaults(tmp_settings_home):
    tmp_settings_home.mkdir()
    (tmp_settings_home / "settings.json").write_text("{not json", encoding="utf-8")
    assert data_store.load_settings() == MagnifierSettings()


def test_non_object_file_gives_defaults(tmp_settings_home):
    tmp_settings_home.mkdir()
    (tmp_settings_home / "settings.json").write_text("[1, 2]", encoding="utf-8")
    assert data_store.load_settings() == MagnifierSettings()


def test_out_of_range_values_are_clamped(tmp_settings_home):
    tmp_settings_home.mkdir()
    (tmp_settings_home / "settings.json").write_text(
        json.dumps({"magnification": 99, "pan_step": -4, "unknown_key": 1}),
        encoding="utf-8")
    loaded = data_store.load_settings()
    assert loaded.magnification == 10.0
    assert loaded.pan_step == 1


def test_configure_logging_writes_to_file(tmp_settings_home, fresh_logging):
    data_store.configure_logging(debug=False)
    root = logging.getLogger()
    assert any(isinstance(h, RotatingFileHandler) for h in root.handlers)
    assert root.level == logging.INFO
    logging.getLogger("test").info("hello")
    for handler in root.handlers:
        handler.flush()
    assert "[INFO] test: hello" in (tmp_settings_home / "quick_magnifier.log").read_text(
        encoding="utf-8")


def test_set_debug_toggles_level_and_console(fresh_logging):
    root = logging.getLogger()
    data_store.set_debug(True)
    assert root.level == logging.DEBUG
    assert data_store._console_handler in root.handlers
    data_store.set_debug(False)
    assert root.level == logging.INFO
    assert data_store._console_handler is None


def test_non_finite_values_fall_back_to_defaults(tmp_settings_home):
    tmp_settings_home.mkdir()
    # json.load accepts these JavaScript literals.
    (tmp_settings_home / "settings.json").write_text(
        '{"pan_step": Infinity, "magnification": NaN, "export_dpi": -Infinity}',
        encoding="utf-8")
    loaded = data_store.load_settings()
    defaults = MagnifierSettings()
    assert loaded.pan_step == defaults.pan_step
    assert loaded.magnification == defaults.magnification
    assert loaded.export_dpi == defaults.export_dpi


def test_dpi_values_are_capped(tmp_settings_home):
    tmp_settings_home.mkdir()
    (tmp_settings_home / "settings.json").write_text(
        json.dumps({"preview_dpi": 5000, "export_dpi": 1e6}), encoding="utf-8")
    loaded = data_store.load_settings()
    assert loaded.preview_dpi == 300.0
    assert loaded.export_dpi == 1200.0


def test_oversized_integer_gives_defaults(tmp_settings_home):
    tmp_settings_home.mkdir()
    (tmp_settings_home / "settings.json").write_text(
        '{"render_debounce_ms": 1' + "0" * 400 + "}", encoding="utf-8")
    assert data_store.load_settings() == MagnifierSettings()
