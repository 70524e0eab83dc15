# tests/test_logging_config.py
import logging
import logging.handlers

import pytest
from rich.logging import RichHandler

import config
from datacache.logging_config import setup_logging


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield root
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


def test_simple_mode_installs_single_console_handler(monkeypatch, restore_root_logger):
    monkeypatch.setattr(config, "SIMPLE_LOGGING_MODE", True)

    setup_logging()

    handlers = restore_root_logger.handlers
    assert len(handlers) == 1
    assert type(handlers[0]) is logging.StreamHandler
    assert handlers[0].formatter is config.simple_formatter


def test_rich_console_and_rotating_file(monkeypatch, tmp_path, restore_root_logger):
    monkeypatch.setattr(config, "SIMPLE_LOGGING_MODE", False)
    monkeypatch.setattr(config, "ENABLE_RICH_LOGGING", True)
    monkeypatch.setattr(config, "LOG_DIR", str(tmp_path))
    monkeypatch.setattr(config, "LOG_FILE", "datacache.log")

    setup_logging()

    handler_types = {type(h) for h in restore_root_logger.handlers}
    assert handler_types == {logging.handlers.RotatingFileHandler, RichHandler}
    assert (tmp_path / "datacache.log").exists()


def test_plain_console_when_rich_disabled(monkeypatch, restore_root_logger):
    monkeypatch.setattr(config, "SIMPLE_LOGGING_MODE", False)
    monkeypatch.setattr(config, "ENABLE_RICH_LOGGING", False)
    monkeypatch.setattr(config, "LOG_FILE", None)

    setup_logging()

    assert [type(h) for h in restore_root_logger.handlers] == [logging.StreamHandler]
    assert logging.getLogger("httpx").level == logging.WARNING
