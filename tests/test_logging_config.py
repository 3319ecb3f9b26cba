"""Tests for logging setup."""

import logging
from pathlib import Path

import pytest

from gren.logging_config import log_file_path, setup_logging


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


@pytest.mark.parametrize(
    "verbose, debug, expected",
    [
        (False, False, logging.WARNING),
        (True, False, logging.INFO),
        (False, True, logging.DEBUG),
    ],
)
def test_levels(verbose, debug, expected, tmp_path: Path):
    setup_logging(verbose=verbose, debug=debug, log_file=tmp_path / "gren.log")
    assert logging.getLogger().level == expected


def test_debug_writes_log_file(tmp_path: Path):
    log_file = tmp_path / "logs" / "gren.log"
    setup_logging(debug=True, log_file=log_file)

    logging.getLogger("gren.test").debug("hello from the test")
    for handler in logging.getLogger().handlers:
        handler.flush()

    assert "hello from the test" in log_file.read_text()


def test_handlers_are_replaced():
    setup_logging()
    setup_logging()
    assert len(logging.getLogger().handlers) == 1


def test_default_log_file_location(tmp_path: Path):
    assert log_file_path() == tmp_path / "xdg" / "state" / "gren" / "logs" / "gren.log"
