"""Logging configuration for gren."""

import logging
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

from gren.config import user_state_dir

LOG_FILE_NAME = "gren.log"
FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def log_file_path() -> Path:
    return user_state_dir() / "logs" / LOG_FILE_NAME


def setup_logging(
    verbose: bool = False, debug: bool = False, log_file: Optional[Path] = None
) -> None:
    """
    Configure the root logger.

    Args:
        verbose: Show INFO messages.
        debug: Show DEBUG messages and also write everything to the log file.
        log_file: Override for the debug log file location.
    """
    if debug:
        level = logging.DEBUG
    elif verbose:
        level = logging.INFO
    else:
        level = logging.WARNING

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = RichHandler(
        console=Console(stderr=True),
        show_time=debug,
        show_path=debug,
        rich_tracebacks=debug,
    )
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter("%(message)s" if not debug else "[%(name)s] %(message)s"))
    root_logger.addHandler(console_handler)

    if debug:
        path = log_file or log_file_path()
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, mode="w")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(fmt=FILE_FORMAT, datefmt=DATE_FORMAT))
        root_logger.addHandler(file_handler)

    # GitPython logs every command at DEBUG; keep it out unless debugging.
    logging.getLogger("git").setLevel(logging.DEBUG if debug else logging.WARNING)
