"""
Shell directives.

A process cannot change its parent shell's directory. The shell wrapper
sets GREN_DIRECTIVE_FILE to a temporary file, runs gren, then sources the
file. Without the variable every write is a no-op.
"""

import logging
import os
import shlex
from pathlib import Path
from typing import Optional

from gren.utils.io import write_atomic

logger = logging.getLogger(__name__)

DIRECTIVE_ENV = "GREN_DIRECTIVE_FILE"


def directive_file() -> Optional[Path]:
    value = os.environ.get(DIRECTIVE_ENV)
    return Path(value) if value else None


def is_shell_integration_active() -> bool:
    return directive_file() is not None


def write_directive(lines: list[str]) -> bool:
    """Replace the directive file with `lines`. Returns False when inactive."""
    target = directive_file()
    if target is None:
        logger.debug(f"{DIRECTIVE_ENV} not set; skipping directive")
        return False

    write_atomic(target, "\n".join(lines) + "\n", mode=0o644)
    logger.debug(f"Wrote directive to {target}")
    return True


def cd_line(path: Path) -> str:
    return f"cd {shlex.quote(str(path))}"


def write_cd(path: Path) -> bool:
    return write_directive([cd_line(path)])


def write_cd_and_run(path: Path, command: str) -> bool:
    """Change to `path`, then run `command` in the user's shell."""
    return write_directive([cd_line(path), command])


def clear() -> None:
    target = directive_file()
    if target is not None:
        target.unlink(missing_ok=True)
