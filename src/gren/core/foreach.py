"""
Run one command in every worktree.

This module provides functionality to:
- Expand template variables per worktree
- Run the command sequentially, continuing past failures
- Summarize the outcomes in a ForEachReport
"""

import logging
import subprocess
from dataclasses import dataclass
from typing import Optional, Union

from gren.core.repository import GitRepository
from gren.core.templates import expand
from gren.exceptions import NotFoundError
from gren.models.foreach import ForEachReport, ForEachResult
from gren.models.worktree import Worktree

logger = logging.getLogger(__name__)

Command = Union[str, list[str]]


@dataclass
class ForEachConfig:
    """Which worktrees a for-each run visits."""

    skip_current: bool = False
    skip_main: bool = False


class ForEachService:
    """Runs a command across the worktrees of a repository."""

    def __init__(self, repository: GitRepository, config: Optional[ForEachConfig] = None):
        self.repository = repository
        self.config = config or ForEachConfig()

    def _variables(self, worktree: Worktree, default_branch: str) -> dict[str, str]:
        return {
            "branch": worktree.branch,
            "worktree": str(worktree.path),
            "worktree_name": worktree.name,
            "repo": self.repository.name,
            "repo_root": str(self.repository.main_root),
            "commit": worktree.head_commit,
            "short_commit": worktree.short_commit,
            "default_branch": default_branch,
        }

    def _skip_reason(self, worktree: Worktree) -> Optional[str]:
        if worktree.is_missing:
            return "missing"
        if self.config.skip_current and worktree.is_current:
            return "current"
        if self.config.skip_main and worktree.is_main:
            return "main"
        return None

    def run_in(self, worktree: Worktree, command: Command, default_branch: str = "") -> ForEachResult:
        """
        Run `command` in a single worktree.

        A string runs through the shell; a list runs as argv directly.
        """
        variables = self._variables(worktree, default_branch)
        if isinstance(command, str):
            expanded: Command = expand(command, variables)
            display = expanded
        else:
            expanded = [expand(part, variables) for part in command]
            display = " ".join(expanded)

        result = ForEachResult(
            worktree_path=str(worktree.path),
            worktree_name=worktree.name,
            branch_name=worktree.branch,
            command=display,
        )

        try:
            completed = subprocess.run(
                expanded,
                shell=isinstance(expanded, str),
                cwd=worktree.path,
                capture_output=True,
                text=True,
            )
        except OSError as e:
            result.exit_code = -1
            result.error = str(e)
            return result

        result.exit_code = completed.returncode
        result.output = (completed.stdout or "") + (completed.stderr or "")
        return result

    def run_all(self, command: Command) -> ForEachReport:
        """
        Run `command` in every eligible worktree, in listing order.

        Args:
            command: Shell string or argv list; may contain template variables.

        Returns:
            ForEachReport with one result per worktree the command ran in.
        """
        try:
            default_branch = self.repository.default_branch()
        except NotFoundError:
            default_branch = ""

        report = ForEachReport()
        for worktree in self.repository.list_worktrees():
            reason = self._skip_reason(worktree)
            if reason:
                logger.debug(f"Skipping {reason} worktree {worktree.path}")
                report.skipped += 1
                continue

            result = self.run_in(worktree, command, default_branch)
            report.results.append(result)
            report.total += 1

            if result.succeeded:
                report.successful += 1
            else:
                report.failed += 1
                logger.warning(
                    f"Command failed in {worktree.name} (exit {result.exit_code})"
                )

        return report
