"""
CI / pull request status providers.

Providers are read-only collaborators: a provider that fails for one
branch is logged and skipped, and never fails the caller.
"""

import json
import logging
import shutil
import subprocess
from pathlib import Path
from typing import Iterable, Optional, Protocol

from gren.models.ci import CheckState, CISummary

logger = logging.getLogger(__name__)


class CIProvider(Protocol):
    """Source of pull request and check status for a branch."""

    def summary(self, branch: str) -> Optional[CISummary]:
        ...


def collect_summaries(provider: CIProvider, branches: Iterable[str]) -> dict[str, CISummary]:
    """Query `provider` for each branch, skipping branches whose lookup fails."""
    summaries: dict[str, CISummary] = {}
    for branch in branches:
        try:
            summary = provider.summary(branch)
        except Exception as e:
            logger.warning(f"CI status lookup failed for {branch}: {e}")
            continue
        if summary is not None:
            summaries[branch] = summary
    return summaries


def _check_state(rollup: list[dict]) -> CheckState:
    if not rollup:
        return CheckState.UNKNOWN

    states = set()
    for check in rollup:
        value = (check.get("conclusion") or check.get("state") or check.get("status") or "").upper()
        states.add(value)

    if states & {"FAILURE", "CANCELLED", "TIMED_OUT", "ACTION_REQUIRED"}:
        return CheckState.FAILURE
    if states & {"ERROR", "STARTUP_FAILURE"}:
        return CheckState.ERROR
    if states & {"PENDING", "QUEUED", "IN_PROGRESS", "EXPECTED", ""}:
        return CheckState.PENDING
    return CheckState.SUCCESS


class GitHubCLIProvider:
    """Reads pull request status through the `gh` command line tool."""

    def __init__(self, repo_root: Path, timeout: float = 10.0):
        self.repo_root = repo_root
        self.timeout = timeout

    @staticmethod
    def available() -> bool:
        return shutil.which("gh") is not None

    def summary(self, branch: str) -> Optional[CISummary]:
        try:
            completed = subprocess.run(
                [
                    "gh", "pr", "view", branch,
                    "--json", "number,state,isDraft,url,statusCheckRollup",
                ],
                cwd=self.repo_root,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.debug(f"gh pr view failed for {branch}: {e}")
            return None

        if completed.returncode != 0:
            # No pull request for this branch.
            return None

        data = json.loads(completed.stdout)
        state = "DRAFT" if data.get("isDraft") else data.get("state")
        return CISummary(
            branch=branch,
            number=data.get("number"),
            state=state,
            url=data.get("url"),
            checks=_check_state(data.get("statusCheckRollup") or []),
        )
