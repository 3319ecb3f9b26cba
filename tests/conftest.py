"""
Pytest configuration and shared fixtures for gren tests.
"""

import subprocess
from pathlib import Path
from typing import Callable, Optional
from unittest.mock import MagicMock, patch

import pytest

from gren.config import GrenConfig
from gren.core.approval import ApprovalGate, MemoryApprovalStore
from gren.core.worktree import WorktreeManager


def run_git(cwd: Path, *args: str) -> str:
    """Run git in `cwd`, failing the test on error."""
    completed = subprocess.run(
        ["git", *args],
        cwd=cwd,
        capture_output=True,
        text=True,
        check=True,
    )
    return completed.stdout.strip()


def commit_file(repo: Path, name: str, content: str, message: Optional[str] = None) -> str:
    """Write a file, commit it and return the new HEAD sha."""
    (repo / name).write_text(content)
    run_git(repo, "add", name)
    run_git(repo, "commit", "-m", message or f"Add {name}")
    return run_git(repo, "rev-parse", "HEAD")


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep user config, approvals and logs inside the test directory."""
    xdg = tmp_path / "xdg"
    monkeypatch.setenv("XDG_CONFIG_HOME", str(xdg / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(xdg / "data"))
    monkeypatch.setenv("XDG_STATE_HOME", str(xdg / "state"))
    monkeypatch.delenv("GREN_DIRECTIVE_FILE", raising=False)


@pytest.fixture
def temp_directory(tmp_path: Path) -> Path:
    """Resolved temporary directory for tests."""
    return tmp_path.resolve()


@pytest.fixture
def git_repo(temp_directory: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Create a temporary git repository on `main` and chdir into it."""
    repo_path = temp_directory / "test-repo"
    repo_path.mkdir()

    run_git(repo_path, "init")
    run_git(repo_path, "symbolic-ref", "HEAD", "refs/heads/main")
    run_git(repo_path, "config", "user.email", "test@example.com")
    run_git(repo_path, "config", "user.name", "Test User")
    run_git(repo_path, "config", "commit.gpgsign", "false")

    commit_file(repo_path, "README.md", "# Test Repository\n", "Initial commit")

    monkeypatch.chdir(repo_path)
    return repo_path


@pytest.fixture
def git_worktree(git_repo: Path, temp_directory: Path) -> Path:
    """Create a linked worktree on branch `test-branch`."""
    worktree_path = temp_directory / "test-worktree"
    run_git(git_repo, "worktree", "add", "-b", "test-branch", str(worktree_path))
    return worktree_path


@pytest.fixture
def remote_repo(git_repo: Path, temp_directory: Path) -> Path:
    """Bare `origin` for `git_repo`, with main pushed and tracked."""
    remote_path = temp_directory / "remote.git"
    run_git(temp_directory, "init", "--bare", str(remote_path))
    run_git(git_repo, "remote", "add", "origin", str(remote_path))
    run_git(git_repo, "push", "-u", "origin", "main")
    return remote_path


@pytest.fixture
def approval_store() -> MemoryApprovalStore:
    return MemoryApprovalStore()


@pytest.fixture
def approving_gate(approval_store: MemoryApprovalStore) -> ApprovalGate:
    """Gate that approves every command without prompting."""
    return ApprovalGate(approval_store, auto_approve=True)


@pytest.fixture
def make_manager(git_repo: Path, approving_gate: ApprovalGate) -> Callable[..., WorktreeManager]:
    """Factory for WorktreeManagers bound to `git_repo` with a fixed config."""

    def _make(config: Optional[GrenConfig] = None, gate: Optional[ApprovalGate] = None) -> WorktreeManager:
        return WorktreeManager(git_repo, config=config or GrenConfig(), gate=gate or approving_gate)

    return _make


@pytest.fixture
def manager(make_manager: Callable[..., WorktreeManager]) -> WorktreeManager:
    return make_manager()


@pytest.fixture
def hook_log(temp_directory: Path) -> Path:
    """File hooks append to, so tests can see what ran."""
    return temp_directory / "hooks.log"


@pytest.fixture
def directive_file(temp_directory: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Enable shell integration, writing directives to a temp file."""
    path = temp_directory / "directive.sh"
    monkeypatch.setenv("GREN_DIRECTIVE_FILE", str(path))
    return path


@pytest.fixture
def mock_subprocess_run():
    """Fixture to mock subprocess.run for hook and for-each commands."""
    with patch("subprocess.run") as mock_run:
        mock_result = MagicMock()
        mock_result.returncode = 0
        mock_result.stdout = ""
        mock_result.stderr = ""
        mock_run.return_value = mock_result
        yield mock_run
