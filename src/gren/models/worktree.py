"""Pydantic models for worktree and branch information."""

from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

from gren.models.hooks import HookOutcome


class Cleanliness(str, Enum):
    """Working tree state derived from `git status --porcelain`."""

    CLEAN = "clean"
    MODIFIED = "modified"
    UNTRACKED = "untracked"
    MIXED = "mixed"

    @classmethod
    def from_counts(cls, changed: int, untracked: int) -> "Cleanliness":
        """Classify a working tree from its changed and untracked file counts."""
        if changed and untracked:
            return cls.MIXED
        if changed:
            return cls.MODIFIED
        if untracked:
            return cls.UNTRACKED
        return cls.CLEAN


class StaleReason(str, Enum):
    """Why a branch's work is considered finished."""

    MERGED = "merged"
    NO_UNIQUE_COMMITS = "no_unique_commits"
    REMOTE_GONE = "remote_gone"


class Worktree(BaseModel):
    """Information about a git worktree."""

    path: Path = Field(description="Absolute path to the worktree directory")
    branch: str = Field(description="Branch name checked out in this worktree")
    head_commit: str = Field(default="", description="Full SHA of the HEAD commit")
    is_current: bool = Field(
        default=False, description="Whether the process runs inside this worktree"
    )
    is_main: bool = Field(default=False, description="Whether this is the main worktree")
    is_missing: bool = Field(
        default=False,
        description="Directory is gone but git still has the worktree registered",
    )
    is_detached: bool = Field(default=False, description="Whether HEAD is detached")
    has_submodules: bool = Field(
        default=False, description="Whether the worktree contains a .gitmodules file"
    )
    cleanliness: Cleanliness = Field(default=Cleanliness.CLEAN)
    staged_count: int = Field(default=0, ge=0)
    modified_count: int = Field(default=0, ge=0)
    untracked_count: int = Field(default=0, ge=0)
    stale_reason: Optional[StaleReason] = Field(
        default=None,
        description="Set when the branch is merged into the default branch or its remote is gone",
    )

    @property
    def name(self) -> str:
        """Get the worktree directory name."""
        return self.path.name

    @property
    def short_commit(self) -> str:
        return self.head_commit[:7]

    @property
    def is_clean(self) -> bool:
        return self.cleanliness == Cleanliness.CLEAN

    @property
    def is_stale(self) -> bool:
        return self.stale_reason is not None

    @property
    def short_path(self) -> str:
        """Get a shortened display path."""
        return f"~/{self.path.relative_to(Path.home())}" if self.path.is_relative_to(
            Path.home()
        ) else str(self.path)


class BranchStatus(BaseModel):
    """Status of a single local branch."""

    name: str
    is_current: bool = False
    is_clean: bool = True
    uncommitted_files: int = Field(default=0, ge=0)
    untracked_files: int = Field(default=0, ge=0)
    ahead_count: int = Field(default=0, ge=0, description="Commits ahead of upstream")
    behind_count: int = Field(default=0, ge=0, description="Commits behind upstream")


class CreateResult(BaseModel):
    """Result of creating a new worktree."""

    worktree: Worktree
    created_branch: bool = Field(
        default=False, description="Whether a new branch was created"
    )
    base_branch: Optional[str] = Field(
        default=None, description="Branch the new branch was created from"
    )
    warnings: list[str] = Field(default_factory=list)
    hook_results: list[HookOutcome] = Field(default_factory=list)


class DeleteResult(BaseModel):
    """Result of deleting a worktree."""

    path: Path
    branch: str
    forced: bool = Field(
        default=False, description="Whether removal ran with --force"
    )
    hook_results: list[HookOutcome] = Field(default_factory=list)


class SwitchResult(BaseModel):
    """Result of switching to a worktree."""

    worktree: Worktree
    directive_written: bool = False
    hook_results: list[HookOutcome] = Field(default_factory=list)
