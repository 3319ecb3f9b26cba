"""Pydantic models for running a command across worktrees."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class ForEachResult(BaseModel):
    """Result of running the command in a single worktree."""

    worktree_path: str = Field(..., description="Path to the worktree")
    worktree_name: str = Field(..., description="Worktree directory name")
    branch_name: str = Field(..., description="Branch checked out in the worktree")
    command: str = Field(..., description="Command after template expansion")
    exit_code: int = Field(default=0, description="Process exit code")
    output: str = Field(default="", description="Combined stdout and stderr")
    error: Optional[str] = Field(
        default=None, description="Error when the command could not be started"
    )

    @property
    def succeeded(self) -> bool:
        return self.error is None and self.exit_code == 0


class ForEachReport(BaseModel):
    """Summary generated after running a command in every worktree."""

    timestamp: datetime = Field(default_factory=datetime.now)
    total: int = Field(default=0, ge=0, description="Worktrees the command ran in")
    successful: int = Field(default=0, ge=0)
    failed: int = Field(default=0, ge=0)
    skipped: int = Field(
        default=0, ge=0, description="Worktrees skipped (current, main or missing)"
    )
    results: List[ForEachResult] = Field(
        default_factory=list,
        description="Individual results for each worktree",
    )
