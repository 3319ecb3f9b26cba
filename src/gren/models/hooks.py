"""
Pydantic models for lifecycle hooks.

This module provides data models for:
- Hook types and their blocking semantics
- Hook definitions resolved from configuration
- The context passed to hook processes
- Per-hook execution outcomes
"""

import json
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from gren.exceptions import HookFailedError


class HookType(str, Enum):
    """Lifecycle points at which hooks run."""

    POST_CREATE = "post-create"
    PRE_REMOVE = "pre-remove"
    PRE_MERGE = "pre-merge"
    POST_MERGE = "post-merge"
    POST_SWITCH = "post-switch"
    POST_START = "post-start"

    @property
    def is_blocking(self) -> bool:
        """pre-* hooks abort the surrounding operation on failure."""
        return self.value.startswith("pre-")


class HookKind(str, Enum):
    """How a hook command is executed."""

    INLINE = "inline"
    SCRIPT = "script"


class HookDefinition(BaseModel):
    """One configured automation unit."""

    model_config = ConfigDict(frozen=True)

    hook_type: HookType
    command: str = Field(..., description="Shell string or script path")
    kind: HookKind = Field(default=HookKind.INLINE)
    name: Optional[str] = Field(
        default=None, description="Name for hooks declared in a named group"
    )
    branch_patterns: tuple[str, ...] = Field(
        default=(), description="Glob patterns; empty matches every branch"
    )
    disabled: bool = False
    background: bool = Field(
        default=False, description="Fire and forget (post-start only)"
    )

    @property
    def label(self) -> str:
        return self.name or self.command


class HookContext(BaseModel):
    """Immutable description of a lifecycle event, handed to hook processes."""

    model_config = ConfigDict(frozen=True)

    hook_type: HookType
    branch: str
    worktree: str
    worktree_name: str
    repo: str
    repo_root: str
    commit: str = ""
    short_commit: str = ""
    default_branch: str = ""
    target_branch: Optional[str] = None
    base_branch: Optional[str] = None
    execute_cmd: Optional[str] = None

    def variables(self) -> dict[str, str]:
        """Template variables available to `{{ ... }}` placeholders."""
        data = self.model_dump(mode="json")
        return {key: value for key, value in data.items() if value is not None}

    def to_json(self) -> str:
        return json.dumps(self.variables())

    def to_env(self) -> dict[str, str]:
        """Environment variables exported to hook processes."""
        context_json = self.to_json()
        return {
            "GREN_JSON_CONTEXT": context_json,
            "GREN_HOOK_CONTEXT": context_json,
            "GREN_HOOK_TYPE": self.hook_type.value,
            "GREN_BRANCH": self.branch,
            "GREN_WORKTREE_PATH": self.worktree,
            "GREN_BASE_BRANCH": self.base_branch or "",
            "GREN_TARGET_BRANCH": self.target_branch or "",
            "GREN_REPO_ROOT": self.repo_root,
            "GREN_EXECUTE_CMD": self.execute_cmd or "",
        }


class HookOutcome(BaseModel):
    """Result of running (or refusing to run) one hook definition."""

    definition: HookDefinition
    command: str = Field(..., description="Command after template expansion")
    exit_code: Optional[int] = Field(
        default=None, description="None when the process never ran or was detached"
    )
    stdout_tail: str = ""
    stderr_tail: str = ""
    error: Optional[str] = None
    background: bool = False

    @property
    def succeeded(self) -> bool:
        if self.error:
            return False
        return self.background or self.exit_code == 0


class ExecutionResult(BaseModel):
    """Ordered outcomes of one hook run."""

    hook_type: HookType
    outcomes: list[HookOutcome] = Field(default_factory=list)

    @property
    def failures(self) -> list[HookOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.succeeded]

    @property
    def failed(self) -> bool:
        return bool(self.failures)

    def raise_for_failure(self) -> None:
        """Raise HookFailedError for the first failing outcome, if any."""
        if not self.failed:
            return
        first = self.failures[0]
        raise HookFailedError(
            hook_type=self.hook_type.value,
            command=first.command,
            exit_code=first.exit_code,
            output=first.stderr_tail or first.stdout_tail or first.error or "",
        )
