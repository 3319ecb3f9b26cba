"""
Models for the merge pipeline.

This module provides:
- The ordered merge stages
- Merge options and the transient pipeline state
- The merge result reported to callers
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from pydantic import BaseModel, Field

from gren.models.hooks import HookOutcome


class MergeStage(str, Enum):
    """Merge pipeline stages, in execution order."""

    STAGE = "stage"
    SQUASH = "squash"
    REBASE = "rebase"
    PRE_MERGE_HOOKS = "pre-merge-hooks"
    FAST_FORWARD = "fast-forward-merge"
    PRE_REMOVE_HOOKS = "pre-remove-hooks"
    REMOVE_WORKTREE = "remove-worktree"
    SWITCH_TO_TARGET = "switch-to-target"
    POST_MERGE_HOOKS = "post-merge-hooks"


STAGE_ORDER: tuple[MergeStage, ...] = tuple(MergeStage)

# Stages that change commits, refs or worktrees. A failure after one of
# these leaves partial state behind.
MUTATING_STAGES = frozenset(
    {
        MergeStage.STAGE,
        MergeStage.SQUASH,
        MergeStage.REBASE,
        MergeStage.FAST_FORWARD,
        MergeStage.REMOVE_WORKTREE,
    }
)

# (source_branch, target_branch, commit_subjects) -> commit message
MessageSource = Callable[[str, str, list[str]], str]


@dataclass
class MergeOptions:
    """Options for a merge run; each flag enables one or more stages."""

    target: Optional[str] = None
    squash: bool = True
    rebase: bool = True
    remove: bool = True
    verify: bool = True
    message: Optional[str] = None
    message_source: Optional[MessageSource] = None
    yes: bool = False

    def enabled(self, stage: MergeStage) -> bool:
        """Whether a stage runs under these options."""
        if stage == MergeStage.SQUASH:
            return self.squash
        if stage == MergeStage.REBASE:
            return self.rebase
        if stage in (MergeStage.PRE_MERGE_HOOKS, MergeStage.POST_MERGE_HOOKS):
            return self.verify
        if stage == MergeStage.PRE_REMOVE_HOOKS:
            return self.remove and self.verify
        if stage in (MergeStage.REMOVE_WORKTREE, MergeStage.SWITCH_TO_TARGET):
            return self.remove
        return True


@dataclass
class MergePipelineState:
    """In-memory cursor over the stages of one merge invocation."""

    options: MergeOptions
    cursor: int = 0
    last_completed: Optional[MergeStage] = None
    last_outcome: Optional[str] = None
    mutated: bool = False
    stages_run: list[MergeStage] = field(default_factory=list)

    @property
    def current(self) -> Optional[MergeStage]:
        if self.cursor >= len(STAGE_ORDER):
            return None
        return STAGE_ORDER[self.cursor]

    def planned(self) -> list[MergeStage]:
        return [stage for stage in STAGE_ORDER if self.options.enabled(stage)]

    def complete(self, stage: MergeStage, outcome: str, mutated: bool = False) -> None:
        self.last_completed = stage
        self.last_outcome = outcome
        self.stages_run.append(stage)
        if mutated and stage in MUTATING_STAGES:
            self.mutated = True

    def advance(self) -> None:
        self.cursor += 1


class MergeResult(BaseModel):
    """Result of a merge run."""

    source_branch: str
    target_branch: str
    worktree_path: Path
    commits_squashed: int = Field(default=0, ge=0)
    worktree_removed: bool = False
    stages_run: list[MergeStage] = Field(default_factory=list)
    skipped: bool = False
    skip_reason: Optional[str] = None
    hook_results: list[HookOutcome] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
