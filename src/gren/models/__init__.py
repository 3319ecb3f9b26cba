"""
Pydantic models for gren.

This package contains data models for:
- Worktree and branch information
- Hook definitions, context and outcomes
- Persisted approvals
- The merge pipeline
- for-each runs
- CI summaries
"""

from gren.models.approval import ApprovalRecord, ApprovedCommand
from gren.models.ci import CheckState, CISummary
from gren.models.foreach import ForEachReport, ForEachResult
from gren.models.hooks import (
    ExecutionResult,
    HookContext,
    HookDefinition,
    HookKind,
    HookOutcome,
    HookType,
)
from gren.models.merge import (
    MergeOptions,
    MergePipelineState,
    MergeResult,
    MergeStage,
)
from gren.models.worktree import (
    BranchStatus,
    Cleanliness,
    CreateResult,
    DeleteResult,
    StaleReason,
    SwitchResult,
    Worktree,
)

__all__ = [
    "ApprovalRecord",
    "ApprovedCommand",
    "CheckState",
    "CISummary",
    "ForEachReport",
    "ForEachResult",
    "ExecutionResult",
    "HookContext",
    "HookDefinition",
    "HookKind",
    "HookOutcome",
    "HookType",
    "MergeOptions",
    "MergePipelineState",
    "MergeResult",
    "MergeStage",
    "BranchStatus",
    "Cleanliness",
    "CreateResult",
    "DeleteResult",
    "StaleReason",
    "SwitchResult",
    "Worktree",
]
