"""
Core modules for gren.

This package contains the core logic for:
- Resolving worktree and branch state
- Resolving hooks and expanding templates
- Gating hook commands behind approvals
- Running hooks
- Worktree lifecycle operations and the merge pipeline
"""

from gren.core.approval import (
    ApprovalGate,
    FileApprovalStore,
    MemoryApprovalStore,
    project_id,
)
from gren.core.foreach import ForEachConfig, ForEachService
from gren.core.hook_runner import HookRunner
from gren.core.hooks import HookRegistry, InlineHook, NamedHooks, ScriptHook
from gren.core.merge import MergePipeline
from gren.core.repository import GitRepository
from gren.core.templates import expand
from gren.core.worktree import WorktreeManager

__all__ = [
    "ApprovalGate",
    "FileApprovalStore",
    "MemoryApprovalStore",
    "project_id",
    "ForEachConfig",
    "ForEachService",
    "HookRunner",
    "HookRegistry",
    "InlineHook",
    "NamedHooks",
    "ScriptHook",
    "MergePipeline",
    "GitRepository",
    "expand",
    "WorktreeManager",
]
