"""
gren - Git worktree lifecycle manager.

Creates, lists, merges and deletes git worktrees, and runs approved
user-defined hooks at each step of a worktree's life.
"""

__version__ = "0.1.0"

from gren.config import GrenConfig, load_config

__all__ = [
    "__version__",
    "GrenConfig",
    "load_config",
]
