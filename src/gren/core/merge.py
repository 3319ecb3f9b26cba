"""
Merge pipeline.

Merges the branch of the current worktree into a target branch in fixed
stages: stage, squash, rebase, pre-merge hooks, fast-forward, pre-remove
hooks, remove worktree, switch to target, post-merge hooks. Each stage can
be disabled through MergeOptions. Nothing is rolled back on failure.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Optional

from gren.core import directive
from gren.exceptions import (
    BranchNotFoundError,
    GrenError,
    PipelineAbortedError,
    SubprocessFailedError,
    WorktreeError,
)
from gren.models.hooks import HookType
from gren.models.merge import (
    MergeOptions,
    MergePipelineState,
    MergeResult,
    MergeStage,
)
from gren.models.worktree import Worktree

if TYPE_CHECKING:
    from gren.core.worktree import WorktreeManager

logger = logging.getLogger(__name__)

MESSAGE_COMMAND_TIMEOUT = 120


class MergePipeline:
    """Runs one merge of the current worktree's branch into a target."""

    def __init__(self, manager: WorktreeManager):
        self.manager = manager
        self.repository = manager.repository

    def run(self, options: MergeOptions) -> MergeResult:
        """
        Run the enabled merge stages in order.

        Args:
            options: Target branch and stage switches.

        Returns:
            MergeResult; `skipped` is set when there is nothing to merge.

        Raises:
            PipelineAbortedError: If a stage fails after an earlier stage
                changed the repository. The original error is chained.
            GrenError: The original error when nothing was changed yet.
        """
        gate = self.manager.gate
        previous = gate.auto_approve
        if options.yes:
            gate.auto_approve = True
        try:
            return self._run(options)
        finally:
            gate.auto_approve = previous

    def _run(self, options: MergeOptions) -> MergeResult:
        current = next((wt for wt in self.repository.list_worktrees() if wt.is_current), None)
        if current is None:
            raise WorktreeError("Not inside a worktree of this repository")
        if current.is_detached:
            raise WorktreeError("Cannot merge from a detached HEAD")

        target = options.target or self.repository.default_branch()
        result = MergeResult(
            source_branch=current.branch,
            target_branch=target,
            worktree_path=current.path,
        )

        if current.branch == target:
            return self._skip(result, "already on target branch")
        if current.is_main:
            return self._skip(result, "cannot merge from the main worktree")
        if not self.repository.branch_exists(target):
            raise BranchNotFoundError(target)

        state = MergePipelineState(options=options)
        handlers: dict[MergeStage, Callable[[MergePipelineState, MergeResult, Worktree], None]] = {
            MergeStage.STAGE: self._stage,
            MergeStage.SQUASH: self._squash,
            MergeStage.REBASE: self._rebase,
            MergeStage.PRE_MERGE_HOOKS: self._pre_merge_hooks,
            MergeStage.FAST_FORWARD: self._fast_forward,
            MergeStage.PRE_REMOVE_HOOKS: self._pre_remove_hooks,
            MergeStage.REMOVE_WORKTREE: self._remove_worktree,
            MergeStage.SWITCH_TO_TARGET: self._switch_to_target,
            MergeStage.POST_MERGE_HOOKS: self._post_merge_hooks,
        }

        logger.info(f"Merging {current.branch} into {target}")
        while state.current is not None:
            stage = state.current
            if options.enabled(stage):
                try:
                    handlers[stage](state, result, current)
                except GrenError as e:
                    result.stages_run = list(state.stages_run)
                    if state.mutated:
                        last = state.last_completed.value if state.last_completed else None
                        raise PipelineAbortedError(stage.value, last, e) from e
                    raise
            state.advance()

        result.stages_run = list(state.stages_run)
        return result

    @staticmethod
    def _skip(result: MergeResult, reason: str) -> MergeResult:
        logger.info(f"Skipping merge: {reason}")
        result.skipped = True
        result.skip_reason = reason
        return result

    def _git(self, *args: str, cwd: Path, mutating: bool = True) -> str:
        return self.repository.run(*args, cwd=cwd, mutating=mutating)

    def _has_staged_changes(self, cwd: Path) -> bool:
        try:
            self._git("diff", "--cached", "--quiet", cwd=cwd, mutating=False)
            return False
        except SubprocessFailedError as e:
            if e.status == 1:
                return True
            raise

    # ------------------------------------------------------------------
    # stages
    # ------------------------------------------------------------------

    def _stage(self, state: MergePipelineState, result: MergeResult, worktree: Worktree) -> None:
        status = self._git("status", "--porcelain", cwd=worktree.path, mutating=False)
        if not status.strip():
            state.complete(MergeStage.STAGE, "clean")
            return

        self._git("add", "-A", cwd=worktree.path)
        if state.options.squash:
            state.complete(MergeStage.STAGE, "staged", mutated=True)
            return

        self._git("commit", "-m", f"WIP: changes on {result.source_branch}", cwd=worktree.path)
        state.complete(MergeStage.STAGE, "committed", mutated=True)

    def _squash(self, state: MergePipelineState, result: MergeResult, worktree: Worktree) -> None:
        source, target = result.source_branch, result.target_branch
        ahead = self.repository.commits_ahead(source, target)
        staged = self._has_staged_changes(worktree.path)

        if ahead <= 1 and not staged:
            state.complete(MergeStage.SQUASH, "nothing to squash")
            return

        subjects = self.repository.commit_subjects(source, target)
        message = self._squash_message(state.options, source, target, subjects, worktree.path)
        base = self.repository.merge_base(source, target)

        logger.info(f"Squashing {ahead} commits on {source}")
        self._git("reset", "--soft", base, cwd=worktree.path)
        self._git("commit", "-m", message, cwd=worktree.path)

        result.commits_squashed = ahead
        state.complete(MergeStage.SQUASH, f"squashed {ahead} commits", mutated=True)

    def _squash_message(
        self,
        options: MergeOptions,
        source: str,
        target: str,
        subjects: list[str],
        cwd: Path,
    ) -> str:
        if options.message:
            return options.message
        if options.message_source is not None:
            message = options.message_source(source, target, subjects)
            if message and message.strip():
                return message.strip()

        command = self.manager.config.commit_generation.command
        if command:
            message = self._generate_message(command, source, target, subjects, cwd)
            if message:
                return message

        return f"Squashed commits from {source}"

    def _generate_message(
        self, command: str, source: str, target: str, subjects: list[str], cwd: Path
    ) -> Optional[str]:
        """Ask the configured command for a commit message; None on failure."""
        diff_stat = self._git("diff", "--stat", f"{target}...{source}", cwd=cwd, mutating=False)
        commits = "\n".join(f"- {subject}" for subject in subjects)
        prompt = (
            "Write a git commit message for squashing these commits.\n\n"
            f"Branch: {source} -> {target}\n"
            f"Commits:\n{commits}\n\n"
            f"Changes:\n{diff_stat}\n"
        )
        try:
            completed = subprocess.run(
                command,
                shell=True,
                cwd=cwd,
                input=prompt,
                capture_output=True,
                text=True,
                timeout=MESSAGE_COMMAND_TIMEOUT,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.warning(f"Commit message command failed: {e}")
            return None

        if completed.returncode != 0:
            logger.warning(
                f"Commit message command exited {completed.returncode}: {completed.stderr.strip()}"
            )
            return None
        return completed.stdout.strip() or None

    def _rebase(self, state: MergePipelineState, result: MergeResult, worktree: Worktree) -> None:
        source, target = result.source_branch, result.target_branch
        if self.repository.commits_behind(source, target) == 0:
            state.complete(MergeStage.REBASE, "up to date")
            return

        try:
            self._git("rebase", target, cwd=worktree.path)
        except SubprocessFailedError:
            try:
                self._git("rebase", "--abort", cwd=worktree.path)
            except SubprocessFailedError as abort_error:
                logger.warning(f"git rebase --abort failed: {abort_error}")
            raise

        state.complete(MergeStage.REBASE, f"rebased onto {target}", mutated=True)

    def _pre_merge_hooks(
        self, state: MergePipelineState, result: MergeResult, worktree: Worktree
    ) -> None:
        context = self.manager.build_context(
            HookType.PRE_MERGE,
            worktree.path,
            result.source_branch,
            base_branch=result.target_branch,
            target_branch=result.target_branch,
        )
        execution = self.manager.run_hooks(context)
        result.hook_results.extend(execution.outcomes)
        execution.raise_for_failure()
        state.complete(MergeStage.PRE_MERGE_HOOKS, f"{len(execution.outcomes)} hooks passed")

    def _fast_forward(
        self, state: MergePipelineState, result: MergeResult, worktree: Worktree
    ) -> None:
        source, target = result.source_branch, result.target_branch
        if not self.repository.is_ancestor(target, source):
            raise SubprocessFailedError(
                command=f"git merge --ff-only {source}",
                message=(
                    f"Cannot fast-forward {target} to {source}: the branches have diverged."
                    f" Rebase {source} onto {target} first"
                ),
            )

        target_worktree = self.repository.worktree_for_branch(target)
        if target_worktree is not None and not target_worktree.is_missing:
            self._git("merge", "--ff-only", source, cwd=target_worktree.path)
        else:
            old = self.repository.run("rev-parse", f"refs/heads/{target}").strip()
            new = self.repository.run("rev-parse", source).strip()
            self._git("update-ref", f"refs/heads/{target}", new, old, cwd=self.repository.main_root)

        state.complete(MergeStage.FAST_FORWARD, f"{target} now at {source}", mutated=True)

    def _pre_remove_hooks(
        self, state: MergePipelineState, result: MergeResult, worktree: Worktree
    ) -> None:
        context = self.manager.build_context(HookType.PRE_REMOVE, worktree.path, result.source_branch)
        execution = self.manager.run_hooks(context)
        result.hook_results.extend(execution.outcomes)
        execution.raise_for_failure()
        state.complete(MergeStage.PRE_REMOVE_HOOKS, f"{len(execution.outcomes)} hooks passed")

    def _remove_worktree(
        self, state: MergePipelineState, result: MergeResult, worktree: Worktree
    ) -> None:
        self.manager.remove_worktree(worktree, force=True)
        result.worktree_removed = True

        try:
            self._git("branch", "-d", result.source_branch, cwd=self.repository.main_root)
        except SubprocessFailedError as e:
            logger.warning(f"Could not delete branch {result.source_branch}: {e}")
            result.warnings.append(f"Branch {result.source_branch} was kept: {e}")

        state.complete(MergeStage.REMOVE_WORKTREE, "removed", mutated=True)

    def _target_path(self, target: str) -> Path:
        target_worktree = self.repository.worktree_for_branch(target)
        if target_worktree is not None and not target_worktree.is_missing:
            return target_worktree.path
        return self.repository.main_root

    def _switch_to_target(
        self, state: MergePipelineState, result: MergeResult, worktree: Worktree
    ) -> None:
        path = self._target_path(result.target_branch)
        directive.write_cd(path)
        state.complete(MergeStage.SWITCH_TO_TARGET, f"switched to {path}")

    def _post_merge_hooks(
        self, state: MergePipelineState, result: MergeResult, worktree: Worktree
    ) -> None:
        context = self.manager.build_context(
            HookType.POST_MERGE,
            self._target_path(result.target_branch),
            result.source_branch,
            base_branch=result.target_branch,
            target_branch=result.target_branch,
        )
        execution = self.manager.run_hooks(context)
        result.hook_results.extend(execution.outcomes)
        for outcome in execution.failures:
            message = f"post-merge hook '{outcome.definition.label}' failed"
            logger.warning(message)
            result.warnings.append(message)
        state.complete(MergeStage.POST_MERGE_HOOKS, f"{len(execution.outcomes)} hooks ran")
