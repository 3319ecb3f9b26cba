"""Worktree lifecycle operations: create, delete, list and switch."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from gren.config import GrenConfig, load_config
from gren.core import directive
from gren.core.approval import ApprovalGate, ApprovalStore, FileApprovalStore, project_id
from gren.core.ci import CIProvider, collect_summaries
from gren.core.foreach import Command, ForEachConfig, ForEachService
from gren.core.hook_runner import HookRunner
from gren.core.hooks import HookRegistry
from gren.core.merge import MergePipeline
from gren.core.repository import GitRepository
from gren.core.templates import expand, sanitize
from gren.exceptions import (
    AlreadyExistsError,
    ApprovalDeniedError,
    BranchNotFoundError,
    DirtyError,
    HookFailedError,
    NotFoundError,
    SubprocessFailedError,
    WorktreeError,
    WorktreeNotFoundError,
)
from gren.models.approval import ApprovedCommand
from gren.models.ci import CISummary
from gren.models.foreach import ForEachReport
from gren.models.hooks import ExecutionResult, HookContext, HookType
from gren.models.merge import MergeOptions, MergeResult
from gren.models.worktree import CreateResult, DeleteResult, SwitchResult, Worktree

logger = logging.getLogger(__name__)


def hook_warnings(result: ExecutionResult) -> list[str]:
    """Human readable warnings for the failed outcomes of a best-effort run."""
    warnings = []
    for outcome in result.failures:
        detail = outcome.error or outcome.stderr_tail or outcome.stdout_tail
        message = f"{result.hook_type.value} hook '{outcome.definition.label}' failed"
        if outcome.exit_code is not None:
            message += f" (exit {outcome.exit_code})"
        if detail:
            message += f": {detail}"
        warnings.append(message)
    return warnings


class WorktreeManager:
    """Manages the worktrees of one repository and runs their hooks."""

    def __init__(
        self,
        repo_path: Optional[Path] = None,
        config: Optional[GrenConfig] = None,
        approval_store: Optional[ApprovalStore] = None,
        gate: Optional[ApprovalGate] = None,
        auto_approve: bool = False,
        user_config_path: Optional[Path] = None,
    ):
        """
        Initialize the WorktreeManager.

        Args:
            repo_path: Path inside the git repository. Defaults to the cwd.
            config: Fixed configuration. When omitted the configuration
                files are re-read for every operation.
            approval_store: Store for hook approvals. Defaults to the
                per-user file store.
            gate: Approval gate to use instead of building one.
            auto_approve: Approve hook commands without prompting.
            user_config_path: Override for the user config file.

        Raises:
            NotAGitRepositoryError: If the path is not a git repository.
        """
        self.repository = GitRepository(repo_path)
        self._config = config
        self.user_config_path = user_config_path
        self.gate = gate or ApprovalGate(
            approval_store or FileApprovalStore(), auto_approve=auto_approve
        )
        self.repository.git_timeout = self.config.git_timeout

    @property
    def config(self) -> GrenConfig:
        if self._config is not None:
            return self._config
        return load_config(self.repository.main_root, self.user_config_path)

    @property
    def project_id(self) -> str:
        return project_id(self.repository.remote_url() or self.repository.main_root)

    # ------------------------------------------------------------------
    # hooks
    # ------------------------------------------------------------------

    def build_context(
        self,
        hook_type: HookType,
        worktree_path: Path,
        branch: str,
        base_branch: Optional[str] = None,
        target_branch: Optional[str] = None,
        execute_cmd: Optional[str] = None,
    ) -> HookContext:
        """Build the context handed to hooks for one lifecycle event."""
        commit = self.repository.head_commit(worktree_path) if worktree_path.exists() else ""
        try:
            default_branch = self.repository.default_branch()
        except NotFoundError:
            default_branch = ""

        return HookContext(
            hook_type=hook_type,
            branch=branch,
            worktree=str(worktree_path),
            worktree_name=worktree_path.name,
            repo=self.repository.name,
            repo_root=str(self.repository.main_root),
            commit=commit,
            short_commit=commit[:7],
            default_branch=default_branch,
            target_branch=target_branch,
            base_branch=base_branch,
            execute_cmd=execute_cmd,
        )

    def run_hooks(self, context: HookContext) -> ExecutionResult:
        """Resolve and run the hooks configured for `context.hook_type`."""
        registry = HookRegistry(self.config, self.repository.main_root)
        definitions = registry.resolve(context.hook_type, context.branch)
        if not definitions:
            logger.debug(f"No {context.hook_type.value} hooks configured")
            return ExecutionResult(hook_type=context.hook_type)

        runner = HookRunner(self.gate, self.project_id)
        return runner.run(context.hook_type, context, definitions)

    # ------------------------------------------------------------------
    # queries
    # ------------------------------------------------------------------

    def list(self, detect_stale: bool = True) -> list[Worktree]:
        """List all worktrees of the repository, flagging stale ones."""
        return self.repository.list_worktrees(detect_stale=detect_stale)

    def get(self, identifier: str) -> Worktree:
        """
        Find a worktree by name, branch or path.

        Raises:
            WorktreeNotFoundError: If no worktree matches.
        """
        worktree = self.repository.find_worktree(identifier)
        if worktree is None:
            raise WorktreeNotFoundError(identifier)
        return worktree

    def worktree_dir(self) -> Path:
        """
        Directory in which new worktrees are created.

        The configured value may use ``{{ repo }}``; relative paths are
        resolved against the main worktree. Defaults to ``../<repo>-worktrees``.
        """
        name = self.repository.name
        main_root = self.repository.main_root
        configured = self.config.worktree_dir
        if not configured:
            return (main_root.parent / f"{name}-worktrees").resolve()

        directory = Path(expand(configured, {"repo": name})).expanduser()
        if not directory.is_absolute():
            directory = main_root / directory
        return directory.resolve()

    # ------------------------------------------------------------------
    # create
    # ------------------------------------------------------------------

    def create(
        self,
        name: str,
        branch: Optional[str] = None,
        base_branch: Optional[str] = None,
        existing: bool = False,
        directory: Optional[Path] = None,
        execute: Optional[str] = None,
    ) -> CreateResult:
        """
        Create a new worktree.

        Args:
            name: Worktree name; also the branch name unless `branch` is given.
            branch: Branch to create or check out. A local branch that
                exists but is not checked out anywhere is reused.
            base_branch: Start point of a new branch. Defaults to the
                recommended base branch.
            existing: Check out an existing branch instead of creating one.
            directory: Parent directory for the worktree.
            execute: Command to run in the new worktree afterwards.

        Returns:
            CreateResult describing the new worktree.

        Raises:
            AlreadyExistsError: If the path is taken or the branch is
                checked out in another worktree.
            BranchNotFoundError: If `existing` is set and the branch is absent.
            SubprocessFailedError: If git fails.
        """
        branch = branch or name
        parent = Path(directory).expanduser().resolve() if directory else self.worktree_dir()
        path = parent / sanitize(name)

        for worktree in self.repository.list_worktrees():
            if worktree.path == path:
                raise AlreadyExistsError(f"Worktree already registered at {path}")
            if worktree.branch == branch:
                raise AlreadyExistsError(
                    f"Branch '{branch}' is already checked out at {worktree.path}"
                )
        if path.exists():
            raise AlreadyExistsError(f"Directory already exists: {path}")

        branch_exists = self.repository.branch_exists(branch)
        if existing and not branch_exists:
            raise BranchNotFoundError(branch)

        # A local branch that no worktree has checked out is reused as is.
        created_branch = not branch_exists
        base = None
        if created_branch:
            base = base_branch or self.repository.recommended_base_branch()
        elif not existing:
            logger.info(f"Branch '{branch}' already exists; checking it out")

        parent.mkdir(parents=True, exist_ok=True)
        if created_branch:
            self.repository.run("worktree", "add", "-b", branch, str(path), base, mutating=True)
        else:
            self.repository.run("worktree", "add", str(path), branch, mutating=True)

        logger.info(f"Created worktree {path} on branch {branch}")
        warnings: list[str] = []

        if (path / ".gitmodules").exists():
            try:
                self.repository.run(
                    "submodule", "update", "--init", "--recursive", cwd=path, mutating=True
                )
            except SubprocessFailedError as e:
                logger.warning(f"Failed to initialize submodules: {e}")
                warnings.append(f"Failed to initialize submodules: {e}")

        worktree = self.repository.find_worktree(str(path))
        if worktree is None:
            raise WorktreeError(f"Worktree created but not found: {path}")

        context = self.build_context(HookType.POST_CREATE, path, branch, base_branch=base)
        hook_results = self.run_hooks(context)
        warnings.extend(hook_warnings(hook_results))
        outcomes = list(hook_results.outcomes)

        if execute:
            directive.write_cd_and_run(path, execute)
            context = self.build_context(
                HookType.POST_START, path, branch, base_branch=base, execute_cmd=execute
            )
            start_results = self.run_hooks(context)
            warnings.extend(hook_warnings(start_results))
            outcomes.extend(start_results.outcomes)

        return CreateResult(
            worktree=worktree,
            created_branch=created_branch,
            base_branch=base,
            warnings=warnings,
            hook_results=outcomes,
        )

    # ------------------------------------------------------------------
    # delete
    # ------------------------------------------------------------------

    def _deinit_submodules(self, worktree: Worktree) -> None:
        try:
            self.repository.run(
                "submodule", "deinit", "--all", "--force", cwd=worktree.path, mutating=True
            )
        except SubprocessFailedError as e:
            raise WorktreeError(
                f"Failed to deinit submodules in {worktree.path}: {e}\n"
                f"Try: git -C {worktree.path} submodule deinit --all --force"
            ) from e

    def remove_worktree(self, worktree: Worktree, force: bool = False) -> bool:
        """
        Remove a worktree directory and its registration. The branch is kept.

        Returns:
            Whether `--force` was used.
        """
        use_force = force or worktree.is_missing or worktree.has_submodules
        if worktree.has_submodules and not worktree.is_missing:
            self._deinit_submodules(worktree)

        args = ["worktree", "remove"]
        if use_force:
            args.append("--force")
        args.append(str(worktree.path))

        try:
            self.repository.run(*args, mutating=True)
        except SubprocessFailedError:
            if not worktree.is_missing:
                raise
            self.repository.run("worktree", "prune", mutating=True)

        logger.info(f"Removed worktree {worktree.path}")
        return use_force

    def delete(self, identifier: str, force: bool = False) -> DeleteResult:
        """
        Delete a worktree.

        Args:
            identifier: Worktree name, branch or path.
            force: Remove even with uncommitted changes or failing
                pre-remove hooks.

        Returns:
            DeleteResult for the removed worktree.

        Raises:
            WorktreeNotFoundError: If the worktree cannot be found.
            WorktreeError: For the main or the current worktree.
            DirtyError: If the worktree has uncommitted changes and `force`
                is not set.
            HookFailedError: If a pre-remove hook fails and `force` is not set.
            ApprovalDeniedError: If pre-remove hooks are not approved and
                `force` is not set.
        """
        worktree = self.get(identifier)
        if worktree.is_main:
            raise WorktreeError("Cannot delete the main worktree")
        if worktree.is_current:
            raise WorktreeError(
                f"Cannot delete the current worktree {worktree.path}; switch to another one first"
            )
        if not force and not worktree.is_missing and not worktree.is_clean:
            raise DirtyError(
                f"Worktree {worktree.path} has uncommitted changes; use force to delete it anyway"
            )

        outcomes = []
        if not worktree.is_missing:
            context = self.build_context(HookType.PRE_REMOVE, worktree.path, worktree.branch)
            try:
                result = self.run_hooks(context)
                outcomes = list(result.outcomes)
                result.raise_for_failure()
            except (HookFailedError, ApprovalDeniedError) as e:
                if not force:
                    raise
                logger.warning(f"Ignoring pre-remove hook problem because of force: {e}")

        forced = self.remove_worktree(worktree, force=force)
        return DeleteResult(
            path=worktree.path, branch=worktree.branch, forced=forced, hook_results=outcomes
        )

    # ------------------------------------------------------------------
    # switch, for-each, merge
    # ------------------------------------------------------------------

    def switch(self, identifier: str) -> SwitchResult:
        """Point the calling shell at a worktree and run post-switch hooks."""
        worktree = self.get(identifier)
        if worktree.is_missing:
            raise WorktreeError(f"Worktree directory is missing: {worktree.path}")

        written = directive.write_cd(worktree.path)
        context = self.build_context(HookType.POST_SWITCH, worktree.path, worktree.branch)
        result = self.run_hooks(context)
        for warning in hook_warnings(result):
            logger.warning(warning)

        return SwitchResult(
            worktree=worktree, directive_written=written, hook_results=result.outcomes
        )

    def for_each(
        self, command: Command, skip_current: bool = False, skip_main: bool = False
    ) -> ForEachReport:
        """Run `command` in every worktree. See ForEachService."""
        service = ForEachService(
            self.repository, ForEachConfig(skip_current=skip_current, skip_main=skip_main)
        )
        return service.run_all(command)

    def merge(self, options: Optional[MergeOptions] = None) -> MergeResult:
        """Merge the current worktree's branch into its target. See MergePipeline."""
        return MergePipeline(self).run(options or self.default_merge_options())

    def default_merge_options(self) -> MergeOptions:
        """MergeOptions seeded from the ``[merge]`` configuration section."""
        section = self.config.merge
        return MergeOptions(
            squash=section.squash,
            rebase=section.rebase,
            remove=section.remove,
            verify=section.verify,
        )

    # ------------------------------------------------------------------
    # approvals and CI
    # ------------------------------------------------------------------

    def approvals(self) -> list[ApprovedCommand]:
        """Approved hook commands for this project."""
        return self.gate.list_approved(self.project_id)

    def revoke_approvals(self, command: Optional[str] = None) -> int:
        """Revoke one command, or every approval when `command` is None."""
        if command is None:
            return self.gate.revoke_all(self.project_id)
        return int(self.gate.revoke(self.project_id, command))

    def ci_summaries(self, provider: CIProvider) -> dict[str, CISummary]:
        """CI status for every worktree branch; provider failures are skipped."""
        branches = [
            wt.branch for wt in self.repository.list_worktrees()
            if not wt.is_detached and not wt.is_missing
        ]
        return collect_summaries(provider, branches)
