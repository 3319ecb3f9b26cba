"""Custom exceptions for gren."""

from typing import Optional, Sequence


class GrenError(Exception):
    """Base exception for all gren errors."""


class NotAGitRepositoryError(GrenError):
    """Raised when the path is not a git repository."""


class ConfigError(GrenError):
    """Raised when a configuration file cannot be parsed or validated."""


class WorktreeError(GrenError):
    """Raised when a worktree operation is refused or cannot complete."""


class NotFoundError(GrenError):
    """Raised when a worktree or branch is absent."""


class WorktreeNotFoundError(NotFoundError):
    """Raised when a worktree cannot be found."""

    def __init__(self, identifier: str):
        self.identifier = identifier
        super().__init__(f"Worktree not found: {identifier}")


class BranchNotFoundError(NotFoundError):
    """Raised when a branch does not exist locally."""

    def __init__(self, branch: str):
        self.branch = branch
        super().__init__(f"Branch not found: {branch}")


class AlreadyExistsError(GrenError):
    """Raised when a worktree name, path or branch is already in use."""


class DirtyError(GrenError):
    """Raised when an operation is refused because of uncommitted state."""


class SubprocessFailedError(GrenError):
    """Raised when a git (or other tool) invocation fails or times out."""

    def __init__(
        self,
        command: str,
        status: Optional[int] = None,
        stderr: Optional[str] = None,
        message: Optional[str] = None,
    ):
        self.command = command
        self.status = status
        self.stderr = (stderr or "").strip()

        error_msg = message or f"Command '{command}' failed"
        if status is not None:
            error_msg += f" (exit {status})"
        if self.stderr:
            error_msg += f": {self.stderr}"

        super().__init__(error_msg)


class HookFailedError(GrenError):
    """Raised when a blocking hook exits non-zero."""

    def __init__(
        self,
        hook_type: str,
        command: str,
        exit_code: Optional[int] = None,
        output: str = "",
    ):
        self.hook_type = hook_type
        self.command = command
        self.exit_code = exit_code
        self.output = output

        error_msg = f"{hook_type} hook failed: {command}"
        if exit_code is not None:
            error_msg += f" (exit {exit_code})"
        if output:
            error_msg += f"\n{output}"

        super().__init__(error_msg)


class ApprovalDeniedError(GrenError):
    """Raised when hook commands were not approved for a project."""

    def __init__(self, project_id: str, commands: Sequence[str]):
        self.project_id = project_id
        self.commands = list(commands)
        listed = ", ".join(self.commands)
        super().__init__(f"Hook commands not approved for {project_id}: {listed}")


class PipelineAbortedError(GrenError):
    """Raised when a merge stage fails after earlier stages changed the repository.

    Nothing is rolled back; `last_completed` tells the user where to resume.
    """

    def __init__(self, stage: str, last_completed: Optional[str], cause: Exception):
        self.stage = stage
        self.last_completed = last_completed
        self.cause = cause

        error_msg = f"Merge aborted at stage '{stage}'"
        if last_completed:
            error_msg += f" (last completed: '{last_completed}')"
        error_msg += f": {cause}"

        super().__init__(error_msg)
