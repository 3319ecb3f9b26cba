"""Hook execution engine."""

import logging
import os
import subprocess
from pathlib import Path
from typing import Optional, Union

from gren.core.approval import ApprovalGate
from gren.core.hooks import resolve_script_path
from gren.core.templates import expand
from gren.exceptions import ApprovalDeniedError
from gren.models.hooks import (
    ExecutionResult,
    HookContext,
    HookDefinition,
    HookKind,
    HookOutcome,
    HookType,
)

logger = logging.getLogger(__name__)

OUTPUT_TAIL_LINES = 20

# Used when a script file is not executable.
SCRIPT_INTERPRETERS = {
    ".sh": "sh",
    ".bash": "bash",
    ".zsh": "zsh",
    ".fish": "fish",
    ".py": "python3",
    ".rb": "ruby",
    ".pl": "perl",
}


def tail(text: Optional[str], lines: int = OUTPUT_TAIL_LINES) -> str:
    if not text:
        return ""
    return "\n".join(text.rstrip("\n").splitlines()[-lines:])


class HookRunner:
    """
    Runs hook definitions for one project.

    pre-* hooks are blocking: the first failure stops the run and an
    unapproved command raises ApprovalDeniedError. post-* hooks are best
    effort: failures and denials are recorded and logged, never raised.
    """

    def __init__(self, gate: ApprovalGate, project_id: str):
        self.gate = gate
        self.project_id = project_id

    def run(
        self,
        hook_type: HookType,
        context: HookContext,
        definitions: list[HookDefinition],
    ) -> ExecutionResult:
        """
        Run `definitions` in order.

        Args:
            hook_type: Lifecycle event being handled.
            context: Event context, exported to every hook process.
            definitions: Resolved definitions for the event.

        Returns:
            ExecutionResult with one outcome per attempted definition.

        Raises:
            ApprovalDeniedError: If a blocking hook command is not approved.
        """
        result = ExecutionResult(hook_type=hook_type)
        if not definitions:
            return result

        blocking = hook_type.is_blocking
        try:
            self.gate.request(self.project_id, [d.command for d in definitions])
        except ApprovalDeniedError:
            if blocking:
                raise
            logger.warning(f"{hook_type.value} hooks were not approved; skipping them")

        for definition in definitions:
            if not self.gate.is_approved(self.project_id, definition.command):
                if blocking:
                    raise ApprovalDeniedError(self.project_id, [definition.command])
                result.outcomes.append(
                    HookOutcome(
                        definition=definition,
                        command=definition.command,
                        error="command not approved",
                    )
                )
                continue

            outcome = self._execute(hook_type, definition, context)
            result.outcomes.append(outcome)

            if outcome.succeeded:
                logger.info(f"{hook_type.value} hook '{definition.label}' completed")
                continue

            logger.warning(
                f"{hook_type.value} hook '{definition.label}' failed"
                f" (exit {outcome.exit_code}): {outcome.error or outcome.stderr_tail}"
            )
            if blocking:
                break

        return result

    def _argv(self, command: str, context: HookContext) -> list[str]:
        script = resolve_script_path(command, Path(context.repo_root))
        args = [context.worktree, context.branch, context.base_branch or "", context.repo_root]
        if os.access(script, os.X_OK):
            return [str(script), *args]
        interpreter = SCRIPT_INTERPRETERS.get(script.suffix, "sh")
        return [interpreter, str(script), *args]

    def _execute(
        self,
        hook_type: HookType,
        definition: HookDefinition,
        context: HookContext,
    ) -> HookOutcome:
        command = expand(definition.command, context)
        env = {**os.environ, **context.to_env()}

        if definition.kind == HookKind.SCRIPT:
            argv: Union[str, list[str]] = self._argv(command, context)
            shell = False
        else:
            argv = command
            shell = True

        background = definition.background
        if background and hook_type != HookType.POST_START:
            logger.warning(
                f"Ignoring background=true for {hook_type.value} hook '{definition.label}'"
            )
            background = False

        logger.info(f"Running {hook_type.value} hook: {command}")
        try:
            if background:
                process = subprocess.Popen(
                    argv,
                    shell=shell,
                    cwd=context.worktree,
                    env=env,
                    stdin=subprocess.PIPE,
                    stdout=subprocess.DEVNULL,
                    stderr=subprocess.DEVNULL,
                    text=True,
                    start_new_session=True,
                )
                try:
                    process.stdin.write(context.to_json())
                    process.stdin.close()
                except BrokenPipeError:
                    logger.debug(f"Background hook '{definition.label}' did not read its stdin")
                return HookOutcome(definition=definition, command=command, background=True)

            completed = subprocess.run(
                argv,
                shell=shell,
                cwd=context.worktree,
                env=env,
                input=context.to_json(),
                capture_output=True,
                text=True,
            )
        except OSError as e:
            return HookOutcome(definition=definition, command=command, error=str(e))

        logger.debug(f"{hook_type.value} hook output: {completed.stdout}")
        return HookOutcome(
            definition=definition,
            command=command,
            exit_code=completed.returncode,
            stdout_tail=tail(completed.stdout),
            stderr_tail=tail(completed.stderr),
        )
