"""
Tests for HookRunner.

Tests cover:
- Ordering and template expansion
- Fail-fast for blocking hooks, best effort for the rest
- Approval gating before any process is spawned
- Context delivery through stdin and environment
- Script hooks with positional arguments
"""

import json
import os
import subprocess
import time
from pathlib import Path
from unittest.mock import patch

import pytest

from gren.core.approval import ApprovalGate, MemoryApprovalStore
from gren.core.hook_runner import HookRunner, tail
from gren.exceptions import ApprovalDeniedError
from gren.models.hooks import HookContext, HookDefinition, HookKind, HookType

PROJECT = "local-test"


@pytest.fixture
def worktree(temp_directory: Path) -> Path:
    path = temp_directory / "wt"
    path.mkdir()
    return path


def make_context(worktree: Path, hook_type: HookType = HookType.POST_CREATE) -> HookContext:
    return HookContext(
        hook_type=hook_type,
        branch="feat-x",
        worktree=str(worktree),
        worktree_name=worktree.name,
        repo="repo",
        repo_root=str(worktree.parent),
        base_branch="main",
        default_branch="main",
    )


def hooks(hook_type: HookType, *commands: str) -> list[HookDefinition]:
    return [HookDefinition(hook_type=hook_type, command=command) for command in commands]


@pytest.fixture
def runner() -> HookRunner:
    return HookRunner(ApprovalGate(MemoryApprovalStore(), auto_approve=True), PROJECT)


class TestHookRunner:
    """Tests for running hooks."""

    def test_runs_in_order_with_expansion(self, runner, worktree, hook_log):
        result = runner.run(
            HookType.POST_CREATE,
            make_context(worktree),
            hooks(
                HookType.POST_CREATE,
                f"echo first {{{{ branch }}}} >> {hook_log}",
                f"echo second {{{{ hook_type }}}} >> {hook_log}",
            ),
        )

        assert not result.failed
        assert hook_log.read_text().splitlines() == ["first feat-x", "second post-create"]
        assert [o.exit_code for o in result.outcomes] == [0, 0]

    def test_runs_in_worktree_directory(self, runner, worktree, hook_log):
        runner.run(
            HookType.POST_CREATE,
            make_context(worktree),
            hooks(HookType.POST_CREATE, f"pwd > {hook_log}"),
        )

        assert Path(hook_log.read_text().strip()).resolve() == worktree

    def test_blocking_hooks_stop_at_first_failure(self, runner, worktree, hook_log):
        result = runner.run(
            HookType.PRE_MERGE,
            make_context(worktree, HookType.PRE_MERGE),
            hooks(HookType.PRE_MERGE, "exit 3", f"echo never >> {hook_log}"),
        )

        assert result.failed
        assert len(result.outcomes) == 1
        assert result.outcomes[0].exit_code == 3
        assert not hook_log.exists()

    def test_best_effort_hooks_continue_after_failure(self, runner, worktree, hook_log):
        result = runner.run(
            HookType.POST_CREATE,
            make_context(worktree),
            hooks(HookType.POST_CREATE, "echo oops >&2; exit 1", f"echo after >> {hook_log}"),
        )

        assert len(result.outcomes) == 2
        assert result.outcomes[0].stderr_tail == "oops"
        assert result.outcomes[1].succeeded
        assert hook_log.read_text().strip() == "after"

    def test_context_on_stdin_and_env(self, runner, worktree, hook_log):
        env_file = worktree.parent / "env.txt"
        json_file = worktree.parent / "json.txt"
        runner.run(
            HookType.POST_CREATE,
            make_context(worktree),
            hooks(
                HookType.POST_CREATE,
                f"cat > {hook_log}; echo \"$GREN_HOOK_TYPE $GREN_BRANCH $GREN_BASE_BRANCH\" > {env_file};"
                f" printf '%s' \"$GREN_JSON_CONTEXT\" > {json_file}",
            ),
        )

        delivered = json.loads(hook_log.read_text())
        assert delivered["hook_type"] == "post-create"
        assert delivered["branch"] == "feat-x"
        assert delivered["worktree"] == str(worktree)
        assert env_file.read_text().strip() == "post-create feat-x main"
        assert json.loads(json_file.read_text()) == delivered

    def test_script_hook_receives_positional_arguments(self, runner, worktree, hook_log):
        script = worktree.parent / "setup.sh"
        script.write_text(f'#!/bin/sh\necho "$1|$2|$3|$4" > {hook_log}\n')
        os.chmod(script, 0o755)

        definition = HookDefinition(
            hook_type=HookType.POST_CREATE, command="setup.sh", kind=HookKind.SCRIPT
        )
        result = runner.run(HookType.POST_CREATE, make_context(worktree), [definition])

        assert result.outcomes[0].succeeded
        assert hook_log.read_text().strip() == f"{worktree}|feat-x|main|{worktree.parent}"

    def test_non_executable_script_uses_interpreter(self, runner, worktree, hook_log):
        script = worktree.parent / "setup.sh"
        script.write_text(f"echo ran > {hook_log}\n")
        os.chmod(script, 0o644)

        definition = HookDefinition(
            hook_type=HookType.POST_CREATE, command="setup.sh", kind=HookKind.SCRIPT
        )
        runner.run(HookType.POST_CREATE, make_context(worktree), [definition])

        assert hook_log.read_text().strip() == "ran"

    def test_spawn_error_is_recorded(self, runner, worktree):
        with patch("gren.core.hook_runner.subprocess.run", side_effect=OSError("no shell")):
            result = runner.run(
                HookType.POST_CREATE, make_context(worktree), hooks(HookType.POST_CREATE, "true")
            )

        assert result.outcomes[0].error == "no shell"
        assert result.failed

    def test_background_only_for_post_start(self, runner, worktree):
        definition = HookDefinition(
            hook_type=HookType.POST_START, command="sleep 0", background=True
        )
        with patch("gren.core.hook_runner.subprocess.Popen") as mock_popen:
            result = runner.run(
                HookType.POST_START, make_context(worktree, HookType.POST_START), [definition]
            )

        mock_popen.assert_called_once()
        assert mock_popen.call_args.kwargs["start_new_session"] is True
        assert mock_popen.call_args.kwargs["stdin"] == subprocess.PIPE
        mock_popen.return_value.stdin.close.assert_called_once()
        assert result.outcomes[0].background

    def test_background_hook_reads_context_from_stdin(self, runner, worktree, hook_log):
        partial = hook_log.with_suffix(".partial")
        definition = HookDefinition(
            hook_type=HookType.POST_START,
            command=f"cat > {partial} && mv {partial} {hook_log}",
            background=True,
        )
        runner.run(HookType.POST_START, make_context(worktree, HookType.POST_START), [definition])

        deadline = time.monotonic() + 10
        while not hook_log.exists() and time.monotonic() < deadline:
            time.sleep(0.05)

        delivered = json.loads(hook_log.read_text())
        assert delivered["hook_type"] == "post-start"
        assert delivered["branch"] == "feat-x"

    def test_background_ignored_for_other_hooks(self, runner, worktree, mock_subprocess_run):
        definition = HookDefinition(
            hook_type=HookType.POST_CREATE, command="true", background=True
        )
        with patch("gren.core.hook_runner.subprocess.Popen") as mock_popen:
            result = runner.run(HookType.POST_CREATE, make_context(worktree), [definition])

        mock_popen.assert_not_called()
        mock_subprocess_run.assert_called_once()
        assert not result.outcomes[0].background


class TestApprovalGating:
    """A hook command never runs before it is approved."""

    def test_denied_blocking_hooks_raise_before_running(self, worktree, mock_subprocess_run):
        gate = ApprovalGate(MemoryApprovalStore(), prompt=lambda project, commands: "n")
        runner = HookRunner(gate, PROJECT)

        with pytest.raises(ApprovalDeniedError):
            runner.run(
                HookType.PRE_REMOVE,
                make_context(worktree, HookType.PRE_REMOVE),
                hooks(HookType.PRE_REMOVE, "make clean"),
            )

        mock_subprocess_run.assert_not_called()

    def test_denied_best_effort_hooks_are_recorded(self, worktree, mock_subprocess_run):
        gate = ApprovalGate(MemoryApprovalStore(), prompt=lambda project, commands: "n")
        runner = HookRunner(gate, PROJECT)

        result = runner.run(
            HookType.POST_CREATE, make_context(worktree), hooks(HookType.POST_CREATE, "make deps")
        )

        mock_subprocess_run.assert_not_called()
        assert result.outcomes[0].error == "command not approved"

    def test_every_spawn_is_preceded_by_approval_check(self, worktree, mock_subprocess_run):
        gate = ApprovalGate(MemoryApprovalStore(), auto_approve=True)
        calls = []
        original = gate.is_approved

        def tracking_is_approved(project, command):
            approved = original(project, command)
            calls.append((command, approved, mock_subprocess_run.call_count))
            return approved

        gate.is_approved = tracking_is_approved
        HookRunner(gate, PROJECT).run(
            HookType.POST_CREATE, make_context(worktree), hooks(HookType.POST_CREATE, "a", "b")
        )

        checks = [call for call in calls if call[1]]
        assert [(command, spawned) for command, _, spawned in checks[-2:]] == [("a", 0), ("b", 1)]
        assert mock_subprocess_run.call_count == 2

    def test_session_approval_allows_run(self, worktree, hook_log):
        gate = ApprovalGate(MemoryApprovalStore(), prompt=lambda project, commands: "y")
        result = HookRunner(gate, PROJECT).run(
            HookType.POST_CREATE,
            make_context(worktree),
            hooks(HookType.POST_CREATE, f"echo ok >> {hook_log}"),
        )

        assert result.outcomes[0].succeeded
        assert hook_log.read_text().strip() == "ok"


def test_tail_keeps_last_lines():
    text = "\n".join(str(i) for i in range(30))
    assert tail(text, 3) == "27\n28\n29"
    assert tail(None) == ""
