"""Tests for Pydantic models."""

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from gren.exceptions import HookFailedError
from gren.models.hooks import (
    ExecutionResult,
    HookContext,
    HookDefinition,
    HookKind,
    HookOutcome,
    HookType,
)
from gren.models.merge import MergeOptions, MergePipelineState, MergeStage
from gren.models.worktree import Cleanliness, CreateResult, StaleReason, Worktree


@pytest.fixture
def sample_context() -> HookContext:
    return HookContext(
        hook_type=HookType.POST_CREATE,
        branch="feature/login",
        worktree="/work/repo-worktrees/feature-login",
        worktree_name="feature-login",
        repo="repo",
        repo_root="/work/repo",
        commit="0123456789abcdef",
        short_commit="0123456",
        default_branch="main",
        base_branch="main",
    )


class TestHookType:
    """Test suite for HookType enum."""

    def test_hook_type_values(self):
        assert HookType.POST_CREATE.value == "post-create"
        assert HookType.PRE_REMOVE.value == "pre-remove"
        assert HookType.PRE_MERGE.value == "pre-merge"
        assert HookType.POST_MERGE.value == "post-merge"
        assert HookType.POST_SWITCH.value == "post-switch"
        assert HookType.POST_START.value == "post-start"

    def test_only_pre_hooks_are_blocking(self):
        blocking = {hook_type for hook_type in HookType if hook_type.is_blocking}
        assert blocking == {HookType.PRE_REMOVE, HookType.PRE_MERGE}


class TestHookDefinition:
    """Test suite for HookDefinition."""

    def test_defaults(self):
        definition = HookDefinition(hook_type=HookType.POST_CREATE, command="make setup")

        assert definition.kind == HookKind.INLINE
        assert definition.branch_patterns == ()
        assert definition.disabled is False
        assert definition.label == "make setup"

    def test_label_prefers_name(self):
        definition = HookDefinition(
            hook_type=HookType.POST_CREATE, command="npm ci", name="deps"
        )
        assert definition.label == "deps"

    def test_is_frozen(self):
        definition = HookDefinition(hook_type=HookType.POST_CREATE, command="true")
        with pytest.raises(ValidationError):
            definition.command = "false"


class TestHookContext:
    """Test suite for HookContext."""

    def test_variables_drop_unset_values(self, sample_context: HookContext):
        variables = sample_context.variables()

        assert variables["hook_type"] == "post-create"
        assert variables["branch"] == "feature/login"
        assert "target_branch" not in variables
        assert "execute_cmd" not in variables

    def test_to_json_round_trips_variables(self, sample_context: HookContext):
        assert json.loads(sample_context.to_json()) == sample_context.variables()

    def test_to_env(self, sample_context: HookContext):
        env = sample_context.to_env()

        assert env["GREN_HOOK_TYPE"] == "post-create"
        assert env["GREN_BRANCH"] == "feature/login"
        assert env["GREN_WORKTREE_PATH"] == "/work/repo-worktrees/feature-login"
        assert env["GREN_BASE_BRANCH"] == "main"
        assert env["GREN_TARGET_BRANCH"] == ""
        assert json.loads(env["GREN_JSON_CONTEXT"])["repo"] == "repo"
        assert env["GREN_HOOK_CONTEXT"] == env["GREN_JSON_CONTEXT"]
        assert all(isinstance(value, str) for value in env.values())


class TestExecutionResult:
    """Test suite for HookOutcome and ExecutionResult."""

    def _outcome(self, command: str, exit_code=None, error=None, background=False):
        return HookOutcome(
            definition=HookDefinition(hook_type=HookType.PRE_MERGE, command=command),
            command=command,
            exit_code=exit_code,
            error=error,
            background=background,
            stderr_tail="boom" if exit_code else "",
        )

    def test_outcome_success(self):
        assert self._outcome("true", exit_code=0).succeeded
        assert self._outcome("sleep 10", background=True).succeeded
        assert not self._outcome("false", exit_code=1).succeeded
        assert not self._outcome("missing", error="not approved").succeeded

    def test_raise_for_failure_uses_first_failure(self):
        result = ExecutionResult(
            hook_type=HookType.PRE_MERGE,
            outcomes=[
                self._outcome("true", exit_code=0),
                self._outcome("make test", exit_code=2),
            ],
        )

        assert result.failed
        with pytest.raises(HookFailedError) as exc_info:
            result.raise_for_failure()

        assert exc_info.value.exit_code == 2
        assert exc_info.value.command == "make test"
        assert "boom" in str(exc_info.value)

    def test_raise_for_failure_noop_on_success(self):
        result = ExecutionResult(
            hook_type=HookType.PRE_MERGE, outcomes=[self._outcome("true", exit_code=0)]
        )
        result.raise_for_failure()
        assert not result.failed


class TestWorktree:
    """Test suite for the Worktree model."""

    def test_worktree_defaults(self):
        worktree = Worktree(path=Path("/tmp/repo-worktrees/feat-x"), branch="feat-x")

        assert worktree.name == "feat-x"
        assert worktree.is_clean
        assert not worktree.is_current
        assert not worktree.is_missing
        assert not worktree.is_stale

    def test_stale_reason(self):
        worktree = Worktree(
            path=Path("/tmp/x"), branch="x", stale_reason=StaleReason.REMOTE_GONE
        )
        assert worktree.is_stale
        assert worktree.model_dump(mode="json")["stale_reason"] == "remote_gone"

    def test_short_commit(self):
        worktree = Worktree(path=Path("/tmp/x"), branch="x", head_commit="abcdef0123456789")
        assert worktree.short_commit == "abcdef0"

    def test_short_path_in_home(self):
        worktree = Worktree(path=Path.home() / "code" / "feat-x", branch="feat-x")
        assert worktree.short_path == "~/code/feat-x"

    def test_short_path_outside_home(self):
        worktree = Worktree(path=Path("/opt/feat-x"), branch="feat-x")
        assert worktree.short_path == "/opt/feat-x"

    @pytest.mark.parametrize(
        "changed, untracked, expected",
        [
            (0, 0, Cleanliness.CLEAN),
            (2, 0, Cleanliness.MODIFIED),
            (0, 3, Cleanliness.UNTRACKED),
            (1, 1, Cleanliness.MIXED),
        ],
    )
    def test_cleanliness_from_counts(self, changed, untracked, expected):
        assert Cleanliness.from_counts(changed, untracked) == expected

    def test_create_result_serialization(self):
        result = CreateResult(
            worktree=Worktree(path=Path("/tmp/feat-x"), branch="feat-x"),
            created_branch=True,
            base_branch="main",
        )
        data = result.model_dump(mode="json")

        assert data["worktree"]["branch"] == "feat-x"
        assert data["base_branch"] == "main"
        assert data["hook_results"] == []


class TestMergeOptions:
    """Test suite for merge options and pipeline state."""

    def test_all_stages_enabled_by_default(self):
        options = MergeOptions()
        assert all(options.enabled(stage) for stage in MergeStage)

    def test_no_squash_no_rebase_no_remove(self):
        options = MergeOptions(squash=False, rebase=False, remove=False)
        state = MergePipelineState(options=options)

        assert state.planned() == [
            MergeStage.STAGE,
            MergeStage.PRE_MERGE_HOOKS,
            MergeStage.FAST_FORWARD,
            MergeStage.POST_MERGE_HOOKS,
        ]

    def test_no_verify_disables_hook_stages(self):
        options = MergeOptions(verify=False)
        planned = MergePipelineState(options=options).planned()

        assert MergeStage.PRE_MERGE_HOOKS not in planned
        assert MergeStage.PRE_REMOVE_HOOKS not in planned
        assert MergeStage.POST_MERGE_HOOKS not in planned
        assert MergeStage.REMOVE_WORKTREE in planned

    def test_state_tracks_mutation(self):
        state = MergePipelineState(options=MergeOptions())

        state.complete(MergeStage.STAGE, "clean")
        assert not state.mutated

        state.complete(MergeStage.SQUASH, "squashed 2 commits", mutated=True)
        assert state.mutated
        assert state.last_completed == MergeStage.SQUASH
        assert state.stages_run == [MergeStage.STAGE, MergeStage.SQUASH]

    def test_cursor_walks_every_stage(self):
        state = MergePipelineState(options=MergeOptions())
        seen = []
        while state.current is not None:
            seen.append(state.current)
            state.advance()
        assert seen == list(MergeStage)
