"""Tests for placeholder expansion."""

import pytest

from gren.core.templates import expand, hash_port, sanitize
from gren.models.hooks import HookContext, HookType


@pytest.fixture
def context() -> HookContext:
    return HookContext(
        hook_type=HookType.POST_CREATE,
        branch="feature/auth",
        worktree="/work/repo-worktrees/feature-auth",
        worktree_name="feature-auth",
        repo="repo",
        repo_root="/work/repo",
        commit="abcdef0123",
        short_commit="abcdef0",
        default_branch="main",
    )


class TestFilters:
    """Tests for template filters."""

    def test_sanitize(self):
        assert sanitize("feature/auth") == "feature-auth"
        assert sanitize("a b:c*d") == "a-b-c-d"
        assert sanitize("plain") == "plain"

    def test_hash_port_is_stable_and_in_range(self):
        port = hash_port("feature/auth")

        assert port == hash_port("feature/auth")
        assert 10000 <= int(port) < 20000

    def test_hash_port_differs_per_branch(self):
        assert hash_port("feature/a") != hash_port("feature/b")


class TestExpand:
    """Tests for expand()."""

    def test_simple_variables(self, context: HookContext):
        assert expand("cd {{ worktree }} && echo {{branch}}", context) == (
            "cd /work/repo-worktrees/feature-auth && echo feature/auth"
        )

    def test_filter_chain(self, context: HookContext):
        expected = hash_port("feature-auth")
        assert expand("--port {{ branch | sanitize | hash_port }}", context) == f"--port {expected}"

    def test_unknown_variable_left_verbatim(self, context: HookContext):
        assert expand("echo {{ nope }}", context) == "echo {{ nope }}"

    def test_unknown_filter_left_verbatim(self, context: HookContext):
        template = "echo {{ branch | shout }}"
        assert expand(template, context) == template

    def test_known_but_unset_variable_is_empty(self, context: HookContext):
        assert expand("[{{ target_branch }}]", context) == "[]"

    def test_mapping_context(self):
        assert expand("{{ repo }}-worktrees", {"repo": "widgets"}) == "widgets-worktrees"

    def test_text_without_placeholders(self, context: HookContext):
        assert expand("make test", context) == "make test"
