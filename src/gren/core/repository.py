"""Read-mostly view of a git repository and its worktrees."""

import logging
from pathlib import Path
from typing import Optional

from git import Git, Repo
from git.exc import GitCommandError, InvalidGitRepositoryError, NoSuchPathError

from gren.exceptions import NotAGitRepositoryError, NotFoundError, SubprocessFailedError
from gren.models.worktree import BranchStatus, Cleanliness, StaleReason, Worktree

logger = logging.getLogger(__name__)

DEFAULT_GIT_TIMEOUT = 5.0
BASE_BRANCH_CANDIDATES = ("main", "master")


def parse_worktree_porcelain(output: str) -> list[dict]:
    """
    Split `git worktree list --porcelain` output into one dict per entry.

    Keys: path, head, branch (short name), detached, bare, prunable.
    """
    entries: list[dict] = []
    entry: dict = {}

    for raw in output.splitlines():
        line = raw.strip()
        if not line:
            if entry:
                entries.append(entry)
                entry = {}
            continue

        if line.startswith("worktree "):
            if entry:
                entries.append(entry)
            entry = {"path": line[len("worktree "):]}
        elif line.startswith("HEAD "):
            entry["head"] = line[len("HEAD "):]
        elif line.startswith("branch "):
            ref = line[len("branch "):]
            entry["branch"] = ref[len("refs/heads/"):] if ref.startswith("refs/heads/") else ref
        elif line == "detached":
            entry["detached"] = True
        elif line == "bare":
            entry["bare"] = True
        elif line == "prunable" or line.startswith("prunable "):
            entry["prunable"] = True

    if entry:
        entries.append(entry)

    return entries


def count_status(output: str) -> tuple[int, int, int]:
    """Return (staged, modified, untracked) counts from `git status --porcelain`."""
    staged = modified = untracked = 0
    for line in output.splitlines():
        if len(line) < 2:
            continue
        index_status, work_status = line[0], line[1]
        if index_status == "?" and work_status == "?":
            untracked += 1
            continue
        if index_status not in (" ", "?"):
            staged += 1
        if work_status not in (" ", "?"):
            modified += 1
    return staged, modified, untracked


def _clean_stderr(error: GitCommandError) -> str:
    text = str(error.stderr or "").strip()
    if text.startswith("stderr:"):
        text = text[len("stderr:"):].strip().strip("'")
    return text


class GitRepository:
    """
    Resolves worktrees and branches of a repository from git's own listings.

    Nothing is cached: every query re-reads git state, and the current
    worktree is recomputed from the process working directory each time.
    """

    def __init__(self, path: Optional[Path] = None, git_timeout: float = DEFAULT_GIT_TIMEOUT):
        """
        Open the repository containing `path`.

        Args:
            path: Any directory inside the repository. Defaults to the cwd.
            git_timeout: Seconds allowed for read-only git queries.

        Raises:
            NotAGitRepositoryError: If `path` is not inside a git repository.
        """
        self.path = Path(path or Path.cwd()).resolve()
        self.git_timeout = git_timeout
        try:
            self.repo = Repo(self.path, search_parent_directories=True)
        except (InvalidGitRepositoryError, NoSuchPathError) as e:
            raise NotAGitRepositoryError(f"Not a git repository: {self.path}") from e

        if self.repo.bare or self.repo.working_tree_dir is None:
            raise NotAGitRepositoryError(f"Bare repositories are not supported: {self.path}")
        self.working_dir = Path(self.repo.working_tree_dir).resolve()

        # The main worktree never moves, so git runs there unless told otherwise.
        self.main_root = self.working_dir
        entries = self._porcelain_entries()
        if entries:
            self.main_root = Path(entries[0]["path"]).resolve()

    # ------------------------------------------------------------------
    # git invocation
    # ------------------------------------------------------------------

    def run(self, *args: str, cwd: Optional[Path] = None, mutating: bool = False) -> str:
        """
        Run a git command and return its stdout.

        Read-only commands are killed after `git_timeout` seconds; mutating
        commands run without a timeout and are logged at INFO.

        Args:
            args: Arguments after `git`.
            cwd: Directory to run in. Defaults to the main worktree.
            mutating: Whether the command changes repository state.

        Raises:
            SubprocessFailedError: If git exits non-zero or times out.
        """
        where = cwd or self.main_root
        command = ["git", *args]
        display = " ".join(command)

        if mutating:
            logger.info(f"Running {display} (in {where})")
            kwargs = {}
        else:
            logger.debug(f"Running {display} (in {where})")
            kwargs = {"kill_after_timeout": self.git_timeout}

        try:
            return Git(str(where)).execute(command, **kwargs)
        except GitCommandError as e:
            raise SubprocessFailedError(
                command=display, status=e.status, stderr=_clean_stderr(e)
            ) from e

    def _succeeds(self, *args: str, cwd: Optional[Path] = None) -> bool:
        try:
            self.run(*args, cwd=cwd)
            return True
        except SubprocessFailedError:
            return False

    # ------------------------------------------------------------------
    # worktrees
    # ------------------------------------------------------------------

    def _porcelain_entries(self) -> list[dict]:
        return parse_worktree_porcelain(self.run("worktree", "list", "--porcelain"))

    @property
    def name(self) -> str:
        """Repository name, taken from the main worktree directory."""
        return self.main_root.name

    @staticmethod
    def _current_path(paths: list[Path]) -> Optional[Path]:
        """The deepest worktree path containing the process working directory."""
        try:
            cwd = Path.cwd().resolve()
        except FileNotFoundError:
            return None

        matches = [path for path in paths if cwd == path or path in cwd.parents]
        if not matches:
            return None
        return max(matches, key=lambda path: len(path.parts))

    def current_worktree_path(self) -> Optional[Path]:
        paths = [Path(entry["path"]).resolve() for entry in self._porcelain_entries()]
        return self._current_path(paths)

    def list_worktrees(self, detect_stale: bool = False) -> list[Worktree]:
        """
        List all worktrees registered with the repository.

        Missing (prunable) worktrees are included with `is_missing=True`
        and are not inspected further.

        Args:
            detect_stale: Also fill in `stale_reason`. The main, missing
                and detached worktrees are never stale.

        Returns:
            Worktrees in the order git reports them; the first is the main one.
        """
        entries = self._porcelain_entries()
        paths = [Path(entry["path"]).resolve() for entry in entries]
        current = self._current_path(paths)

        worktrees = []
        for index, (entry, path) in enumerate(zip(entries, paths)):
            worktrees.append(self._build_worktree(entry, path, index == 0, path == current))
        if not detect_stale:
            return worktrees

        stale = self.stale_branches()
        for index, worktree in enumerate(worktrees):
            if worktree.is_main or worktree.is_missing or worktree.is_detached:
                continue
            reason = stale.get(worktree.branch)
            if reason is not None:
                worktrees[index] = worktree.model_copy(update={"stale_reason": reason})
        return worktrees

    def _build_worktree(self, entry: dict, path: Path, is_main: bool, is_current: bool) -> Worktree:
        is_detached = entry.get("detached", False)
        is_bare = entry.get("bare", False)
        if is_bare:
            branch = "(bare)"
        elif is_detached:
            branch = "(detached)"
        else:
            branch = entry.get("branch", "")

        is_missing = bool(entry.get("prunable")) or not path.exists()

        worktree = Worktree(
            path=path,
            branch=branch,
            head_commit=entry.get("head", ""),
            is_current=is_current,
            is_main=is_main,
            is_missing=is_missing,
            is_detached=is_detached,
        )
        if is_missing or is_bare:
            return worktree

        staged, modified, untracked = count_status(
            self.run("status", "--porcelain", cwd=path)
        )
        return worktree.model_copy(
            update={
                "has_submodules": (path / ".gitmodules").exists(),
                "staged_count": staged,
                "modified_count": modified,
                "untracked_count": untracked,
                "cleanliness": Cleanliness.from_counts(staged + modified, untracked),
            }
        )

    def find_worktree(self, identifier: str) -> Optional[Worktree]:
        """Find a worktree by directory name, branch or path."""
        try:
            wanted = Path(identifier).expanduser().resolve()
        except (OSError, RuntimeError):
            wanted = None

        for worktree in self.list_worktrees():
            if identifier in (worktree.name, worktree.branch, str(worktree.path)):
                return worktree
            if wanted is not None and worktree.path == wanted:
                return worktree
        return None

    def worktree_for_branch(self, branch: str) -> Optional[Worktree]:
        for worktree in self.list_worktrees():
            if worktree.branch == branch:
                return worktree
        return None

    # ------------------------------------------------------------------
    # branches
    # ------------------------------------------------------------------

    def local_branches(self) -> list[str]:
        output = self.run("for-each-ref", "--format=%(refname:short)", "refs/heads")
        return [line.strip() for line in output.splitlines() if line.strip()]

    def current_branch(self, cwd: Optional[Path] = None) -> str:
        """Branch checked out in `cwd` (or the current worktree); empty when detached."""
        where = cwd or self.current_worktree_path() or self.main_root
        return self.run("branch", "--show-current", cwd=where).strip()

    def branch_exists(self, branch: str) -> bool:
        return self._succeeds("rev-parse", "--verify", "--quiet", f"refs/heads/{branch}")

    def default_branch(self) -> str:
        """
        Determine the repository's default branch.

        Checks `main`, then `master`, then `origin/HEAD`, then the current branch.

        Raises:
            NotFoundError: If no candidate exists.
        """
        for candidate in BASE_BRANCH_CANDIDATES:
            if self.branch_exists(candidate):
                return candidate

        try:
            ref = self.run("symbolic-ref", "refs/remotes/origin/HEAD").strip()
            if ref.startswith("refs/remotes/origin/"):
                return ref[len("refs/remotes/origin/"):]
        except SubprocessFailedError:
            logger.debug("origin/HEAD is not set")

        current = self.current_branch()
        if current:
            return current
        raise NotFoundError("Could not determine the default branch")

    def remote_url(self, remote: str = "origin") -> Optional[str]:
        try:
            url = self.run("config", "--get", f"remote.{remote}.url").strip()
        except SubprocessFailedError:
            return None
        return url or None

    def head_commit(self, path: Optional[Path] = None) -> str:
        """Full SHA of HEAD in `path`; empty for an unborn branch."""
        try:
            return self.run("rev-parse", "HEAD", cwd=path).strip()
        except SubprocessFailedError:
            return ""

    def _count(self, revision_range: str, cwd: Optional[Path] = None) -> int:
        output = self.run("rev-list", "--count", revision_range, cwd=cwd).strip()
        return int(output or 0)

    def commits_ahead(self, branch: str, target: str) -> int:
        """Commits on `branch` that are not on `target`."""
        return self._count(f"{target}..{branch}")

    def commits_behind(self, branch: str, target: str) -> int:
        """Commits on `target` that are not on `branch`."""
        return self._count(f"{branch}..{target}")

    def merge_base(self, first: str, second: str) -> str:
        return self.run("merge-base", first, second).strip()

    def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        """Whether `ancestor` is reachable from `descendant`."""
        try:
            self.run("merge-base", "--is-ancestor", ancestor, descendant)
            return True
        except SubprocessFailedError as e:
            if e.status == 1:
                return False
            raise

    def commit_subjects(self, branch: str, target: str) -> list[str]:
        """Subjects of the commits on `branch` not yet on `target`, oldest first."""
        output = self.run("log", "--reverse", "--format=%s", f"{target}..{branch}")
        return [line for line in output.splitlines() if line]

    def _upstream_counts(self, branch: str) -> tuple[int, int]:
        try:
            output = self.run(
                "rev-list", "--left-right", "--count", f"{branch}...{branch}@{{upstream}}"
            )
        except SubprocessFailedError:
            return 0, 0

        parts = output.split()
        if len(parts) != 2:
            return 0, 0
        try:
            return int(parts[0]), int(parts[1])
        except ValueError:
            return 0, 0

    def branch_statuses(self) -> list[BranchStatus]:
        """
        Status of every local branch.

        Only the current branch is inspected for uncommitted files; other
        branches are reported clean. Ahead/behind counts are relative to
        each branch's upstream and are zero when there is none.
        """
        current_path = self.current_worktree_path() or self.main_root
        current = self.current_branch(current_path)

        statuses = []
        for branch in self.local_branches():
            ahead, behind = self._upstream_counts(branch)
            status = BranchStatus(
                name=branch,
                is_current=branch == current,
                ahead_count=ahead,
                behind_count=behind,
            )
            if status.is_current:
                staged, modified, untracked = count_status(
                    self.run("status", "--porcelain", cwd=current_path)
                )
                uncommitted = staged + modified
                status.uncommitted_files = uncommitted
                status.untracked_files = untracked
                status.is_clean = uncommitted == 0 and untracked == 0
            statuses.append(status)

        return statuses

    def stale_branches(self) -> dict[str, StaleReason]:
        """
        Local branches whose work looks finished.

        A branch is stale when it is merged into `main` (or `master`), or
        when its upstream has been deleted on the remote. A merged branch
        that points at the same commit as the base branch is reported as
        NO_UNIQUE_COMMITS, any other merged branch as MERGED.

        Returns:
            Mapping of branch name to reason; active branches are absent.
        """
        stale: dict[str, StaleReason] = {}

        base = next((name for name in BASE_BRANCH_CANDIDATES if self.branch_exists(name)), None)
        if base is not None:
            base_head = self.run("rev-parse", f"refs/heads/{base}").strip()
            output = self.run(
                "for-each-ref", "--merged", base, "--format=%(refname:short) %(objectname)", "refs/heads"
            )
            for line in output.splitlines():
                name, _, sha = line.strip().partition(" ")
                if not name or name == base:
                    continue
                stale[name] = (
                    StaleReason.NO_UNIQUE_COMMITS if sha == base_head else StaleReason.MERGED
                )
            logger.debug(f"{len(stale)} branches merged into {base}")

        output = self.run("for-each-ref", "--format=%(refname:short) %(upstream:track)", "refs/heads")
        for line in output.splitlines():
            name, _, track = line.strip().partition(" ")
            if track.strip() == "[gone]":
                stale.setdefault(name, StaleReason.REMOTE_GONE)

        return stale

    def recommended_base_branch(self) -> str:
        """
        Pick the branch new worktrees should start from.

        Order: clean `main`, clean `master`, clean current branch, then the
        current branch even if dirty, then any branch.

        Raises:
            NotFoundError: Only when the repository has no branches at all.
        """
        statuses = self.branch_statuses()
        if not statuses:
            raise NotFoundError("No local branches found")

        by_name = {status.name: status for status in statuses}
        current = next((status for status in statuses if status.is_current), None)

        candidates = [by_name[name] for name in BASE_BRANCH_CANDIDATES if name in by_name]
        if current is not None and current not in candidates:
            candidates.append(current)

        for candidate in candidates:
            if candidate.is_clean:
                return candidate.name

        if current is not None:
            logger.warning(f"All base branch candidates are dirty; using {current.name}")
            return current.name

        return statuses[0].name
