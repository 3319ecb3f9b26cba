"""
Approval gate for hook commands.

Hook commands come from repository files, so each command must be approved
for its project before it runs for the first time. Approvals are keyed by
the SHA-256 fingerprint of the literal command string and persisted through
an explicitly passed ApprovalStore.
"""

import hashlib
import json
import logging
import re
from pathlib import Path
from typing import Callable, Iterable, Optional, Protocol, Union

import click
from pydantic import ValidationError
from rich.console import Console

from gren.config import user_data_dir
from gren.core.templates import sanitize
from gren.exceptions import ApprovalDeniedError
from gren.models.approval import ApprovalRecord, ApprovedCommand
from gren.utils.io import read_locked, write_atomic

logger = logging.getLogger(__name__)

# (project_id, pending commands) -> answer
Prompt = Callable[[str, list[str]], str]


def fingerprint(command: str) -> str:
    """SHA-256 hex digest of the literal, unexpanded command."""
    return hashlib.sha256(command.encode("utf-8")).hexdigest()


def normalize_remote_url(url: str) -> str:
    """
    Normalize a git remote URL into ``host/owner/repo``.

    Strips the scheme, credentials and ``.git`` suffix, converts scp syntax
    (``git@host:owner/repo``) and lower-cases the result.
    """
    normalized = url.strip()
    normalized = re.sub(r"^[a-zA-Z][a-zA-Z0-9+.-]*://", "", normalized)
    normalized = re.sub(r"^[^@/]+@", "", normalized)
    normalized = re.sub(r"^([^/:]+):\d+(?=/)", r"\1", normalized)

    scp = re.match(r"^([^/:]+):(.+)$", normalized)
    if scp:
        normalized = f"{scp.group(1)}/{scp.group(2)}"

    normalized = normalized.rstrip("/")
    if normalized.endswith(".git"):
        normalized = normalized[: -len(".git")]
    return normalized.lower()


def project_id(remote_url_or_path: Union[str, Path]) -> str:
    """
    Stable identifier for a project.

    A remote URL is normalized; a local path becomes ``local-`` followed by
    the first 16 hex characters of the SHA-256 of its resolved path.
    """
    if isinstance(remote_url_or_path, str) and not Path(remote_url_or_path).is_absolute():
        return normalize_remote_url(remote_url_or_path)

    resolved = str(Path(remote_url_or_path).expanduser().resolve())
    return "local-" + hashlib.sha256(resolved.encode("utf-8")).hexdigest()[:16]


class ApprovalStore(Protocol):
    """Persistence backing for approval records."""

    def load(self, project_id: str) -> ApprovalRecord:
        ...

    def save(self, record: ApprovalRecord) -> None:
        ...


class MemoryApprovalStore:
    """Keeps approvals for the lifetime of the object."""

    def __init__(self) -> None:
        self._records: dict[str, ApprovalRecord] = {}

    def load(self, project_id: str) -> ApprovalRecord:
        if project_id not in self._records:
            self._records[project_id] = ApprovalRecord(project_id=project_id)
        return self._records[project_id]

    def save(self, record: ApprovalRecord) -> None:
        self._records[record.project_id] = record


class FileApprovalStore:
    """
    One JSON document per project under the user data directory.

    Records are loaded lazily and cached for the life of the store. Writes
    are atomic with 0o600 permissions. A corrupt document is treated as
    empty and a warning is logged.
    """

    def __init__(self, directory: Optional[Path] = None):
        self.directory = Path(directory) if directory else user_data_dir() / "approvals"
        self._cache: dict[str, ApprovalRecord] = {}

    def path_for(self, project_id: str) -> Path:
        digest = hashlib.sha256(project_id.encode("utf-8")).hexdigest()[:8]
        return self.directory / f"{sanitize(project_id)}-{digest}.json"

    def load(self, project_id: str) -> ApprovalRecord:
        if project_id in self._cache:
            return self._cache[project_id]

        path = self.path_for(project_id)
        record = ApprovalRecord(project_id=project_id)
        text = read_locked(path)
        if text:
            try:
                record = ApprovalRecord.model_validate(json.loads(text))
            except (json.JSONDecodeError, ValidationError) as e:
                logger.warning(f"Ignoring corrupt approval file {path}: {e}")
                record = ApprovalRecord(project_id=project_id)

        self._cache[project_id] = record
        return record

    def save(self, record: ApprovalRecord) -> None:
        path = self.path_for(record.project_id)
        write_atomic(path, record.model_dump_json(indent=2) + "\n", mode=0o600)
        self._cache[record.project_id] = record
        logger.debug(f"Saved {len(record.approvals)} approvals to {path}")


def console_prompt(project: str, commands: list[str]) -> str:
    """Ask on the terminal whether `commands` may run. Returns the raw answer."""
    console = Console(stderr=True)
    console.print()
    console.print(f"[bold yellow]The following hook commands need approval for {project}:[/bold yellow]")
    for index, command in enumerate(commands, start=1):
        console.print(f"  {index}. {command}")
    console.print()
    try:
        return click.prompt(
            "Approve these commands? [y/N/a] (y=this run, a=always)",
            default="n",
            show_default=False,
            err=True,
        )
    except click.Abort:
        return "n"


class ApprovalGate:
    """Decides whether hook commands may run for a project."""

    def __init__(
        self,
        store: ApprovalStore,
        auto_approve: bool = False,
        prompt: Optional[Prompt] = None,
    ):
        """
        Args:
            store: Where persistent approvals live.
            auto_approve: Persist approval of every requested command
                without prompting (the -y flag).
            prompt: Callable asking the user; defaults to a terminal prompt.
        """
        self.store = store
        self.auto_approve = auto_approve
        self.prompt = prompt or console_prompt
        self._session: set[tuple[str, str]] = set()

    def is_approved(self, project_id: str, command: str) -> bool:
        key = fingerprint(command)
        if (project_id, key) in self._session:
            return True
        return self.store.load(project_id).has(key)

    def approve(self, project_id: str, command: str) -> None:
        self.approve_all(project_id, [command])

    def approve_all(self, project_id: str, commands: Iterable[str]) -> None:
        record = self.store.load(project_id)
        for command in commands:
            record.add(fingerprint(command), command)
        self.store.save(record)
        logger.info(f"Approved hook commands for {project_id}")

    def revoke(self, project_id: str, command: str) -> bool:
        """Revoke one command. Returns False if it was not approved."""
        record = self.store.load(project_id)
        key = fingerprint(command)
        self._session.discard((project_id, key))
        removed = record.remove(key)
        if removed:
            self.store.save(record)
        return removed

    def revoke_all(self, project_id: str) -> int:
        """Revoke every approval for a project. Returns how many were removed."""
        record = self.store.load(project_id)
        count = len(record.approvals)
        record.approvals.clear()
        self.store.save(record)
        self._session = {entry for entry in self._session if entry[0] != project_id}
        return count

    def list_approved(self, project_id: str) -> list[ApprovedCommand]:
        return list(self.store.load(project_id).approvals.values())

    def unapproved(self, project_id: str, commands: Iterable[str]) -> list[str]:
        pending: list[str] = []
        for command in commands:
            if command not in pending and not self.is_approved(project_id, command):
                pending.append(command)
        return pending

    def request(self, project_id: str, commands: Iterable[str]) -> None:
        """
        Make sure every command is approved, asking the user if needed.

        Answers: ``y`` approves for this process only, ``a`` approves and
        persists, anything else denies.

        Raises:
            ApprovalDeniedError: If the user denies the pending commands.
        """
        pending = self.unapproved(project_id, commands)
        if not pending:
            return

        if self.auto_approve:
            self.approve_all(project_id, pending)
            return

        answer = self.prompt(project_id, pending).strip().lower()
        if answer in ("y", "yes"):
            self._session.update((project_id, fingerprint(c)) for c in pending)
            return
        if answer in ("a", "always"):
            self.approve_all(project_id, pending)
            return

        logger.info(f"User declined hook commands for {project_id}")
        raise ApprovalDeniedError(project_id, pending)
