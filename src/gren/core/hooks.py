"""
Hook registry.

Turns the ``[hooks]`` tables of the configuration into the flat, ordered
list of HookDefinitions that apply to one lifecycle event on one branch.
"""

import fnmatch
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from gren.config import GrenConfig, HookEntry, HookValue
from gren.models.hooks import HookDefinition, HookKind, HookType

logger = logging.getLogger(__name__)

SCRIPT_EXTENSIONS = (".sh", ".bash", ".zsh", ".fish", ".py", ".rb", ".pl")


@dataclass(frozen=True)
class InlineHook:
    """A single shell command."""

    command: str


@dataclass(frozen=True)
class ScriptHook:
    """A script file, run directly with positional arguments."""

    path: str


@dataclass(frozen=True)
class NamedHooks:
    """An ordered group of named hook definitions."""

    hooks: tuple[HookDefinition, ...]


HookSpec = Union[InlineHook, ScriptHook, NamedHooks]


def resolve_script_path(command: str, repo_root: Path) -> Path:
    path = Path(command).expanduser()
    return path if path.is_absolute() else Path(repo_root) / path


def is_script_command(command: str, repo_root: Optional[Path] = None) -> bool:
    """
    Decide whether a hook command names a script file.

    A command is a script when it has no whitespace and either ends in a
    known script extension or names an executable file under `repo_root`.
    """
    command = command.strip()
    if not command or any(ch.isspace() for ch in command):
        return False
    if command.endswith(SCRIPT_EXTENSIONS):
        return True
    if repo_root is None:
        return False
    path = resolve_script_path(command, repo_root)
    return path.is_file() and os.access(path, os.X_OK)


def _definition(
    hook_type: HookType,
    item: Union[str, HookEntry],
    repo_root: Optional[Path],
) -> HookDefinition:
    if isinstance(item, str):
        item = HookEntry(command=item)
    kind = HookKind.SCRIPT if is_script_command(item.command, repo_root) else HookKind.INLINE
    return HookDefinition(
        hook_type=hook_type,
        command=item.command,
        kind=kind,
        name=item.name,
        branch_patterns=tuple(item.branches),
        disabled=item.disabled,
        background=item.background,
    )


def to_spec(hook_type: HookType, value: HookValue, repo_root: Optional[Path] = None) -> HookSpec:
    """Classify one configuration value as an inline, script or named hook."""
    if isinstance(value, str):
        if is_script_command(value, repo_root):
            return ScriptHook(path=value)
        return InlineHook(command=value)
    return NamedHooks(hooks=tuple(_definition(hook_type, item, repo_root) for item in value))


def flatten(hook_type: HookType, spec: HookSpec) -> list[HookDefinition]:
    """Expand a HookSpec into its HookDefinitions."""
    if isinstance(spec, InlineHook):
        return [HookDefinition(hook_type=hook_type, command=spec.command, kind=HookKind.INLINE)]
    if isinstance(spec, ScriptHook):
        return [HookDefinition(hook_type=hook_type, command=spec.path, kind=HookKind.SCRIPT)]
    return list(spec.hooks)


def matches_branch(definition: HookDefinition, branch: str) -> bool:
    if not definition.branch_patterns:
        return True
    return any(fnmatch.fnmatch(branch, pattern) for pattern in definition.branch_patterns)


class HookRegistry:
    """Resolves configured hooks for a lifecycle event."""

    def __init__(self, config: GrenConfig, repo_root: Optional[Path] = None):
        self.config = config
        self.repo_root = repo_root

    def specs(self, hook_type: HookType) -> list[HookSpec]:
        """Hook specs for `hook_type`, user level first."""
        return [
            to_spec(hook_type, layer[hook_type], self.repo_root)
            for layer in self.config.hook_layers()
            if hook_type in layer
        ]

    def resolve(self, hook_type: HookType, branch: str) -> list[HookDefinition]:
        """
        Enabled hook definitions for `hook_type` that apply to `branch`.

        Args:
            hook_type: Lifecycle event.
            branch: Branch the event concerns; matched against glob patterns.

        Returns:
            Definitions in configuration order.
        """
        resolved = []
        for spec in self.specs(hook_type):
            for definition in flatten(hook_type, spec):
                if definition.disabled:
                    logger.debug(f"Skipping disabled hook {definition.label}")
                    continue
                if not matches_branch(definition, branch):
                    logger.debug(f"Hook {definition.label} does not apply to {branch}")
                    continue
                resolved.append(definition)
        return resolved

    def all_commands(self) -> list[str]:
        """Every configured command, enabled or not, across all hook types."""
        commands = []
        for hook_type in HookType:
            for spec in self.specs(hook_type):
                commands.extend(d.command for d in flatten(hook_type, spec))
        return commands
