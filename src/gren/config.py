"""
Configuration management for gren.

Configuration is read from two TOML files:
1. ~/.config/gren/config.toml (or $XDG_CONFIG_HOME/gren/config.toml), user level
2. <main worktree>/.gren/config.toml, project level

Project values override user values. Hooks are not overridden: user hooks
run first, then project hooks.
"""

import logging
import os
from pathlib import Path
from typing import Any, Optional, Union

import toml
from pydantic import BaseModel, Field, ValidationError

from gren.exceptions import ConfigError
from gren.models.hooks import HookType

logger = logging.getLogger(__name__)

APP_NAME = "gren"
PROJECT_CONFIG_DIR = ".gren"
CONFIG_FILE_NAME = "config.toml"


def _xdg_dir(variable: str, fallback: str) -> Path:
    base = os.environ.get(variable)
    root = Path(base) if base else Path.home() / fallback
    return root / APP_NAME


def user_config_dir() -> Path:
    return _xdg_dir("XDG_CONFIG_HOME", ".config")


def user_data_dir() -> Path:
    return _xdg_dir("XDG_DATA_HOME", ".local/share")


def user_state_dir() -> Path:
    return _xdg_dir("XDG_STATE_HOME", ".local/state")


def user_config_file() -> Path:
    return user_config_dir() / CONFIG_FILE_NAME


def project_config_file(repo_root: Path) -> Path:
    return Path(repo_root) / PROJECT_CONFIG_DIR / CONFIG_FILE_NAME


class HookEntry(BaseModel):
    """One entry of a named hook list."""

    name: Optional[str] = Field(default=None, description="Name shown in output")
    command: str = Field(..., min_length=1, description="Shell command or script path")
    branches: list[str] = Field(
        default_factory=list,
        description="Glob patterns restricting the hook to matching branches",
    )
    disabled: bool = Field(default=False, description="Skip this hook")
    background: bool = Field(
        default=False, description="Run detached without waiting (post-start only)"
    )


# A hook type maps to a single command string or a list of entries.
HookValue = Union[str, list[Union[str, HookEntry]]]


class MergeConfig(BaseModel):
    """Defaults for `gren merge`."""

    squash: bool = Field(default=True, description="Squash commits before merging")
    rebase: bool = Field(default=True, description="Rebase onto the target before merging")
    remove: bool = Field(default=True, description="Remove the worktree after merging")
    verify: bool = Field(default=True, description="Run pre/post merge and remove hooks")


class CommitGenerationConfig(BaseModel):
    """External command that writes squash commit messages."""

    command: Optional[str] = Field(
        default=None,
        description="Shell command reading a prompt on stdin and printing a message",
    )


class GrenConfig(BaseModel):
    """Main configuration model for gren."""

    worktree_dir: Optional[str] = Field(
        default=None,
        description="Directory for new worktrees; supports {{ repo }}",
    )
    git_timeout: float = Field(
        default=5.0, gt=0, description="Seconds allowed for read-only git queries"
    )
    merge: MergeConfig = Field(default_factory=MergeConfig)
    commit_generation: CommitGenerationConfig = Field(
        default_factory=CommitGenerationConfig
    )
    hooks: dict[HookType, HookValue] = Field(
        default_factory=dict, description="Project hooks keyed by hook type"
    )
    user_hooks: dict[HookType, HookValue] = Field(
        default_factory=dict,
        exclude=True,
        description="Hooks from the user config file; they run before project hooks",
    )

    def hook_layers(self) -> list[dict[HookType, HookValue]]:
        """Hook tables in execution order."""
        return [self.user_hooks, self.hooks]


def _read_config_file(path: Path) -> dict[str, Any]:
    """Parse and validate one TOML file. Missing files yield an empty dict."""
    if not path.exists():
        return {}

    try:
        data = toml.load(path)
    except (toml.TomlDecodeError, OSError) as e:
        raise ConfigError(f"Could not read configuration file {path}: {e}") from e

    data.pop("user_hooks", None)
    try:
        GrenConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {path}:\n{e}") from e

    logger.debug(f"Loaded configuration from {path}")
    return data


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(
    repo_root: Optional[Path] = None,
    user_config_path: Optional[Path] = None,
) -> GrenConfig:
    """
    Load user and project configuration.

    Args:
        repo_root: Main worktree of the repository. Without it only the
            user file is read.
        user_config_path: Override for the user config file location.

    Returns:
        GrenConfig with merged values, or defaults when no file exists.

    Raises:
        ConfigError: If a file exists but cannot be parsed or validated.
    """
    user_data = _read_config_file(user_config_path or user_config_file())
    project_data = (
        _read_config_file(project_config_file(repo_root)) if repo_root else {}
    )

    user_hooks = user_data.pop("hooks", {})
    project_hooks = project_data.pop("hooks", {})

    merged = _deep_merge(user_data, project_data)
    try:
        return GrenConfig(**merged, hooks=project_hooks, user_hooks=user_hooks)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration:\n{e}") from e
