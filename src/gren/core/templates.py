"""
Placeholder expansion for hook and for-each commands.

Placeholders look like ``{{ branch }}`` or ``{{ branch | sanitize | hash_port }}``.
A token naming an unknown variable or filter is left untouched.
"""

import hashlib
import re
from typing import Callable, Mapping, Union

from gren.models.hooks import HookContext

VARIABLES = frozenset(
    {
        "hook_type",
        "branch",
        "worktree",
        "worktree_name",
        "repo",
        "repo_root",
        "commit",
        "short_commit",
        "default_branch",
        "target_branch",
        "base_branch",
        "execute_cmd",
    }
)

PORT_RANGE_START = 10000
PORT_RANGE_SIZE = 10000

_UNSAFE_PATH_CHARS = re.compile(r'[/\\:*?"<>|\s]')
_TOKEN = re.compile(
    r"\{\{\s*(?P<name>[A-Za-z_][A-Za-z0-9_]*)\s*"
    r"(?P<filters>(?:\|\s*[A-Za-z_][A-Za-z0-9_]*\s*)*)\}\}"
)


def sanitize(value: str) -> str:
    """Replace characters that are unsafe in file names with '-'."""
    return _UNSAFE_PATH_CHARS.sub("-", value)


def hash_port(value: str) -> str:
    """Map a string to a stable port number in [10000, 20000)."""
    digest = hashlib.sha256(value.encode("utf-8")).hexdigest()
    return str(PORT_RANGE_START + int(digest[:8], 16) % PORT_RANGE_SIZE)


FILTERS: dict[str, Callable[[str], str]] = {
    "sanitize": sanitize,
    "hash_port": hash_port,
}


def expand(template: str, context: Union[HookContext, Mapping[str, str]]) -> str:
    """
    Expand every ``{{ variable | filter ... }}`` token in `template`.

    Args:
        template: Command string containing placeholders.
        context: A HookContext, or a plain mapping of variable values.

    Returns:
        The expanded string. Known variables without a value expand to ''.
    """
    values = context.variables() if isinstance(context, HookContext) else dict(context)

    def replace(match: "re.Match[str]") -> str:
        name = match.group("name")
        if name not in VARIABLES and name not in values:
            return match.group(0)

        filters = [part.strip() for part in match.group("filters").split("|")[1:]]
        if any(f not in FILTERS for f in filters):
            return match.group(0)

        result = str(values.get(name) or "")
        for f in filters:
            result = FILTERS[f](result)
        return result

    return _TOKEN.sub(replace, template)
