# actions/base.py
from __future__ import annotations

import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional, Tuple

from ..events import Event
from ..model import Job


# ---------------------------------------------------------------------
# Reusable actions
# ---------------------------------------------------------------------
# An action is a named step kind (`uses: lint`) that compiles its resolved
# inputs into a plain shell command. The executor only ever runs shell
# commands; actions never talk to registries or clusters themselves.
# ---------------------------------------------------------------------

TOOL_HINTS = {
    "npm": "Install Node.js (includes npm) or fix PATH.",
    "node": "Install Node.js or fix PATH.",
    "pytest": "Install pytest (e.g., pip install pytest).",
    "ruff": "Install ruff (e.g., pip install ruff).",
    "docker": "Install Docker and ensure the daemon is running.",
    "git": "Install Git or fix PATH.",
    "python3": "Install Python 3 or fix PATH (python3).",
}


@dataclass(frozen=True)
class ActionContext:
    job: Job
    event: Event
    workspace: Path
    cwd: Optional[str] = None
    env_keys: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ActionCommand:
    run: str
    env: Dict[str, str] = field(default_factory=dict)


ActionBuilder = Callable[[Mapping[str, str], ActionContext], ActionCommand]


@dataclass(frozen=True)
class Action:
    name: str
    build: ActionBuilder
    required: Tuple[str, ...] = ()
    description: str = ""


_REGISTRY: Dict[str, Action] = {}
_ALIASES: Dict[str, str] = {}


def action_name(uses: str) -> str:
    """Canonical registry name for a `uses` reference (version suffix dropped)."""
    name = uses.split("@", 1)[0].strip()
    return _ALIASES.get(name, name)


def register_action(
    name: str,
    build: ActionBuilder,
    *,
    required: Tuple[str, ...] = (),
    aliases: Tuple[str, ...] = (),
    description: str = "",
) -> Action:
    action = Action(name=name, build=build, required=tuple(required), description=description)
    _REGISTRY[name] = action
    for alias in aliases:
        _ALIASES[alias] = name
    return action


def get_action(uses: str) -> Optional[Action]:
    return _REGISTRY.get(action_name(uses))


def known_actions() -> List[str]:
    return sorted(_REGISTRY)


# ---------------------------------------------------------------------
# Shell helpers shared by the built-in actions
# ---------------------------------------------------------------------

def require_tool(tool: str) -> str:
    """Shell snippet that exits 127 with an install hint when `tool` is missing."""
    hint = TOOL_HINTS.get(tool, f"Install {tool} or fix PATH.")
    msg = f"{tool} is not available. Hint: {hint}"
    return f"command -v {shlex.quote(tool)} >/dev/null 2>&1 || {{ echo {shlex.quote(msg)} >&2; exit 127; }}"


def split_list(value: Optional[str]) -> List[str]:
    """Split a multi-line or comma separated input into clean items."""
    if not value:
        return []
    items: List[str] = []
    for line in value.replace(",", "\n").splitlines():
        line = line.strip()
        if line:
            items.append(line)
    return items


def as_bool(value: Optional[str], default: bool = False) -> bool:
    if value is None or value == "":
        return default
    return str(value).strip().lower() in ("1", "true", "yes", "on")
