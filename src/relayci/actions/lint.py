# actions/lint.py
from __future__ import annotations

import shlex
from typing import List, Mapping

from ..model import Step
from .base import ActionCommand, ActionContext, register_action, require_tool, split_list


def lint_step(
    name: str,
    tool: str,
    args: str | None = None,
    *,
    cwd: str | None = None,
    files: List[str] | None = None,
) -> Step:
    """Create a lint step that runs a linting tool."""
    inputs = {"tool": tool}
    if args:
        inputs["args"] = args
    if files:
        inputs["files"] = "\n".join(files)
    return Step(name=name, uses="lint", inputs=inputs, cwd=cwd)


def build_lint(inputs: Mapping[str, str], ctx: ActionContext) -> ActionCommand:
    tool = inputs["tool"]
    cmd = [tool, *shlex.split(inputs.get("args") or ""), *split_list(inputs.get("files"))]
    return ActionCommand(run=f"{require_tool(tool)} && {shlex.join(cmd)}")


register_action(
    "lint",
    build_lint,
    required=("tool",),
    description="Run a linter after checking that it is installed",
)
