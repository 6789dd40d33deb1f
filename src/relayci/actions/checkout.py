# actions/checkout.py
from __future__ import annotations

import shlex
from typing import Mapping, Optional

from ..model import Step
from .base import ActionCommand, ActionContext, register_action, require_tool


def checkout_step(
    name: str = "Checkout",
    *,
    repository: str | None = None,
    ref: str | None = None,
    path: str | None = None,
) -> Step:
    """Create a checkout step (defaults to the triggering commit)."""
    inputs = {}
    if repository:
        inputs["repository"] = repository
    if ref:
        inputs["ref"] = ref
    if path:
        inputs["path"] = path
    return Step(name=name, uses="checkout", inputs=inputs)


def _repo_dir_name(repo_url: str) -> str:
    return repo_url.rstrip("/").split("/")[-1].replace(".git", "")


def build_checkout(inputs: Mapping[str, str], ctx: ActionContext) -> ActionCommand:
    """
    Without `repository`, the workspace already is the checkout: only verify
    that the wanted commit is present. With `repository`, clone (or fetch)
    it into `path` and check out `ref`.
    """
    ref: Optional[str] = inputs.get("ref") or ctx.event.sha
    repo = inputs.get("repository")
    q = shlex.quote

    if not repo:
        missing = f"checkout: commit {ref} is not present in the workspace"
        run = (
            f"{require_tool('git')} && "
            f"git rev-parse --verify --quiet {q(ref + '^{commit}')} >/dev/null "
            f"|| {{ echo {q(missing)} >&2; exit 1; }}"
        )
        return ActionCommand(run=run)

    path = inputs.get("path") or _repo_dir_name(repo)
    run = (
        f"{require_tool('git')} && "
        f"if [ -d {q(path)}/.git ]; then git -C {q(path)} fetch --quiet origin; "
        f"else git clone --quiet {q(repo)} {q(path)}; fi && "
        f"git -C {q(path)} checkout --quiet {q(ref)}"
    )
    return ActionCommand(run=run)


register_action(
    "checkout",
    build_checkout,
    aliases=("actions/checkout",),
    description="Verify or check out the commit under test",
)
