# dsl.py
from __future__ import annotations

from dataclasses import replace
from typing import Dict, List, Optional

from .model import Job, Pipeline, Step, Trigger


# ---------------------------------------------------------------------
# Step helpers
# ---------------------------------------------------------------------

def sh(
    name: str,
    cmd: str,
    *,
    cwd: str | None = None,
    env: Optional[Dict[str, str]] = None,
    timeout: float | None = None,
) -> Step:
    """Create a shell step."""
    return Step(name=name, run=cmd, cwd=cwd, env=dict(env or {}), timeout=timeout)


def uses(
    name: str,
    action: str,
    *,
    cwd: str | None = None,
    env: Optional[Dict[str, str]] = None,
    timeout: float | None = None,
    **inputs: str,
) -> Step:
    """Create a step that runs a registered action: uses("Lint", "lint", tool="ruff")."""
    return Step(
        name=name,
        uses=action,
        inputs={k: str(v) for k, v in inputs.items()},
        cwd=cwd,
        env=dict(env or {}),
        timeout=timeout,
    )


# ---------------------------------------------------------------------
# Job helper
# ---------------------------------------------------------------------

def job(
    name: str,
    *steps: Step,  # allow: job("x", sh(...), sh(...))
    steps_list: Optional[List[Step]] = None,  # allow: job("x", steps_list=[...])
    needs: Optional[List[str]] = None,
    env: Optional[Dict[str, str]] = None,
    secrets: Optional[List[str]] = None,
    permissions: Optional[Dict[str, str]] = None,
    runs_on: str = "local",
    optional: bool = False,
    timeout: float | None = None,
    cwd: str | None = None,  # default cwd applied to steps missing cwd
) -> Job:
    steps_final: List[Step] = []
    if steps_list:
        steps_final.extend(steps_list)
    steps_final.extend(steps)

    if not steps_final:
        raise ValueError(f"job({name!r}) must have at least one step")

    if cwd is not None:
        steps_final = [s if s.cwd is not None else replace(s, cwd=cwd) for s in steps_final]

    return Job(
        name=name,
        steps=steps_final,
        needs=list(needs or []),
        env={k: str(v) for k, v in (env or {}).items()},
        secrets=list(secrets or []),
        permissions=dict(permissions or {}),
        runs_on=runs_on,
        optional=optional,
        timeout=timeout,
    )


# ---------------------------------------------------------------------
# Triggers
# ---------------------------------------------------------------------

def on_push(*branches: str) -> Trigger:
    return Trigger(event="push", branches=tuple(branches))


def on_pull_request(*branches: str) -> Trigger:
    return Trigger(event="pull_request", branches=tuple(branches))


def on_manual() -> Trigger:
    return Trigger(event="manual")


# ---------------------------------------------------------------------
# Pipeline helper (single-file story)
# ---------------------------------------------------------------------

def wf(
    name: str,
    *jobs: Job,
    on: Optional[List[Trigger]] = None,
    env: Optional[Dict[str, str]] = None,
) -> Pipeline:
    """
    Pipeline definition helper. Named `wf` so a pipeline file can define its
    own `def pipeline(): ...` without shadowing it.

        from relayci import wf, job, sh, on_push

        def pipeline():
            return wf(
                "build",
                job("test", sh("Unit tests", "pytest -q")),
                on=[on_push("main")],
            )

    Or define PIPELINE = wf(...) directly.
    """
    return Pipeline(
        name=name,
        jobs=list(jobs),
        triggers=list(on or []),
        env={k: str(v) for k, v in (env or {}).items()},
    )
