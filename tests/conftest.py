"""Shared test fixtures and helpers."""

from __future__ import annotations

import pytest

from relayci.events import Event
from relayci.model import Job, Pipeline, Step
from relayci.ui.console import Console, set_console


def make_event(
    *,
    name: str = "push",
    ref: str = "refs/heads/main",
    sha: str = "0123456789abcdef0123456789abcdef01234567",
    actor: str = "octocat",
    repository: str = "acme/app",
    base_ref: str | None = None,
) -> Event:
    """Build an Event without touching git."""
    return Event(name=name, ref=ref, sha=sha, actor=actor, repository=repository, base_ref=base_ref)


def make_job(name: str, *cmds: str, needs: list[str] | None = None, **kwargs) -> Job:
    """One shell step per command: make_job("a", "echo hi", needs=["b"])."""
    steps = [Step(name=f"step{i + 1}", run=cmd) for i, cmd in enumerate(cmds or ("true",))]
    return Job(name=name, steps=steps, needs=list(needs or []), **kwargs)


def make_pipeline(*jobs: Job, name: str = "test", **kwargs) -> Pipeline:
    return Pipeline(name=name, jobs=list(jobs), **kwargs)


@pytest.fixture(autouse=True)
def quiet_console():
    console = Console(quiet=True)
    set_console(console)
    return console


@pytest.fixture
def event() -> Event:
    return make_event()
