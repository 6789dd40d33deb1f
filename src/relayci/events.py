# events.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from .git_facts import git


@dataclass(frozen=True)
class Event:
    """
    The triggering event of one pipeline run.

    Built once before the run starts and handed to the scheduler and the
    context provider; nothing mutates it afterwards.
    """
    name: str
    ref: str
    sha: str
    actor: str
    repository: str = ""
    base_ref: Optional[str] = None

    @property
    def branch(self) -> str:
        prefix = "refs/heads/"
        return self.ref[len(prefix):] if self.ref.startswith(prefix) else self.ref

    def context(self) -> Dict[str, str]:
        return {
            "event_name": self.name,
            "ref": self.ref,
            "ref_name": self.branch,
            "sha": self.sha,
            "actor": self.actor,
            "repository": self.repository,
            "base_ref": self.base_ref or "",
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "ref": self.ref,
            "sha": self.sha,
            "actor": self.actor,
            "repository": self.repository,
            "base_ref": self.base_ref,
        }

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> Event:
        """
        Create an Event from a JSON-style payload.

        Accepts either `name` or `event` for the event type.
        """
        name = data.get("name") or data.get("event")
        if not name:
            raise ValueError("Event payload needs an 'event' (or 'name') field")
        for required in ("ref", "sha"):
            if not data.get(required):
                raise ValueError(f"Event payload is missing '{required}'")
        return cls(
            name=str(name),
            ref=_normalize_ref(str(data["ref"])),
            sha=str(data["sha"]),
            actor=str(data.get("actor") or "unknown"),
            repository=str(data.get("repository") or ""),
            base_ref=data.get("base_ref"),
        )


def _normalize_ref(ref: str) -> str:
    if ref.startswith("refs/") or ref == "HEAD":
        return ref
    return f"refs/heads/{ref}"


def event_from_git(
    name: str = "push",
    *,
    ref: Optional[str] = None,
    sha: Optional[str] = None,
    actor: Optional[str] = None,
    repository: Optional[str] = None,
    base_ref: Optional[str] = None,
) -> Event:
    """
    Build an Event, filling anything not given from the local git checkout.
    """
    if ref is None:
        ref = git.get_current_ref()
    if sha is None:
        sha = git.head_sha()
    if actor is None:
        actor = git.user_name()
    if repository is None:
        try:
            url = git.get_remote_url("origin")
            repository = git.repository_slug(url)
        except Exception:
            repository = git.repo_root().name

    return Event(
        name=name,
        ref=_normalize_ref(ref),
        sha=sha,
        actor=actor,
        repository=repository,
        base_ref=base_ref,
    )
