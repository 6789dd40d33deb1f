# model.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from fnmatch import fnmatch
from typing import Any, Dict, List, Optional, Tuple

from .events import Event


@dataclass(frozen=True)
class Step:
    """
    A single unit of work inside a job.

    Exactly one of `run` (shell command) or `uses` (reusable action) is set.
    `inputs` are the action parameters (`with:` in YAML pipelines).
    """
    name: str
    run: Optional[str] = None
    uses: Optional[str] = None
    inputs: Dict[str, str] = field(default_factory=dict)
    env: Dict[str, str] = field(default_factory=dict)
    cwd: Optional[str] = None
    timeout: Optional[float] = None  # seconds


@dataclass
class Job:
    """
    A CI job: ordered steps + dependencies + what it is allowed to read.

    `secrets` is the job's declared secret scope; steps can only resolve
    secrets listed here. `optional` jobs do not gate the overall result.
    """
    name: str
    steps: List[Step]
    needs: List[str] = field(default_factory=list)
    env: Dict[str, str] = field(default_factory=dict)
    secrets: List[str] = field(default_factory=list)
    permissions: Dict[str, str] = field(default_factory=dict)
    runs_on: str = "local"
    optional: bool = False
    timeout: Optional[float] = None  # default step timeout for this job
    display_name: Optional[str] = None

    @property
    def docker_image(self) -> Optional[str]:
        prefix = "docker://"
        if self.runs_on.startswith(prefix):
            return self.runs_on[len(prefix):]
        return None


@dataclass(frozen=True)
class Trigger:
    """Event filter: event name plus optional branch glob patterns."""
    event: str
    branches: Tuple[str, ...] = ()

    def matches(self, event: Event) -> bool:
        if event.name != self.event:
            return False
        if not self.branches:
            return True
        # pull requests are filtered on the branch they target
        branch = event.base_ref if (event.name == "pull_request" and event.base_ref) else event.branch
        if branch.startswith("refs/heads/"):
            branch = branch[len("refs/heads/"):]
        return any(fnmatch(branch, p) for p in self.branches)


@dataclass
class Pipeline:
    name: str
    jobs: List[Job]
    triggers: List[Trigger] = field(default_factory=list)
    env: Dict[str, str] = field(default_factory=dict)

    def is_triggered_by(self, event: Event) -> bool:
        if not self.triggers:
            return True
        return any(t.matches(event) for t in self.triggers)

    def job(self, name: str) -> Job:
        for j in self.jobs:
            if j.name == name:
                return j
        raise KeyError(name)


@dataclass(frozen=True)
class Secret:
    name: str
    value: str = field(repr=False)


# ----------------------------------------------------------------------
# Run state
# ----------------------------------------------------------------------

class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"
    CANCELLED = "cancelled"

    @property
    def terminal(self) -> bool:
        return self not in (JobStatus.PENDING, JobStatus.RUNNING)


class RunStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    CANCELLED = "cancelled"
    NOT_TRIGGERED = "not_triggered"


@dataclass
class StepResult:
    name: str
    status: JobStatus
    exit_code: Optional[int] = None
    stdout: str = ""
    stderr: str = ""
    duration: float = 0.0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status.value,
            "exit_code": self.exit_code,
            "stdout": self.stdout,
            "stderr": self.stderr,
            "duration": round(self.duration, 3),
            "error": self.error,
        }


@dataclass
class JobResult:
    name: str
    status: JobStatus
    optional: bool = False
    steps: List[StepResult] = field(default_factory=list)
    error: Optional[str] = None   # first failing step's error detail
    reason: Optional[str] = None  # why the job was skipped
    permissions: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status.value,
            "optional": self.optional,
            "error": self.error,
            "reason": self.reason,
            "permissions": dict(self.permissions),
            "steps": [s.to_dict() for s in self.steps],
        }


@dataclass
class RunResult:
    run_id: str
    pipeline: str
    event: Event
    status: RunStatus
    jobs: Dict[str, JobResult] = field(default_factory=dict)
    started_at: Optional[str] = None   # ISO-8601, UTC
    finished_at: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status in (RunStatus.SUCCESS, RunStatus.NOT_TRIGGERED)

    @property
    def failed_jobs(self) -> List[JobResult]:
        return [j for j in self.jobs.values() if j.status == JobStatus.FAILED]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "pipeline": self.pipeline,
            "status": self.status.value,
            "event": self.event.to_dict(),
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "jobs": {name: j.to_dict() for name, j in self.jobs.items()},
        }
