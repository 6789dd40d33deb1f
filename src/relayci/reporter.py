# reporter.py
from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from .events import Event
from .model import JobResult, JobStatus, Pipeline, RunResult, RunStatus
from .scheduler import JobOutcome


def now_utc() -> str:
    return datetime.now(timezone.utc).isoformat()


def overall_status(jobs: Iterable[JobResult], *, cancelled: bool = False) -> RunStatus:
    """A run succeeds when every non-optional job succeeded."""
    if cancelled:
        return RunStatus.CANCELLED
    required = [j for j in jobs if not j.optional]
    if all(j.status == JobStatus.SUCCEEDED for j in required):
        return RunStatus.SUCCESS
    return RunStatus.FAILURE


class RunSink:
    """Destination for the one durable record written per run."""

    def write(self, result: RunResult) -> None:
        raise NotImplementedError


class JsonFileSink(RunSink):
    """
    One JSON document per run:
      directory/<run_id>.json
    """

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)

    def path_for(self, run_id: str) -> Path:
        return self.directory / f"{run_id}.json"

    def write(self, result: RunResult) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.path_for(result.run_id)
        tmp = path.with_suffix(".json.tmp")
        try:
            tmp.write_text(
                json.dumps(result.to_dict(), sort_keys=True, indent=2, ensure_ascii=False),
                encoding="utf-8",
            )
            tmp.replace(path)
        finally:
            if tmp.exists():
                tmp.unlink(missing_ok=True)


class RunReporter:
    def __init__(self, sinks: Optional[List[RunSink]] = None):
        self.sinks = list(sinks or [])

    def build(
        self,
        *,
        run_id: str,
        pipeline: Pipeline,
        event: Event,
        outcomes: Dict[str, JobOutcome],
        cancelled: bool = False,
        started_at: Optional[str] = None,
        finished_at: Optional[str] = None,
    ) -> RunResult:
        """Aggregate per-job outcomes (pipeline order) into one RunResult."""
        jobs: Dict[str, JobResult] = {}
        for job in pipeline.jobs:
            outcome = outcomes.get(job.name) or JobOutcome(status=JobStatus.SKIPPED, reason="not scheduled")
            jobs[job.name] = JobResult(
                name=job.name,
                status=outcome.status,
                optional=job.optional,
                steps=list(outcome.steps),
                error=outcome.error,
                reason=outcome.reason,
                permissions=dict(job.permissions),
            )

        return RunResult(
            run_id=run_id,
            pipeline=pipeline.name,
            event=event,
            status=overall_status(jobs.values(), cancelled=cancelled),
            jobs=jobs,
            started_at=started_at,
            finished_at=finished_at or now_utc(),
        )

    def not_triggered(self, *, run_id: str, pipeline: Pipeline, event: Event) -> RunResult:
        ts = now_utc()
        return RunResult(
            run_id=run_id,
            pipeline=pipeline.name,
            event=event,
            status=RunStatus.NOT_TRIGGERED,
            jobs={
                j.name: JobResult(
                    name=j.name,
                    status=JobStatus.SKIPPED,
                    optional=j.optional,
                    reason="not triggered",
                    permissions=dict(j.permissions),
                )
                for j in pipeline.jobs
            },
            started_at=ts,
            finished_at=ts,
        )

    def emit(self, result: RunResult) -> None:
        for sink in self.sinks:
            sink.write(result)
