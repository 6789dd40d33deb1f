# scheduler.py
from __future__ import annotations

import os
import threading
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from .dag import Dag
from .model import JobStatus, StepResult
from .ui.console import Console, get_console


@dataclass
class JobOutcome:
    """What a job worker hands back to the scheduler."""
    status: JobStatus
    steps: List[StepResult] = field(default_factory=list)
    error: Optional[str] = None
    reason: Optional[str] = None


RunJobFn = Callable[[str], JobOutcome]


def default_workers() -> int:
    c = os.cpu_count() or 2
    return max(1, c - 1)


class Scheduler:
    """
    Dispatches jobs whose dependencies all succeeded, at most `max_workers`
    at a time, and keeps every job's status.

    Only the thread calling run() writes `status`; workers just return a
    JobOutcome.
    """

    def __init__(
        self,
        dag: Dag,
        run_job: RunJobFn,
        *,
        max_workers: int | None = None,
        cancel_event: Optional[threading.Event] = None,
        console: Optional[Console] = None,
    ):
        self.dag = dag
        self.run_job = run_job
        self.max_workers = max(1, max_workers or default_workers())
        self.cancel_event = cancel_event or threading.Event()
        self.console = console or get_console()
        self.status: Dict[str, JobStatus] = {name: JobStatus.PENDING for name in dag.jobs}
        self.outcomes: Dict[str, JobOutcome] = {}

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def cancel(self) -> None:
        self.cancel_event.set()

    # ------------------------------------------------------------------

    def _finish(self, name: str, outcome: JobOutcome) -> None:
        self.status[name] = outcome.status
        self.outcomes[name] = outcome

    def _skip_downstream(self, name: str) -> None:
        upstream = self.status[name].value
        for dep in sorted(self.dag.dependents(name)):
            if self.status[dep] != JobStatus.PENDING:
                continue
            reason = f"dependency '{name}' {upstream}"
            self._finish(dep, JobOutcome(status=JobStatus.SKIPPED, reason=reason))
            self.console.print_job_skipped(dep, reason)

    def _run_one(self, name: str) -> JobOutcome:
        try:
            return self.run_job(name)
        except Exception as e:
            return JobOutcome(status=JobStatus.FAILED, error=f"{type(e).__name__}: {e}")

    # ------------------------------------------------------------------

    def run(self) -> Dict[str, JobOutcome]:
        indeg = dict(self.dag.indeg)
        ready: List[str] = self.dag.roots()
        in_flight: Dict[Future, str] = {}

        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="relayci-job") as pool:
            while ready or in_flight:
                # dispatch up to the concurrency limit
                while ready and len(in_flight) < self.max_workers and not self.cancelled:
                    name = ready.pop(0)
                    if self.status[name] != JobStatus.PENDING:
                        continue
                    self.status[name] = JobStatus.RUNNING
                    self.console.print_job_start(name)
                    in_flight[pool.submit(self._run_one, name)] = name

                if not in_flight:
                    break

                done, _ = wait(list(in_flight), return_when=FIRST_COMPLETED)
                for fut in sorted(done, key=lambda f: in_flight[f]):
                    name = in_flight.pop(fut)
                    outcome = fut.result()
                    self._finish(name, outcome)
                    self.console.print_job_finished(name, outcome.status, outcome.error)

                    if outcome.status == JobStatus.SUCCEEDED:
                        for child in sorted(self.dag.adj[name]):
                            indeg[child] -= 1
                            if indeg[child] == 0 and self.status[child] == JobStatus.PENDING:
                                ready.append(child)
                    else:
                        self._skip_downstream(name)

        # cancelled before dispatch
        for name, status in self.status.items():
            if status == JobStatus.PENDING:
                reason = "run cancelled" if self.cancelled else "not scheduled"
                self._finish(name, JobOutcome(status=JobStatus.SKIPPED, reason=reason))
                self.console.print_job_skipped(name, reason)

        return dict(self.outcomes)
