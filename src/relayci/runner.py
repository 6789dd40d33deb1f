# runner.py
from __future__ import annotations

import json
import threading
import time
import uuid
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from . import settings
from .actions import ActionContext
from .actions.docker import wrap_in_docker
from .dag import BoundJob, BoundStep, Dag, build_dag
from .errors import Cancelled, RelayError
from .events import Event
from .executor import StepExecutor
from .expressions import Reference
from .model import JobStatus, Pipeline, RunResult, StepResult
from .reporter import RunReporter, RunSink, now_utc
from .scheduler import JobOutcome, Scheduler
from .secrets import ContextProvider, MappingSecretStore, Redactor, SecretStore
from .ui.console import Console, get_console


# ----------------------------------------------------------------------
# Job worker
# ----------------------------------------------------------------------

def _compile_step(
    bstep: BoundStep,
    resolve,
    ctx: ActionContext,
) -> Tuple[str, Dict[str, str]]:
    """Return (shell command, extra env) for a step."""
    if bstep.run is not None:
        return bstep.run.render(resolve), {}
    inputs = {k: t.render(resolve) for k, t in bstep.inputs.items()}
    command = bstep.action.build(inputs, ctx)
    return command.run, dict(command.env)


def _failed_step(name: str, err: BaseException, redact: Redactor) -> StepResult:
    status = JobStatus.CANCELLED if isinstance(err, Cancelled) else JobStatus.FAILED
    if isinstance(err, RelayError):
        message = str(err)
    else:
        message = f"{type(err).__name__}: {err}"
    return StepResult(
        name=name,
        status=status,
        exit_code=getattr(err, "exit_code", None),
        stdout=redact(getattr(err, "stdout", "")),
        stderr=redact(getattr(err, "stderr", "")),
        error=redact(message),
    )


def run_job(
    bound: BoundJob,
    provider: ContextProvider,
    executor: StepExecutor,
    *,
    default_timeout: Optional[float] = settings.STEP_TIMEOUT,
    console: Optional[Console] = None,
) -> JobOutcome:
    """
    Run a job's steps strictly in order. The first failing step stops the
    job; the steps after it are recorded as skipped.
    """
    console = console or get_console()
    job = bound.job
    redact = Redactor()
    results: List[StepResult] = []
    env_values: Dict[str, str] = {}

    def resolve(ref: Reference) -> str:
        if ref.namespace == "secrets":
            value = provider.secret(job, ref.key).value
            redact.add(value)
            return value
        if ref.namespace == "github":
            return provider.context(ref.key)
        return env_values[ref.key]

    status = JobStatus.SUCCEEDED
    error: Optional[str] = None

    try:
        job_env = {k: t.render(resolve) for k, t in bound.env.items()}
    except RelayError as e:
        job_env = {}
        status, error = JobStatus.FAILED, redact(str(e))

    for bstep in bound.steps:
        if status != JobStatus.SUCCEEDED:
            results.append(StepResult(name=bstep.name, status=JobStatus.SKIPPED))
            continue

        step = bstep.step
        console.print_step(job.name, step.name)
        try:
            if executor.cancel_event.is_set():
                raise Cancelled(job=job.name, step=step.name)

            step_env = {k: t.render(resolve) for k, t in bstep.env.items()}
            env_values = {**job_env, **step_env}

            context_env = {
                **provider.context_env(),
                "RELAYCI_PERMISSIONS": json.dumps(job.permissions, sort_keys=True),
            }
            ctx = ActionContext(
                job=job,
                event=provider.event,
                workspace=executor.workspace,
                cwd=step.cwd,
                env_keys=tuple([*context_env, *env_values]),
            )
            cmd, extra_env = _compile_step(bstep, resolve, ctx)

            if job.docker_image and bstep.run is not None:
                cmd = wrap_in_docker(
                    cmd,
                    job.docker_image,
                    workspace=executor.workspace,
                    cwd=step.cwd,
                    env_keys=[*context_env, *env_values, *extra_env],
                )
                cwd = None
            else:
                cwd = step.cwd

            env = provider.host_env()
            env.update(context_env)
            env.update(env_values)
            env.update(extra_env)

            result = executor.execute(
                job.name,
                step.name,
                cmd,
                env=env,
                cwd=cwd,
                timeout=step.timeout or job.timeout or default_timeout,
                redact=redact,
            )
            results.append(result)
            console.print_step_output(job.name, step.name, result.stdout, result.stderr)
        except Exception as e:
            failed = _failed_step(step.name, e, redact)
            results.append(failed)
            console.print_failure(f"{job.name}/{step.name}", failed.error or "", exit_code=failed.exit_code)
            console.print_step_output(job.name, step.name, failed.stdout, failed.stderr)
            status, error = failed.status, failed.error

    return JobOutcome(status=status, steps=results, error=error)


# ----------------------------------------------------------------------
# Pipeline run
# ----------------------------------------------------------------------

class PipelineRunner:
    """
    One run of a pipeline for one event.

    cancel() may be called from any thread (or a signal handler); running
    steps are terminated and their jobs end up cancelled.
    """

    def __init__(
        self,
        pipeline: Pipeline,
        event: Event,
        *,
        secrets: Optional[SecretStore] = None,
        workspace: str | Path = ".",
        max_workers: int | None = settings.WORKERS,
        step_timeout: Optional[float] = settings.STEP_TIMEOUT,
        sinks: Optional[List[RunSink]] = None,
        console: Optional[Console] = None,
        run_id: Optional[str] = None,
    ):
        self.pipeline = pipeline
        self.event = event
        self.secrets = secrets or MappingSecretStore()
        self.workspace = Path(workspace).resolve()
        self.max_workers = max_workers
        self.step_timeout = step_timeout
        self.reporter = RunReporter(sinks)
        self.console = console or get_console()
        self.run_id = run_id or uuid.uuid4().hex
        self.cancel_event = threading.Event()

    def cancel(self) -> None:
        self.cancel_event.set()

    def plan(self) -> Dag:
        return build_dag(self.pipeline)

    def run(self) -> RunResult:
        # build-time errors propagate before anything runs
        dag = build_dag(self.pipeline)

        if not self.pipeline.is_triggered_by(self.event):
            self.console.print_not_triggered(self.pipeline.name, self.event.name, self.event.ref)
            return self.reporter.not_triggered(run_id=self.run_id, pipeline=self.pipeline, event=self.event)

        started_at = now_utc()
        self.console.print_run_started(
            pipeline=self.pipeline.name,
            event=self.event.name,
            ref=self.event.ref,
            sha=self.event.sha,
            job_count=len(dag.jobs),
        )

        provider = ContextProvider(self.secrets, self.event, self.run_id)
        executor = StepExecutor(self.workspace, self.cancel_event)

        def _run(name: str) -> JobOutcome:
            return run_job(
                dag.jobs[name],
                provider,
                executor,
                default_timeout=self.step_timeout,
                console=self.console,
            )

        scheduler = Scheduler(
            dag,
            _run,
            max_workers=self.max_workers,
            cancel_event=self.cancel_event,
            console=self.console,
        )
        started = time.monotonic()
        outcomes = scheduler.run()
        self.console.print_debug(f"run {self.run_id} finished in {time.monotonic() - started:.1f}s")

        result = self.reporter.build(
            run_id=self.run_id,
            pipeline=self.pipeline,
            event=self.event,
            outcomes=outcomes,
            cancelled=scheduler.cancelled,
            started_at=started_at,
        )
        self.reporter.emit(result)
        return result


def run_pipeline(pipeline: Pipeline, event: Event, **kwargs) -> RunResult:
    """Convenience wrapper: PipelineRunner(pipeline, event, **kwargs).run()."""
    return PipelineRunner(pipeline, event, **kwargs).run()
