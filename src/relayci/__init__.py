from .actions import checkout_step, docker_build_push_step, docker_login_step, docker_step, lint_step
from .dag import build_dag
from .dsl import job, on_manual, on_pull_request, on_push, sh, uses, wf
from .events import Event
from .loader import load_pipeline
from .model import Job, JobStatus, Pipeline, RunResult, RunStatus, Step, Trigger
from .runner import PipelineRunner, run_pipeline

__all__ = [
    "job", "sh", "uses", "wf", "on_push", "on_pull_request", "on_manual",
    "checkout_step", "lint_step", "docker_step", "docker_login_step", "docker_build_push_step",
    "build_dag", "load_pipeline", "run_pipeline", "PipelineRunner",
    "Event", "Job", "JobStatus", "Pipeline", "RunResult", "RunStatus", "Step", "Trigger",
]
