"""Console output formatting utilities for relayci."""

from __future__ import annotations

import sys
import threading
from typing import TYPE_CHECKING, List, Optional

if TYPE_CHECKING:
    from ..model import JobStatus, RunResult


class Console:
    """Centralized console output formatting.

    Jobs run on worker threads, so every print goes through one lock and
    job-scoped lines are prefixed with the job name.
    """

    def __init__(self, debug: bool = False, quiet: bool = False):
        """
        Initialize console formatter.

        Args:
            debug: If True, show step output, stack traces and debug lines
            quiet: If True, only errors and the final results are printed
        """
        self.debug = debug
        self.quiet = quiet
        self._lock = threading.Lock()

    def _out(self, *lines: str, err: bool = False) -> None:
        stream = sys.stderr if err else sys.stdout
        with self._lock:
            for line in lines:
                print(line, file=stream)

    def _progress(self, *lines: str) -> None:
        if not self.quiet:
            self._out(*lines)

    def print_header(self, title: str) -> None:
        """Print a section header."""
        self._progress(f"\n{title}", "-" * len(title))

    def print_run_started(self, pipeline: str, event: str, ref: str, sha: str, job_count: int) -> None:
        """Print run start information."""
        self._progress(
            "\nRUN STARTED",
            f"Pipeline: {pipeline}",
            f"Event: {event} ({ref} @ {sha[:12]})",
            f"Jobs: {job_count}",
            "",
        )

    def print_not_triggered(self, pipeline: str, event: str, ref: str) -> None:
        self._progress(f"Pipeline '{pipeline}' is not triggered by {event} on {ref}; nothing to run.")

    def print_plan(self, levels: List[List[str]]) -> None:
        """Print the topological stages of a pipeline."""
        self._out("PLAN")
        for idx, level in enumerate(levels, start=1):
            self._out(f"  Stage {idx}: {', '.join(level)}")

    def print_job_start(self, name: str) -> None:
        self._progress(f"[{name}] JOB STARTED")

    def print_step(self, job: str, name: str) -> None:
        self._progress(f"[{job}] STEP: {name}")

    def print_step_output(self, job: str, step: str, stdout: str, stderr: str) -> None:
        """Print captured (already redacted) output, debug mode only."""
        if not self.debug:
            return
        lines = [f"[{job}] output of '{step}':"]
        for text in (stdout, stderr):
            lines.extend(f"[{job}]   {line}" for line in text.splitlines())
        self._out(*lines)

    def print_job_finished(self, name: str, status: "JobStatus", error: Optional[str] = None) -> None:
        if error and status.value != "succeeded":
            self.print_failure(name, error, is_job=True)
        self._progress(f"[{name}] STATUS: {status.value}")

    def print_job_skipped(self, name: str, reason: str) -> None:
        self._progress(f"[{name}] STATUS: skipped ({reason})")

    def print_failure(
        self,
        name: str,
        reason: str,
        exit_code: Optional[int] = None,
        hint: Optional[str] = None,
        is_job: bool = False,
    ) -> None:
        """
        Print failure message.

        Args:
            name: Job or step name
            reason: Failure reason/error message (already redacted)
            exit_code: Optional exit code
            hint: Optional hint for user
            is_job: If True, print "JOB FAILED", otherwise "STEP FAILED"
        """
        prefix = "JOB FAILED" if is_job else "STEP FAILED"
        lines = [f"[{name}] {prefix}"]
        if exit_code is not None:
            lines.append(f"[{name}] Exit code: {exit_code}")
        if hint:
            lines.append(f"[{name}] Hint: {hint}")
        if self.debug:
            lines.append(f"[{name}] Error details: {reason}")
        else:
            error_line = reason.split("\n")[0] if reason else "Unknown error"
            lines.append(f"[{name}] Error: {error_line}")
        self._out(*lines, err=True)

    def print_results(self, result: "RunResult") -> None:
        """Print final results summary."""
        lines = ["", "=" * 40, "RESULTS", "=" * 40]
        for name, job in result.jobs.items():
            label = job.status.value.upper()
            if job.optional:
                label += " (optional)"
            lines.append(f"  {name}: {label}")
            if job.error:
                lines.append(f"      {job.error.splitlines()[0]}")
            elif job.reason:
                lines.append(f"      {job.reason}")
        lines.append(f"\nRUN {result.status.value.upper()} (run id {result.run_id})")
        self._out(*lines)

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        lines = [f"\nERROR: {title}", message]
        if details:
            lines.extend(f"  {detail}" for detail in details)
        if suggestion:
            lines.append(f"\n{suggestion}")
        self._out(*lines, err=True)

    def print_exception(self, exc: BaseException) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback

            with self._lock:
                traceback.print_exception(type(exc), exc, exc.__traceback__)
        else:
            self._out(f"Error: {exc}", err=True)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        self._progress(message)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            self._out(f"[DEBUG] {message}", err=True)


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
