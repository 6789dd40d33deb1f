# executor.py
from __future__ import annotations

import os
import signal
import subprocess
import threading
import time
from pathlib import Path
from typing import IO, Dict, List, Optional, Tuple

from .errors import Cancelled, StepExecutionError, StepTimeout
from .model import JobStatus, StepResult
from .secrets import Redactor

# Tail of each stream kept per step
OUTPUT_LIMIT = 64_000
_READ_CHUNK = 8192


class _TailBuffer:
    """
    Keeps roughly the last `capacity` characters written to it and
    whether anything older was dropped.
    """

    def __init__(self, capacity: int):
        self.capacity = capacity
        self.truncated = False
        self._chunks: List[str] = []
        self._size = 0
        self._lock = threading.Lock()

    def write(self, chunk: str) -> None:
        with self._lock:
            self._chunks.append(chunk)
            self._size += len(chunk)
            # trim lazily so a chatty step is not re-joined on every line
            if self._size > 2 * self.capacity:
                self._trim()

    def _trim(self) -> None:
        text = "".join(self._chunks)
        if len(text) > self.capacity:
            text = text[-self.capacity:]
            self.truncated = True
        self._chunks = [text] if text else []
        self._size = len(text)

    def value(self) -> str:
        with self._lock:
            self._trim()
            return self._chunks[0] if self._chunks else ""


def _drain(stream: IO[str], buf: _TailBuffer) -> None:
    try:
        for chunk in iter(lambda: stream.read(_READ_CHUNK), ""):
            buf.write(chunk)
    except (OSError, ValueError):
        # stream closed under us after the process was killed
        pass
    finally:
        stream.close()


class StepExecutor:
    """
    Runs one shell command per call and owns only that process.

    The process gets its own session/process group so a timeout or a
    cancellation can take down everything the shell started.
    """

    def __init__(
        self,
        workspace: str | Path = ".",
        cancel_event: Optional[threading.Event] = None,
        *,
        poll_interval: float = 0.05,
        kill_grace: float = 2.0,
    ):
        self.workspace = Path(workspace).resolve()
        self.cancel_event = cancel_event or threading.Event()
        self.poll_interval = poll_interval
        self.kill_grace = kill_grace

    def execute(
        self,
        job: str,
        step: str,
        cmd: str,
        *,
        env: Dict[str, str],
        cwd: str | None = None,
        timeout: float | None = None,
        redact: Optional[Redactor] = None,
    ) -> StepResult:
        """
        Run `cmd` and return its StepResult.

        stdout and stderr are read as they arrive and only their tails are
        kept, then masked with `redact`.

        Raises:
          StepTimeout         the command outlived `timeout` seconds
          StepExecutionError  non-zero exit status
          Cancelled           the run was cancelled while the step ran
          FileNotFoundError   the working directory does not exist
        """
        redact = redact or Redactor()
        workdir = (self.workspace / (cwd or ".")).resolve()
        if not workdir.is_dir():
            raise FileNotFoundError(f"[{job}] step '{step}' cwd not found: {workdir}")

        if self.cancel_event.is_set():
            raise Cancelled(job=job, step=step)

        started = time.monotonic()
        deadline = started + timeout if timeout else None

        proc = subprocess.Popen(
            cmd,
            shell=True,
            cwd=str(workdir),
            env=env,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            errors="replace",
            start_new_session=(os.name == "posix"),
        )

        # extra room so a secret cut by the limit can still be matched whole
        capacity = OUTPUT_LIMIT + redact.longest
        out_buf, err_buf = _TailBuffer(capacity), _TailBuffer(capacity)
        readers = [
            threading.Thread(target=_drain, args=(proc.stdout, out_buf), daemon=True),
            threading.Thread(target=_drain, args=(proc.stderr, err_buf), daemon=True),
        ]
        for t in readers:
            t.start()

        def output() -> Tuple[str, str]:
            for t in readers:
                t.join(timeout=5)
            return (
                redact.tail(out_buf.value(), OUTPUT_LIMIT, truncated=out_buf.truncated),
                redact.tail(err_buf.value(), OUTPUT_LIMIT, truncated=err_buf.truncated),
            )

        while True:
            wait = self.poll_interval
            if deadline is not None:
                wait = max(0.0, min(wait, deadline - time.monotonic()))
            try:
                proc.wait(timeout=wait)
                break
            except subprocess.TimeoutExpired:
                if self.cancel_event.is_set():
                    self._terminate(proc)
                    stdout, stderr = output()
                    raise Cancelled(job=job, step=step, stdout=stdout, stderr=stderr)
                if deadline is not None and time.monotonic() >= deadline:
                    self._terminate(proc)
                    stdout, stderr = output()
                    raise StepTimeout(
                        job=job,
                        step=step,
                        timeout=float(timeout),
                        stdout=stdout,
                        stderr=stderr,
                    )

        stdout, stderr = output()
        duration = time.monotonic() - started

        if proc.returncode != 0:
            raise StepExecutionError(
                job=job,
                step=step,
                cmd=redact(cmd),
                exit_code=proc.returncode,
                stdout=stdout,
                stderr=stderr,
            )

        return StepResult(
            name=step,
            status=JobStatus.SUCCEEDED,
            exit_code=0,
            stdout=stdout,
            stderr=stderr,
            duration=duration,
        )

    def _signal(self, proc: subprocess.Popen, sig: int) -> None:
        try:
            if os.name == "posix":
                os.killpg(proc.pid, sig)
            elif sig == signal.SIGTERM:
                proc.terminate()
            else:
                proc.kill()
        except ProcessLookupError:
            pass

    def _terminate(self, proc: subprocess.Popen) -> None:
        """SIGTERM the process group, SIGKILL after the grace period."""
        self._signal(proc, signal.SIGTERM)
        try:
            proc.wait(timeout=self.kill_grace)
        except subprocess.TimeoutExpired:
            self._signal(proc, getattr(signal, "SIGKILL", signal.SIGTERM))
            proc.wait()
