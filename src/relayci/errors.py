# errors.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional


class RelayError(Exception):
    """Base class for every error the engine raises on purpose."""

    kind = "error"


# ----------------------------------------------------------------------
# Build-time errors (the run never starts)
# ----------------------------------------------------------------------

@dataclass(eq=False)
class DefinitionError(RelayError):
    """The pipeline document itself is malformed."""
    message: str
    source: Optional[str] = None
    details: List[str] = field(default_factory=list)

    kind = "definition_error"

    def __str__(self) -> str:
        head = self.message if not self.source else f"{self.source}: {self.message}"
        if not self.details:
            return head
        return "\n".join([head, *(f"  {d}" for d in self.details)])


@dataclass(eq=False)
class UnknownJobReference(RelayError):
    job: str
    ref: str
    known: List[str] = field(default_factory=list)

    kind = "unknown_job_reference"

    def __str__(self) -> str:
        return (
            f"Job '{self.job}' needs missing job '{self.ref}'. "
            f"Known jobs: {sorted(self.known)}"
        )


@dataclass(eq=False)
class CyclicDependency(RelayError):
    job: str
    cycle: List[str] = field(default_factory=list)

    kind = "cyclic_dependency"

    def __str__(self) -> str:
        path = " -> ".join(self.cycle) if self.cycle else self.job
        return f"Job '{self.job}' is part of a dependency cycle: {path}"


@dataclass(eq=False)
class UnresolvedReference(RelayError):
    job: str
    step: Optional[str]
    expression: str
    reason: str

    kind = "unresolved_reference"

    def __str__(self) -> str:
        where = f"job '{self.job}'" + (f", step '{self.step}'" if self.step else "")
        return f"Cannot bind '${{{{ {self.expression} }}}}' in {where}: {self.reason}"


@dataclass(eq=False)
class UnknownAction(RelayError):
    job: str
    step: str
    action: str

    kind = "unknown_action"

    def __str__(self) -> str:
        return f"[{self.job}] step '{self.step}' uses unknown action '{self.action}'"


# ----------------------------------------------------------------------
# Run-time errors (fail the owning job only)
# ----------------------------------------------------------------------

@dataclass(eq=False)
class StepExecutionError(RelayError):
    job: str
    step: str
    cmd: str
    exit_code: int
    stdout: str = ""
    stderr: str = ""

    kind = "step_failed"

    def __str__(self) -> str:
        return f"[{self.job}] step '{self.step}' failed (exit={self.exit_code}): {self.cmd}"


@dataclass(eq=False)
class StepTimeout(RelayError):
    job: str
    step: str
    timeout: float
    stdout: str = ""
    stderr: str = ""

    kind = "step_timeout"

    def __str__(self) -> str:
        return f"[{self.job}] step '{self.step}' timed out after {self.timeout:g}s"


@dataclass(eq=False)
class SecretNotFound(RelayError):
    job: str
    name: str

    kind = "secret_not_found"

    def __str__(self) -> str:
        return f"[{self.job}] secret '{self.name}' is not defined in the secret store"


@dataclass(eq=False)
class ScopeViolation(RelayError):
    job: str
    name: str

    kind = "scope_violation"

    def __str__(self) -> str:
        return (
            f"[{self.job}] secret '{self.name}' is outside the job's declared scope; "
            f"add it to the job's secrets list"
        )


@dataclass(eq=False)
class Cancelled(RelayError):
    job: str
    step: Optional[str] = None
    stdout: str = ""
    stderr: str = ""

    kind = "cancelled"

    def __str__(self) -> str:
        if self.step:
            return f"[{self.job}] cancelled during step '{self.step}'"
        return f"[{self.job}] cancelled"
