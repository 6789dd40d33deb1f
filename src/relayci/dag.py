# dag.py
from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

from .actions import Action, get_action
from .errors import (
    CyclicDependency,
    DefinitionError,
    UnknownAction,
    UnknownJobReference,
    UnresolvedReference,
)
from .expressions import CONTEXT_KEYS, NAMESPACES, ExpressionError, Template, parse_template
from .model import Job, Pipeline, Step


@dataclass(frozen=True)
class BoundStep:
    """A step whose `${{ }}` bindings have been parsed and checked."""
    step: Step
    run: Optional[Template]
    inputs: Dict[str, Template]
    env: Dict[str, Template]
    action: Optional[Action] = None

    @property
    def name(self) -> str:
        return self.step.name


@dataclass
class BoundJob:
    job: Job
    steps: List[BoundStep]
    env: Dict[str, Template] = field(default_factory=dict)  # pipeline env, then job env

    @property
    def name(self) -> str:
        return self.job.name


@dataclass
class Dag:
    """
    Validated pipeline graph.

      adj:   job -> jobs that need it
      indeg: job -> number of jobs it needs
    """
    pipeline: Pipeline
    jobs: Dict[str, BoundJob]
    adj: Dict[str, Set[str]]
    indeg: Dict[str, int]

    def needs(self, name: str) -> List[str]:
        return list(self.jobs[name].job.needs)

    def roots(self) -> List[str]:
        return sorted(n for n, d in self.indeg.items() if d == 0)

    def dependents(self, name: str) -> Set[str]:
        """All jobs that directly or transitively need `name`."""
        seen: Set[str] = set()
        q = deque(self.adj.get(name, ()))
        while q:
            n = q.popleft()
            if n in seen:
                continue
            seen.add(n)
            q.extend(self.adj.get(n, ()))
        return seen

    def levels(self) -> List[List[str]]:
        """
        Topological "levels" (stages). Jobs in one level do not depend on
        each other. Used for plan output only; the scheduler does not wait
        for whole levels.
        """
        return topo_levels(self.adj, self.indeg)


# ----------------------------------------------------------------------
# Graph structure
# ----------------------------------------------------------------------

def _build_graph(jobs: List[Job]) -> Tuple[Dict[str, Set[str]], Dict[str, int]]:
    names = [j.name for j in jobs]
    if len(set(names)) != len(names):
        dupes = sorted({n for n in names if names.count(n) > 1})
        raise DefinitionError(f"Duplicate job names found: {dupes}")

    name_set = set(names)
    adj: Dict[str, Set[str]] = {n: set() for n in names}
    indeg: Dict[str, int] = {n: 0 for n in names}

    for job in jobs:
        for dep in job.needs:
            if dep not in name_set:
                raise UnknownJobReference(job=job.name, ref=dep, known=sorted(name_set))
            # Edge dep -> job.name (dep must finish before job)
            if job.name not in adj[dep]:
                adj[dep].add(job.name)
                indeg[job.name] += 1

    return adj, indeg


def _find_cycle(adj: Dict[str, Set[str]], nodes: Set[str]) -> List[str]:
    """Return one cycle among `nodes` as a closed path, e.g. [a, b, a]."""
    state: Dict[str, int] = {n: 0 for n in nodes}  # 0 new, 1 on stack, 2 done
    stack: List[str] = []

    def visit(n: str) -> Optional[List[str]]:
        state[n] = 1
        stack.append(n)
        for child in sorted(adj.get(n, ())):
            if child not in state:
                continue
            if state[child] == 1:
                return stack[stack.index(child):] + [child]
            if state[child] == 0:
                found = visit(child)
                if found:
                    return found
        stack.pop()
        state[n] = 2
        return None

    for n in sorted(nodes):
        if state[n] == 0:
            found = visit(n)
            if found:
                return found
    return sorted(nodes)


def topo_levels(adj: Dict[str, Set[str]], indeg: Dict[str, int]) -> List[List[str]]:
    indeg = dict(indeg)  # copy (we mutate it)
    q = deque(sorted(n for n, d in indeg.items() if d == 0))

    levels: List[List[str]] = []
    processed = 0

    while q:
        level: List[str] = []
        for _ in range(len(q)):
            node = q.popleft()
            level.append(node)
            processed += 1
            for child in sorted(adj.get(node, set())):
                indeg[child] -= 1
                if indeg[child] == 0:
                    q.append(child)
        levels.append(level)

    if processed != len(indeg):
        stuck = {n for n, d in indeg.items() if d > 0}
        cycle = _find_cycle(adj, stuck)
        raise CyclicDependency(job=cycle[0], cycle=cycle)

    return levels


# ----------------------------------------------------------------------
# Expression binding
# ----------------------------------------------------------------------

def _bind(
    text: str,
    *,
    job: str,
    step: Optional[str],
    declared_env: Optional[Set[str]],
) -> Template:
    """
    Parse `text` and check every reference can be satisfied at run time.

    `declared_env` is None where `env.*` references are not allowed
    (inside env values themselves).
    """
    try:
        template = parse_template(str(text))
    except ExpressionError as e:
        raise UnresolvedReference(job=job, step=step, expression=e.expression, reason=e.reason)

    for ref in template.references:
        if ref.namespace not in NAMESPACES:
            raise UnresolvedReference(
                job=job, step=step, expression=str(ref),
                reason=f"unknown namespace '{ref.namespace}' (expected one of {list(NAMESPACES)})",
            )
        if ref.namespace == "github" and ref.key not in CONTEXT_KEYS:
            raise UnresolvedReference(
                job=job, step=step, expression=str(ref),
                reason=f"unknown context key (expected one of {list(CONTEXT_KEYS)})",
            )
        if ref.namespace == "env":
            if declared_env is None:
                raise UnresolvedReference(
                    job=job, step=step, expression=str(ref),
                    reason="env values cannot reference other env values",
                )
            if ref.key not in declared_env:
                raise UnresolvedReference(
                    job=job, step=step, expression=str(ref),
                    reason=f"env var '{ref.key}' is not declared for this step",
                )
    return template


def _bind_step(pipeline: Pipeline, job: Job, step: Step) -> BoundStep:
    if bool(step.run) == bool(step.uses):
        raise DefinitionError(
            f"[{job.name}] step '{step.name}' must set exactly one of 'run' or 'uses'"
        )

    action: Optional[Action] = None
    if step.uses:
        action = get_action(step.uses)
        if action is None:
            raise UnknownAction(job=job.name, step=step.name, action=step.uses)
        missing = [k for k in action.required if not step.inputs.get(k)]
        if missing:
            raise DefinitionError(
                f"[{job.name}] step '{step.name}' is missing required inputs for "
                f"'{action.name}': {missing}"
            )

    declared = set(pipeline.env) | set(job.env) | set(step.env)
    run = _bind(step.run, job=job.name, step=step.name, declared_env=declared) if step.run else None
    inputs = {
        k: _bind(v, job=job.name, step=step.name, declared_env=declared)
        for k, v in step.inputs.items()
    }
    env = {
        k: _bind(v, job=job.name, step=step.name, declared_env=None)
        for k, v in step.env.items()
    }
    return BoundStep(step=step, run=run, inputs=inputs, env=env, action=action)


def _bind_job(pipeline: Pipeline, job: Job) -> BoundJob:
    if not job.steps:
        raise DefinitionError(f"Job '{job.name}' has no steps")

    env: Dict[str, Template] = {}
    for k, v in pipeline.env.items():
        env[k] = _bind(v, job=job.name, step=None, declared_env=None)
    for k, v in job.env.items():
        env[k] = _bind(v, job=job.name, step=None, declared_env=None)

    steps = [_bind_step(pipeline, job, s) for s in job.steps]
    return BoundJob(job=job, steps=steps, env=env)


# ----------------------------------------------------------------------
# Public API
# ----------------------------------------------------------------------

def build_dag(pipeline: Pipeline) -> Dag:
    """
    Validate `pipeline` and return its DAG.

    Raises DefinitionError, UnknownJobReference, CyclicDependency,
    UnknownAction or UnresolvedReference. Nothing is executed.
    """
    if not pipeline.jobs:
        raise DefinitionError(f"Pipeline '{pipeline.name}' has no jobs")

    adj, indeg = _build_graph(pipeline.jobs)
    topo_levels(adj, indeg)  # raises on cycles

    bound = {job.name: _bind_job(pipeline, job) for job in pipeline.jobs}
    return Dag(pipeline=pipeline, jobs=bound, adj=adj, indeg=indeg)
