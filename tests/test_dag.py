"""Tests for graph construction and build-time binding checks."""

from __future__ import annotations

import pytest

from relayci.dag import build_dag, topo_levels
from relayci.errors import (
    CyclicDependency,
    DefinitionError,
    UnknownAction,
    UnknownJobReference,
    UnresolvedReference,
)
from relayci.model import Job, Pipeline, Step
from tests.conftest import make_job, make_pipeline


def _single_step(cmd: str, *, job_env=None, step_env=None, pipeline_env=None, secrets=None) -> Pipeline:
    step = Step(name="s", run=cmd, env=dict(step_env or {}))
    job = Job(name="j", steps=[step], env=dict(job_env or {}), secrets=list(secrets or []))
    return Pipeline(name="p", jobs=[job], env=dict(pipeline_env or {}))


class TestGraph:
    def test_levels_follow_dependencies(self):
        dag = build_dag(
            make_pipeline(
                make_job("a"),
                make_job("b", needs=["a"]),
                make_job("c", needs=["a"]),
                make_job("d", needs=["b", "c"]),
            )
        )
        assert dag.levels() == [["a"], ["b", "c"], ["d"]]
        assert dag.roots() == ["a"]
        assert dag.indeg == {"a": 0, "b": 1, "c": 1, "d": 2}

    def test_dependents_are_transitive(self):
        dag = build_dag(
            make_pipeline(
                make_job("a"),
                make_job("b", needs=["a"]),
                make_job("c", needs=["b"]),
                make_job("x"),
            )
        )
        assert dag.dependents("a") == {"b", "c"}
        assert dag.dependents("c") == set()
        assert dag.dependents("x") == set()

    def test_duplicate_needs_counted_once(self):
        dag = build_dag(make_pipeline(make_job("a"), make_job("b", needs=["a", "a"])))
        assert dag.indeg["b"] == 1

    def test_unknown_reference(self):
        with pytest.raises(UnknownJobReference) as exc:
            build_dag(make_pipeline(make_job("a", needs=["ghost"])))
        assert exc.value.job == "a"
        assert exc.value.ref == "ghost"
        assert "ghost" in str(exc.value)

    def test_two_job_cycle(self):
        with pytest.raises(CyclicDependency) as exc:
            build_dag(make_pipeline(make_job("a", needs=["b"]), make_job("b", needs=["a"])))
        assert exc.value.cycle == ["a", "b", "a"]
        assert exc.value.job == "a"

    def test_self_dependency_is_a_cycle(self):
        with pytest.raises(CyclicDependency) as exc:
            build_dag(make_pipeline(make_job("a", needs=["a"])))
        assert exc.value.cycle == ["a", "a"]

    def test_cycle_reported_without_its_acyclic_prefix(self):
        with pytest.raises(CyclicDependency) as exc:
            build_dag(
                make_pipeline(
                    make_job("root"),
                    make_job("x", needs=["root", "z"]),
                    make_job("y", needs=["x"]),
                    make_job("z", needs=["y"]),
                )
            )
        assert "root" not in exc.value.cycle
        assert exc.value.cycle[0] == exc.value.cycle[-1]

    def test_topo_levels_does_not_mutate_indeg(self):
        adj = {"a": {"b"}, "b": set()}
        indeg = {"a": 0, "b": 1}
        topo_levels(adj, indeg)
        assert indeg == {"a": 0, "b": 1}

    def test_duplicate_job_names(self):
        with pytest.raises(DefinitionError, match="Duplicate"):
            build_dag(make_pipeline(make_job("a"), make_job("a")))

    def test_empty_pipeline(self):
        with pytest.raises(DefinitionError):
            build_dag(Pipeline(name="empty", jobs=[]))

    def test_job_without_steps(self):
        with pytest.raises(DefinitionError, match="no steps"):
            build_dag(Pipeline(name="p", jobs=[Job(name="a", steps=[])]))


class TestBindings:
    def test_literal_command(self):
        dag = build_dag(_single_step("echo hello"))
        bstep = dag.jobs["j"].steps[0]
        assert bstep.run.is_literal

    def test_secret_github_and_env_references(self):
        dag = build_dag(
            _single_step(
                "deploy ${{ secrets.TOKEN }} ${{ github.sha }} ${{ env.TARGET }}",
                job_env={"TARGET": "prod"},
                secrets=["TOKEN"],
            )
        )
        refs = [str(r) for r in dag.jobs["j"].steps[0].run.references]
        assert refs == ["secrets.TOKEN", "github.sha", "env.TARGET"]

    def test_pipeline_env_is_visible_to_steps(self):
        build_dag(_single_step("echo ${{ env.APP }}", pipeline_env={"APP": "web"}))

    def test_unknown_namespace(self):
        with pytest.raises(UnresolvedReference) as exc:
            build_dag(_single_step("echo ${{ vars.X }}"))
        assert "unknown namespace" in exc.value.reason

    def test_unknown_context_key(self):
        with pytest.raises(UnresolvedReference):
            build_dag(_single_step("echo ${{ github.token }}"))

    def test_undeclared_env(self):
        with pytest.raises(UnresolvedReference) as exc:
            build_dag(_single_step("echo ${{ env.MISSING }}"))
        assert exc.value.job == "j"
        assert exc.value.step == "s"

    def test_env_value_cannot_reference_env(self):
        with pytest.raises(UnresolvedReference):
            build_dag(_single_step("true", job_env={"A": "x", "B": "${{ env.A }}"}))

    def test_env_value_may_reference_secret(self):
        build_dag(_single_step("true", step_env={"TOKEN": "${{ secrets.TOKEN }}"}, secrets=["TOKEN"]))

    def test_malformed_expression(self):
        with pytest.raises(UnresolvedReference):
            build_dag(_single_step("echo ${{ 1 + 2 }}"))

    def test_unterminated_expression(self):
        with pytest.raises(UnresolvedReference):
            build_dag(_single_step("echo ${{ secrets.TOKEN"))

    def test_shell_variables_are_left_alone(self):
        dag = build_dag(_single_step("echo $HOME ${PATH}"))
        assert dag.jobs["j"].steps[0].run.is_literal


class TestActionSteps:
    def _pipeline(self, step: Step) -> Pipeline:
        return Pipeline(name="p", jobs=[Job(name="j", steps=[step])])

    def test_known_action_with_version_suffix(self):
        dag = build_dag(self._pipeline(Step(name="co", uses="actions/checkout@v4")))
        assert dag.jobs["j"].steps[0].action.name == "checkout"

    def test_unknown_action(self):
        with pytest.raises(UnknownAction) as exc:
            build_dag(self._pipeline(Step(name="x", uses="acme/deploy")))
        assert exc.value.action == "acme/deploy"

    def test_missing_required_input(self):
        with pytest.raises(DefinitionError, match="tool"):
            build_dag(self._pipeline(Step(name="lint", uses="lint")))

    def test_inputs_are_bound(self):
        step = Step(name="lint", uses="lint", inputs={"tool": "ruff", "args": "${{ env.ARGS }}"}, env={"ARGS": "check"})
        build_dag(self._pipeline(step))

    def test_inputs_with_bad_reference(self):
        step = Step(name="lint", uses="lint", inputs={"tool": "${{ nope.x }}"})
        with pytest.raises(UnresolvedReference):
            build_dag(self._pipeline(step))

    def test_run_and_uses_together(self):
        with pytest.raises(DefinitionError, match="exactly one"):
            build_dag(self._pipeline(Step(name="x", run="true", uses="lint", inputs={"tool": "ruff"})))
