"""Tests for YAML and Python pipeline loading."""

from __future__ import annotations

import textwrap

import pytest

from relayci.errors import DefinitionError
from relayci.loader import find_pipeline_files, load_pipeline, parse_pipeline
from relayci.model import Trigger

PIPELINE_YAML = """\
name: build
on:
  push:
    branches: [main, "release/*"]
  pull_request:
env:
  APP: web
jobs:
  test:
    steps:
      - run: echo test
      - name: Lint
        uses: lint
        with:
          tool: ruff
          args: check
  publish:
    needs: test
    secrets: [TOKEN]
    continue-on-error: true
    timeout-minutes: 5
    permissions: read-all
    steps:
      - uses: docker/login
        with:
          username: ci
          password: ${{ secrets.TOKEN }}
      - run: echo $APP
        timeout-minutes: 0.5
        working-directory: app
"""


def _write(tmp_path, name: str, text: str):
    path = tmp_path / name
    path.write_text(textwrap.dedent(text), encoding="utf-8")
    return path


class TestYamlPipelines:
    def test_full_document(self, tmp_path):
        pipeline = load_pipeline(_write(tmp_path, "relayci.yml", PIPELINE_YAML))

        assert pipeline.name == "build"
        assert pipeline.env == {"APP": "web"}
        assert pipeline.triggers == [Trigger("push", ("main", "release/*")), Trigger("pull_request")]
        assert [j.name for j in pipeline.jobs] == ["test", "publish"]

        test = pipeline.job("test")
        assert test.steps[0].name == "Run echo test"
        assert test.steps[1].uses == "lint"
        assert test.steps[1].inputs == {"tool": "ruff", "args": "check"}

        publish = pipeline.job("publish")
        assert publish.needs == ["test"]
        assert publish.secrets == ["TOKEN"]
        assert publish.optional
        assert publish.timeout == 300
        assert publish.permissions == {"*": "read"}
        assert publish.steps[0].name == "docker/login"
        assert publish.steps[1].timeout == 30
        assert publish.steps[1].cwd == "app"

    def test_on_key_as_string(self):
        pipeline = parse_pipeline({"on": "push", "jobs": {"a": {"steps": [{"run": "true"}]}}})
        assert pipeline.triggers == [Trigger("push")]
        assert pipeline.name == "pipeline"

    def test_on_key_parsed_as_boolean(self):
        # what yaml.safe_load produces for a bare `on:` key
        pipeline = parse_pipeline({True: ["push", "manual"], "jobs": {"a": {"steps": [{"run": "true"}]}}})
        assert [t.event for t in pipeline.triggers] == ["push", "manual"]

    def test_env_values_are_stringified(self):
        doc = {"env": {"PORT": 8080, "DEBUG": True}, "jobs": {"a": {"steps": [{"run": "true"}]}}}
        assert parse_pipeline(doc).env == {"PORT": "8080", "DEBUG": "true"}

    def test_runs_on_label_list(self):
        doc = {"jobs": {"a": {"runs-on": ["docker://alpine:3", "x"], "steps": [{"run": "true"}]}}}
        assert parse_pipeline(doc).job("a").docker_image == "alpine:3"

    def test_unknown_keys_rejected(self):
        doc = {"jobs": {"a": {"stepz": [{"run": "true"}], "steps": [{"run": "true"}]}}}
        with pytest.raises(DefinitionError) as exc:
            parse_pipeline(doc, source="ci.yml")
        assert any("stepz" in d for d in exc.value.details)

    def test_step_needs_run_or_uses(self):
        with pytest.raises(DefinitionError):
            parse_pipeline({"jobs": {"a": {"steps": [{"name": "empty"}]}}})

    def test_job_needs_steps(self):
        with pytest.raises(DefinitionError):
            parse_pipeline({"jobs": {"a": {"steps": []}}})

    def test_no_jobs(self):
        with pytest.raises(DefinitionError):
            parse_pipeline({"name": "x", "jobs": {}})

    def test_bad_permission_level(self):
        with pytest.raises(DefinitionError):
            parse_pipeline({"jobs": {"a": {"permissions": {"contents": "admin"}, "steps": [{"run": "true"}]}}})

    def test_not_a_mapping(self, tmp_path):
        with pytest.raises(DefinitionError):
            load_pipeline(_write(tmp_path, "ci.yml", "- just\n- a list\n"))

    def test_invalid_yaml(self, tmp_path):
        with pytest.raises(DefinitionError):
            load_pipeline(_write(tmp_path, "ci.yml", "jobs: [unclosed\n"))

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_pipeline(tmp_path / "nope.yml")


class TestPythonPipelines:
    def test_pipeline_function(self, tmp_path):
        path = _write(
            tmp_path,
            "relayci_pipeline.py",
            """\
            from relayci import job, on_push, sh, wf

            def pipeline():
                return wf(
                    "py",
                    job("test", sh("Unit", "echo unit")),
                    job("build", sh("Build", "echo build"), needs=["test"]),
                    on=[on_push("main")],
                )
            """,
        )
        pipeline = load_pipeline(path)
        assert pipeline.name == "py"
        assert pipeline.job("build").needs == ["test"]
        assert pipeline.triggers == [Trigger("push", ("main",))]

    def test_pipeline_constant(self, tmp_path):
        path = _write(
            tmp_path,
            "other_pipeline.py",
            """\
            from relayci import job, sh, wf

            PIPELINE = wf("const", job("a", sh("A", "true")))
            """,
        )
        assert load_pipeline(path).name == "const"

    def test_pipeline_with_arguments(self, tmp_path):
        path = _write(
            tmp_path,
            "bad_pipeline.py",
            """\
            def pipeline(ctx):
                return None
            """,
        )
        with pytest.raises(DefinitionError, match="no arguments"):
            load_pipeline(path)

    def test_file_without_pipeline(self, tmp_path):
        path = _write(tmp_path, "empty_pipeline.py", "X = 1\n")
        with pytest.raises(DefinitionError):
            load_pipeline(path)


class TestDiscovery:
    def test_default_names_first(self, tmp_path):
        _write(tmp_path, "zeta_pipeline.py", "")
        _write(tmp_path, "relayci.yml", "")
        _write(tmp_path, "notes.txt", "")
        found = [p.name for p in find_pipeline_files(tmp_path)]
        assert found == ["relayci.yml", "zeta_pipeline.py"]

    def test_nothing_found(self, tmp_path):
        assert find_pipeline_files(tmp_path) == []
