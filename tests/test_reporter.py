"""Tests for result aggregation and run record sinks."""

from __future__ import annotations

import json

from relayci.model import JobResult, JobStatus, RunStatus, StepResult
from relayci.records import SqlRunSink
from relayci.reporter import JsonFileSink, RunReporter, overall_status
from relayci.scheduler import JobOutcome
from tests.conftest import make_event, make_job, make_pipeline


def _make_result(reporter: RunReporter | None = None, **statuses: JobStatus):
    reporter = reporter or RunReporter()
    pipeline = make_pipeline(*[make_job(name) for name in statuses])
    outcomes = {
        name: JobOutcome(status=status, steps=[StepResult(name="step1", status=status)])
        for name, status in statuses.items()
    }
    return reporter.build(run_id="r1", pipeline=pipeline, event=make_event(), outcomes=outcomes, started_at="2024-01-01T00:00:00+00:00")


class TestOverallStatus:
    def test_all_required_succeeded(self):
        jobs = [JobResult("a", JobStatus.SUCCEEDED), JobResult("b", JobStatus.SUCCEEDED)]
        assert overall_status(jobs) == RunStatus.SUCCESS

    def test_required_failure(self):
        jobs = [JobResult("a", JobStatus.SUCCEEDED), JobResult("b", JobStatus.FAILED)]
        assert overall_status(jobs) == RunStatus.FAILURE

    def test_required_skipped_is_failure(self):
        jobs = [JobResult("a", JobStatus.SKIPPED)]
        assert overall_status(jobs) == RunStatus.FAILURE

    def test_optional_jobs_ignored(self):
        jobs = [JobResult("a", JobStatus.SUCCEEDED), JobResult("lint", JobStatus.FAILED, optional=True)]
        assert overall_status(jobs) == RunStatus.SUCCESS

    def test_cancelled_wins(self):
        jobs = [JobResult("a", JobStatus.SUCCEEDED)]
        assert overall_status(jobs, cancelled=True) == RunStatus.CANCELLED


class TestRunReporter:
    def test_build_keeps_pipeline_order(self):
        result = _make_result(b=JobStatus.SUCCEEDED, a=JobStatus.FAILED)
        assert list(result.jobs) == ["b", "a"]
        assert result.status == RunStatus.FAILURE
        assert result.finished_at is not None

    def test_missing_outcome_is_skipped(self):
        pipeline = make_pipeline(make_job("a"), make_job("b"))
        result = RunReporter().build(
            run_id="r1",
            pipeline=pipeline,
            event=make_event(),
            outcomes={"a": JobOutcome(status=JobStatus.SUCCEEDED)},
        )
        assert result.jobs["b"].status == JobStatus.SKIPPED

    def test_optional_flag_copied_from_job(self):
        pipeline = make_pipeline(make_job("lint", optional=True))
        result = RunReporter().build(
            run_id="r1",
            pipeline=pipeline,
            event=make_event(),
            outcomes={"lint": JobOutcome(status=JobStatus.FAILED, error="boom")},
        )
        assert result.jobs["lint"].optional
        assert result.status == RunStatus.SUCCESS

    def test_permissions_copied_from_job(self):
        pipeline = make_pipeline(make_job("publish", permissions={"packages": "write"}))
        reporter = RunReporter()
        built = reporter.build(
            run_id="r1",
            pipeline=pipeline,
            event=make_event(),
            outcomes={"publish": JobOutcome(status=JobStatus.SUCCEEDED)},
        )
        skipped = reporter.not_triggered(run_id="r2", pipeline=pipeline, event=make_event())
        assert built.jobs["publish"].permissions == {"packages": "write"}
        assert skipped.to_dict()["jobs"]["publish"]["permissions"] == {"packages": "write"}

    def test_emit_writes_every_sink(self, tmp_path):
        sinks = [JsonFileSink(tmp_path / "one"), JsonFileSink(tmp_path / "two")]
        reporter = RunReporter(sinks)
        result = _make_result(reporter, a=JobStatus.SUCCEEDED)
        reporter.emit(result)
        assert (tmp_path / "one" / "r1.json").exists()
        assert (tmp_path / "two" / "r1.json").exists()


class TestJsonFileSink:
    def test_record_contents(self, tmp_path):
        sink = JsonFileSink(tmp_path)
        result = _make_result(a=JobStatus.SUCCEEDED)
        sink.write(result)

        data = json.loads(sink.path_for("r1").read_text(encoding="utf-8"))
        assert data["pipeline"] == "test"
        assert data["status"] == "success"
        assert data["jobs"]["a"]["status"] == "succeeded"
        assert data["event"]["ref"] == "refs/heads/main"
        assert not list(tmp_path.glob("*.tmp"))


class TestSqlRunSink:
    def test_write_and_read_back(self, tmp_path):
        sink = SqlRunSink(f"sqlite:///{tmp_path / 'runs.db'}")
        result = _make_result(a=JobStatus.SUCCEEDED, b=JobStatus.FAILED)
        sink.write(result)

        record = sink.get("r1")
        assert record is not None
        assert record.status == "failure"
        assert record.sha == result.event.sha
        assert record.payload_json["jobs"]["b"]["status"] == "failed"
        assert sorted((j.job_name, j.status) for j in record.jobs) == [("a", "succeeded"), ("b", "failed")]

    def test_unknown_run(self, tmp_path):
        sink = SqlRunSink(f"sqlite:///{tmp_path / 'runs.db'}")
        assert sink.get("missing") is None
