"""Tests for events and trigger matching."""

from __future__ import annotations

import dataclasses

import pytest

from relayci.events import Event
from relayci.model import Pipeline, Trigger
from tests.conftest import make_event, make_job


class TestEvent:
    def test_from_payload(self):
        ev = Event.from_payload({"event": "push", "ref": "main", "sha": "abc", "actor": "me"})
        assert ev.name == "push"
        assert ev.ref == "refs/heads/main"
        assert ev.branch == "main"
        assert ev.actor == "me"

    def test_from_payload_keeps_full_refs(self):
        ev = Event.from_payload({"name": "push", "ref": "refs/tags/v1.0", "sha": "abc"})
        assert ev.ref == "refs/tags/v1.0"
        assert ev.actor == "unknown"

    @pytest.mark.parametrize("missing", ["ref", "sha"])
    def test_from_payload_requires_fields(self, missing):
        payload = {"event": "push", "ref": "main", "sha": "abc"}
        del payload[missing]
        with pytest.raises(ValueError, match=missing):
            Event.from_payload(payload)

    def test_from_payload_requires_event_name(self):
        with pytest.raises(ValueError):
            Event.from_payload({"ref": "main", "sha": "abc"})

    def test_is_immutable(self):
        ev = make_event()
        with pytest.raises(dataclasses.FrozenInstanceError):
            ev.sha = "other"  # type: ignore[misc]

    def test_context(self):
        ctx = make_event(ref="refs/heads/feature/x").context()
        assert ctx["ref_name"] == "feature/x"
        assert ctx["event_name"] == "push"
        assert ctx["base_ref"] == ""


class TestTrigger:
    def test_event_name_must_match(self):
        assert not Trigger("pull_request").matches(make_event(name="push"))
        assert Trigger("push").matches(make_event(name="push"))

    def test_branch_globs(self):
        t = Trigger("push", branches=("main", "release/*"))
        assert t.matches(make_event(ref="refs/heads/release/1.2"))
        assert not t.matches(make_event(ref="refs/heads/feature/x"))

    def test_pull_request_filters_on_target_branch(self):
        t = Trigger("pull_request", branches=("main",))
        assert t.matches(make_event(name="pull_request", ref="refs/heads/feature", base_ref="main"))
        assert not t.matches(make_event(name="pull_request", ref="refs/heads/main", base_ref="develop"))

    def test_pipeline_without_triggers_always_runs(self):
        p = Pipeline(name="p", jobs=[make_job("a")])
        assert p.is_triggered_by(make_event(name="anything"))

    def test_pipeline_any_trigger(self):
        p = Pipeline(name="p", jobs=[make_job("a")], triggers=[Trigger("push", ("main",)), Trigger("manual")])
        assert p.is_triggered_by(make_event(name="manual", ref="refs/heads/dev"))
        assert not p.is_triggered_by(make_event(name="push", ref="refs/heads/dev"))
