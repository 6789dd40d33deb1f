# schema.py
"""
Pydantic models for YAML pipeline documents.

The document shape follows the familiar GitHub Actions layout:

    name: build
    on:
      push:
        branches: [main]
    env:
      APP_NAME: web
    jobs:
      test:
        runs-on: local
        steps:
          - run: make test
      publish:
        needs: test
        secrets: [REGISTRY_TOKEN]
        steps:
          - uses: docker/login
            with:
              username: ci
              password: ${{ secrets.REGISTRY_TOKEN }}
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .model import Job, Pipeline, Step, Trigger

Permission = Literal["read", "write", "none"]


def _stringify(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _stringify_mapping(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(k): _stringify(v) for k, v in value.items()}
    return value


class TriggerSpec(BaseModel):
    model_config = ConfigDict(extra="ignore")

    branches: List[str] = Field(default_factory=list)

    @field_validator("branches", mode="before")
    @classmethod
    def validate_one_or_many(cls, v: Any) -> Any:
        return [v] if isinstance(v, str) else v


class StepSpec(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    name: Optional[str] = None
    run: Optional[str] = None
    uses: Optional[str] = None
    with_: Dict[str, str] = Field(default_factory=dict, alias="with")
    env: Dict[str, str] = Field(default_factory=dict)
    working_directory: Optional[str] = Field(default=None, alias="working-directory")
    timeout_minutes: Optional[float] = Field(default=None, alias="timeout-minutes", gt=0)

    @field_validator("with_", "env", mode="before")
    @classmethod
    def validate_string_values(cls, v: Any) -> Any:
        return _stringify_mapping(v)

    @model_validator(mode="after")
    def validate_run_or_uses(self) -> "StepSpec":
        if bool(self.run) == bool(self.uses):
            raise ValueError("a step needs exactly one of 'run' or 'uses'")
        return self

    def display_name(self) -> str:
        if self.name:
            return self.name
        if self.uses:
            return self.uses
        first = self.run.strip().splitlines()[0] if self.run and self.run.strip() else "run"
        return f"Run {first}"


class JobSpec(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    name: Optional[str] = None
    runs_on: str = Field(default="local", alias="runs-on")
    needs: List[str] = Field(default_factory=list)
    env: Dict[str, str] = Field(default_factory=dict)
    secrets: List[str] = Field(default_factory=list)
    permissions: Dict[str, Permission] = Field(default_factory=dict)
    optional: bool = False
    continue_on_error: bool = Field(default=False, alias="continue-on-error")
    timeout_minutes: Optional[float] = Field(default=None, alias="timeout-minutes", gt=0)
    steps: List[StepSpec] = Field(min_length=1)

    @field_validator("env", mode="before")
    @classmethod
    def validate_string_values(cls, v: Any) -> Any:
        return _stringify_mapping(v)

    @field_validator("needs", "secrets", mode="before")
    @classmethod
    def validate_one_or_many(cls, v: Any) -> Any:
        if v is None:
            return []
        return [v] if isinstance(v, str) else v

    @field_validator("runs_on", mode="before")
    @classmethod
    def validate_runs_on(cls, v: Any) -> Any:
        # `runs-on: [self-hosted, linux]` -> first label
        if isinstance(v, list):
            return str(v[0]) if v else "local"
        return v

    @field_validator("permissions", mode="before")
    @classmethod
    def validate_permissions(cls, v: Any) -> Any:
        # read-all / write-all shorthand
        if isinstance(v, str):
            level = v.split("-", 1)[0]
            return {"*": level}
        return v or {}


class PipelineSpec(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    name: Optional[str] = None
    on: Union[str, List[str], Dict[str, Optional[TriggerSpec]]] = Field(default_factory=dict)
    env: Dict[str, str] = Field(default_factory=dict)
    jobs: Dict[str, JobSpec] = Field(min_length=1)

    @field_validator("env", mode="before")
    @classmethod
    def validate_string_values(cls, v: Any) -> Any:
        return _stringify_mapping(v)

    def triggers(self) -> List[Trigger]:
        if isinstance(self.on, str):
            return [Trigger(event=self.on)]
        if isinstance(self.on, list):
            return [Trigger(event=e) for e in self.on]
        return [
            Trigger(event=event, branches=tuple(filt.branches) if filt else ())
            for event, filt in self.on.items()
        ]

    def to_pipeline(self, default_name: str = "pipeline") -> Pipeline:
        jobs: List[Job] = []
        for job_id, js in self.jobs.items():
            steps = [
                Step(
                    name=s.display_name(),
                    run=s.run,
                    uses=s.uses,
                    inputs=dict(s.with_),
                    env=dict(s.env),
                    cwd=s.working_directory,
                    timeout=s.timeout_minutes * 60 if s.timeout_minutes else None,
                )
                for s in js.steps
            ]
            jobs.append(
                Job(
                    name=job_id,
                    steps=steps,
                    needs=list(js.needs),
                    env=dict(js.env),
                    secrets=list(js.secrets),
                    permissions=dict(js.permissions),
                    runs_on=js.runs_on,
                    optional=js.optional or js.continue_on_error,
                    timeout=js.timeout_minutes * 60 if js.timeout_minutes else None,
                    display_name=js.name,
                )
            )
        return Pipeline(
            name=self.name or default_name,
            jobs=jobs,
            triggers=self.triggers(),
            env=dict(self.env),
        )
