# loader.py
from __future__ import annotations

import runpy
from pathlib import Path
from typing import Any, Dict, List

import yaml
from pydantic import ValidationError

from .errors import DefinitionError
from .model import Pipeline
from .schema import PipelineSpec

DEFAULT_PIPELINE_FILES = ("relayci.yml", "relayci.yaml", "relayci_pipeline.py")
YAML_SUFFIXES = (".yml", ".yaml")


def find_pipeline_files(directory: str | Path = ".") -> List[Path]:
    """
    Find pipeline files in `directory`: the default names first, then any
    other *_pipeline.py file.
    """
    root = Path(directory)
    found: List[Path] = []
    for name in DEFAULT_PIPELINE_FILES:
        p = root / name
        if p.exists():
            found.append(p)
    for p in sorted(root.glob("*_pipeline.py")):
        if p not in found:
            found.append(p)
    return found


# ----------------------------------------------------------------------
# YAML documents
# ----------------------------------------------------------------------

def _format_validation_error(exc: ValidationError) -> List[str]:
    lines = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", ()))
        lines.append(f"{loc or '<root>'}: {err.get('msg')}")
    return lines


def parse_pipeline(data: Dict[str, Any], *, source: str | None = None, default_name: str = "pipeline") -> Pipeline:
    """Validate a decoded YAML/JSON document and turn it into a Pipeline."""
    if not isinstance(data, dict):
        raise DefinitionError("Pipeline document must be a mapping", source=source)

    data = dict(data)
    # YAML 1.1 reads a bare `on:` key as boolean True
    if True in data and "on" not in data:
        data["on"] = data.pop(True)

    try:
        spec = PipelineSpec.model_validate(data)
    except ValidationError as e:
        raise DefinitionError("Invalid pipeline definition", source=source, details=_format_validation_error(e)) from e
    return spec.to_pipeline(default_name=default_name)


def load_yaml_pipeline(path: str | Path) -> Pipeline:
    p = Path(path).expanduser().resolve()
    if not p.exists():
        raise FileNotFoundError(f"Pipeline file not found: {p}")
    try:
        data = yaml.safe_load(p.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise DefinitionError("Pipeline file is not valid YAML", source=str(p), details=[str(e)]) from e
    return parse_pipeline(data, source=str(p), default_name=p.stem)


# ----------------------------------------------------------------------
# Python pipeline files
# ----------------------------------------------------------------------

def load_python_pipeline(path: str | Path) -> Pipeline:
    """
    Load a pipeline from a python file path.

    The file must define either:
      - pipeline() -> Pipeline
      - PIPELINE = Pipeline(...)
    """
    p = Path(path).expanduser().resolve()
    if not p.exists():
        raise FileNotFoundError(f"Pipeline file not found: {p}")
    if p.suffix != ".py":
        raise DefinitionError(f"Pipeline must be a .py or .yml file, got: {p.name}")

    module_name = f"relayci_pipeline_{p.stem}"
    globals_dict = runpy.run_path(str(p), run_name=module_name)

    result = None
    factory = globals_dict.get("pipeline")
    if callable(factory):
        try:
            result = factory()
        except TypeError as e:
            if "positional argument" in str(e):
                raise DefinitionError(
                    "pipeline() must take no arguments. Build the Pipeline with the "
                    "`wf` helper: `from relayci import wf, job, sh` then "
                    "`def pipeline(): return wf('name', job(...), job(...))`",
                    source=str(p),
                ) from e
            raise
    elif "PIPELINE" in globals_dict:
        result = globals_dict["PIPELINE"]

    if not isinstance(result, Pipeline):
        raise DefinitionError(
            "Pipeline file must return/define a Pipeline. "
            "Define pipeline() -> Pipeline or PIPELINE = Pipeline(...).",
            source=str(p),
        )
    return result


def load_pipeline(path: str | Path) -> Pipeline:
    """Load a pipeline from a .py, .yml or .yaml file."""
    p = Path(path)
    if p.suffix in YAML_SUFFIXES:
        return load_yaml_pipeline(p)
    return load_python_pipeline(p)
