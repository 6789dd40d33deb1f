# expressions.py
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Iterator, Tuple, Union

# ---------------------------------------------------------------------
# ${{ namespace.key }} bindings
# ---------------------------------------------------------------------
# Pipelines never rely on shell interpolation of engine values. Every
# engine-provided value is written as an explicit `${{ ns.key }}` binding,
# parsed once while the DAG is built and rendered right before a step runs.
#
#   secrets.NAME   value from the secret store (scope-checked at run time)
#   github.KEY     event context (sha, ref, ref_name, actor, ...)
#   env.NAME       a declared pipeline/job/step env variable
#
# Plain `$VAR` text is left alone: that is the step shell's business.
# ---------------------------------------------------------------------

NAMESPACES = ("secrets", "github", "env")

CONTEXT_KEYS = (
    "sha",
    "ref",
    "ref_name",
    "actor",
    "repository",
    "event_name",
    "base_ref",
    "run_id",
)

_EXPR = re.compile(r"\$\{\{(.*?)\}\}")
_REF = re.compile(r"^([A-Za-z_][A-Za-z0-9_]*)\.([A-Za-z_][A-Za-z0-9_\-]*)$")


class ExpressionError(ValueError):
    """Raised for text inside ${{ }} that is not a `namespace.key` reference."""

    def __init__(self, expression: str, reason: str):
        super().__init__(f"{expression!r}: {reason}")
        self.expression = expression
        self.reason = reason


@dataclass(frozen=True)
class Reference:
    namespace: str
    key: str

    def __str__(self) -> str:
        return f"{self.namespace}.{self.key}"


Part = Union[str, Reference]


@dataclass(frozen=True)
class Template:
    """A string split into literal text and typed references."""
    parts: Tuple[Part, ...]

    @property
    def references(self) -> Tuple[Reference, ...]:
        return tuple(p for p in self.parts if isinstance(p, Reference))

    @property
    def is_literal(self) -> bool:
        return not self.references

    def render(self, resolve: Callable[[Reference], str]) -> str:
        return "".join(p if isinstance(p, str) else resolve(p) for p in self.parts)

    def __str__(self) -> str:
        return "".join(p if isinstance(p, str) else f"${{{{ {p} }}}}" for p in self.parts)


def _iter_parts(text: str) -> Iterator[Part]:
    pos = 0
    for m in _EXPR.finditer(text):
        if m.start() > pos:
            yield text[pos:m.start()]
        inner = m.group(1).strip()
        ref = _REF.match(inner)
        if not ref:
            raise ExpressionError(inner, "expected a `namespace.key` reference")
        yield Reference(namespace=ref.group(1), key=ref.group(2))
        pos = m.end()
    if pos < len(text):
        yield text[pos:]


def parse_template(text: str) -> Template:
    """
    Parse `text` into a Template.

    Raises ExpressionError on malformed bindings and on an unterminated `${{`.
    """
    parts = tuple(_iter_parts(text))
    for p in parts:
        if isinstance(p, str) and "${{" in p:
            raise ExpressionError(p.strip(), "unterminated `${{` binding")
    return Template(parts=parts)
