# secrets.py
from __future__ import annotations

import os
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Set, Tuple

import yaml

from .errors import DefinitionError, ScopeViolation, SecretNotFound
from .events import Event
from .model import Job, Secret

REDACTED = "***"


# ---------------------------------------------------------------------
# Secret stores: key lookup by name, nothing else
# ---------------------------------------------------------------------

class SecretStore:
    """Look up a secret value by name. Returns None when unknown."""

    def get(self, name: str) -> Optional[str]:
        raise NotImplementedError

    def hidden_env_keys(self, environ: Mapping[str, str]) -> Set[str]:
        """Host environment variables that hold this store's secrets."""
        return set()


class MappingSecretStore(SecretStore):
    def __init__(self, values: Optional[Mapping[str, str]] = None):
        self._values: Dict[str, str] = dict(values or {})

    def get(self, name: str) -> Optional[str]:
        return self._values.get(name)


class EnvSecretStore(SecretStore):
    """
    Secrets from environment variables: secret FOO is read from
    `<prefix>FOO` (prefix defaults to RELAYCI_SECRET_).

    Those variables are withheld from step environments, so a step only
    sees a secret through a scoped `${{ secrets.FOO }}` binding.
    """

    def __init__(self, prefix: str = "RELAYCI_SECRET_", environ: Optional[Mapping[str, str]] = None):
        if not prefix:
            raise ValueError("EnvSecretStore needs a non-empty prefix")
        self.prefix = prefix
        self._environ = environ if environ is not None else os.environ

    def get(self, name: str) -> Optional[str]:
        return self._environ.get(f"{self.prefix}{name}")

    def hidden_env_keys(self, environ: Mapping[str, str]) -> Set[str]:
        return {k for k in environ if k.startswith(self.prefix)}


class FileSecretStore(MappingSecretStore):
    """Secrets from a flat YAML mapping file (NAME: value)."""

    def __init__(self, path: str | Path):
        self.path = Path(path).expanduser()
        if not self.path.exists():
            raise FileNotFoundError(f"Secrets file not found: {self.path}")
        data = yaml.safe_load(self.path.read_text(encoding="utf-8")) or {}
        if not isinstance(data, dict):
            raise DefinitionError("Secrets file must contain a mapping of NAME: value", source=str(self.path))
        super().__init__({str(k): "" if v is None else str(v) for k, v in data.items()})


class ChainSecretStore(SecretStore):
    """First store that knows the name wins."""

    def __init__(self, *stores: SecretStore):
        self.stores = list(stores)

    def get(self, name: str) -> Optional[str]:
        for store in self.stores:
            value = store.get(name)
            if value is not None:
                return value
        return None

    def hidden_env_keys(self, environ: Mapping[str, str]) -> Set[str]:
        hidden: Set[str] = set()
        for store in self.stores:
            hidden |= store.hidden_env_keys(environ)
        return hidden


# ---------------------------------------------------------------------
# Provider
# ---------------------------------------------------------------------

class ContextProvider:
    """
    Read-only view of secrets and event context for one run.

    Shared by every job worker; it holds no mutable state, so no locking.
    """

    def __init__(self, store: SecretStore, event: Event, run_id: str = ""):
        self.store = store
        self.event = event
        self.run_id = run_id
        self._context = {**event.context(), "run_id": run_id}

    def secret(self, job: Job, name: str) -> Secret:
        # scope is checked before the store is consulted
        if name not in job.secrets:
            raise ScopeViolation(job=job.name, name=name)
        value = self.store.get(name)
        if value is None:
            raise SecretNotFound(job=job.name, name=name)
        return Secret(name=name, value=value)

    def context(self, key: str) -> str:
        return self._context[key]

    def context_env(self) -> Dict[str, str]:
        """Context exported to every step as RELAYCI_* variables."""
        env = {"CI": "true", "RELAYCI": "true"}
        for key, value in self._context.items():
            env[f"RELAYCI_{key.upper()}"] = value
        return env

    def host_env(self) -> Dict[str, str]:
        """The host environment minus the variables the store reads secrets from."""
        hidden = self.store.hidden_env_keys(os.environ)
        return {k: v for k, v in os.environ.items() if k not in hidden}


class Redactor:
    """
    Masks secret values in text. One instance per job: it only knows the
    values that job resolved.
    """

    def __init__(self, values: Iterable[str] = ()):
        self._values: List[str] = []
        for v in values:
            self.add(v)

    def add(self, value: str) -> None:
        if value and value not in self._values:
            self._values.append(value)
            self._values.sort(key=len, reverse=True)

    @property
    def longest(self) -> int:
        return len(self._values[0]) if self._values else 0

    def _spans(self, text: str) -> List[Tuple[int, int]]:
        """Merged [start, end) ranges of every secret occurrence in `text`."""
        spans: List[Tuple[int, int]] = []
        for v in self._values:
            i = text.find(v)
            while i != -1:
                spans.append((i, i + len(v)))
                i = text.find(v, i + 1)
        spans.sort()
        merged: List[Tuple[int, int]] = []
        for a, b in spans:
            if merged and a < merged[-1][1]:
                merged[-1] = (merged[-1][0], max(merged[-1][1], b))
            else:
                merged.append((a, b))
        return merged

    def _mask(self, text: str, start: int = 0) -> str:
        out: List[str] = []
        pos = start
        for a, b in self._spans(text):
            if b <= start:
                continue
            if a > pos:
                out.append(text[pos:a])
            out.append(REDACTED)
            pos = max(pos, b)
        out.append(text[pos:])
        return "".join(out)

    def __call__(self, text: Optional[str]) -> str:
        if not text:
            return text or ""
        return self._mask(text)

    def tail(self, text: Optional[str], limit: int, *, truncated: bool = False) -> str:
        """
        Mask `text`, then keep its last `limit` characters.

        `truncated` means `text` is the end of a longer stream: its first
        `longest - 1` characters may hold the remainder of a secret that
        started before the cut, so they are dropped unless masked.
        """
        if not text:
            return ""
        start = max(0, self.longest - 1) if truncated else 0
        masked = self._mask(text, start)
        return masked[-limit:] if len(masked) > limit else masked
