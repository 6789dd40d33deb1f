# git.py
# Thin wrapper around the Git CLI, used to fill in event defaults
# (ref, sha, actor, repository) when a run is started locally.

from __future__ import annotations

import getpass
import subprocess
from pathlib import Path
from typing import Optional


def _git(args: list[str], cwd: Optional[str] = None) -> str:
    """
    Execute a git command and return its stdout with whitespace stripped.

    Raises subprocess.CalledProcessError when git exits non-zero and
    FileNotFoundError when git is not installed; callers decide whether
    that is fatal.
    """
    out = subprocess.check_output(
        ["git", *args],
        cwd=cwd,
        text=True,
        stderr=subprocess.DEVNULL,
    )
    return out.strip()


def repo_root(cwd: Optional[str] = None) -> Path:
    """Absolute path of the repository that contains `cwd`."""
    return Path(_git(["rev-parse", "--show-toplevel"], cwd=cwd))


def head_sha(cwd: Optional[str] = None) -> str:
    """Full SHA of HEAD. This is the `sha` of locally started events."""
    return _git(["rev-parse", "HEAD"], cwd=cwd)


def get_current_ref(cwd: Optional[str] = None) -> str:
    """
    Return the symbolic ref of HEAD (e.g. refs/heads/main).

    A detached HEAD has no symbolic ref, so the literal "HEAD" is returned.
    """
    try:
        return _git(["symbolic-ref", "-q", "HEAD"], cwd=cwd)
    except subprocess.CalledProcessError:
        return "HEAD"


def get_remote_url(remote: str = "origin", cwd: Optional[str] = None) -> str:
    return _git(["remote", "get-url", remote], cwd=cwd)


def user_name(cwd: Optional[str] = None) -> str:
    """
    Configured git user.name, falling back to the OS login name.
    """
    try:
        name = _git(["config", "user.name"], cwd=cwd)
    except (subprocess.CalledProcessError, FileNotFoundError):
        name = ""
    return name or getpass.getuser()


def repository_slug(url: str) -> str:
    """
    Turn a remote URL into an owner/name slug.

        git@github.com:acme/app.git   -> acme/app
        https://github.com/acme/app   -> acme/app
    """
    tail = url.rstrip("/")
    if tail.endswith(".git"):
        tail = tail[: -len(".git")]
    tail = tail.replace(":", "/")
    parts = [p for p in tail.split("/") if p]
    return "/".join(parts[-2:]) if len(parts) >= 2 else tail
