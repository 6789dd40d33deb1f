# actions/docker.py
from __future__ import annotations

import shlex
from pathlib import Path
from typing import Iterable, List, Mapping

from ..model import Step
from .base import (
    ActionCommand,
    ActionContext,
    as_bool,
    register_action,
    require_tool,
    split_list,
)

CONTAINER_WORKDIR = "/workspace"


# ---------------------------------------------------------------------
# Step helpers
# ---------------------------------------------------------------------

def docker_step(
    name: str,
    cmd: str,
    image: str,
    *,
    cwd: str | None = None,
    volumes: List[str] | None = None,
    env: dict[str, str] | None = None,
    user: str | None = None,
) -> Step:
    """Create a step that runs `cmd` inside a throwaway container."""
    inputs = {"image": image, "run": cmd}
    if volumes:
        inputs["volumes"] = "\n".join(volumes)
    if user:
        inputs["user"] = user
    return Step(name=name, uses="docker/run", inputs=inputs, env=dict(env or {}), cwd=cwd)


def docker_login_step(
    name: str,
    *,
    username: str,
    password: str,
    registry: str | None = None,
) -> Step:
    """Log in to a registry. Pass the password as a `${{ secrets.X }}` binding."""
    inputs = {"username": username, "password": password}
    if registry:
        inputs["registry"] = registry
    return Step(name=name, uses="docker/login", inputs=inputs)


def docker_build_push_step(
    name: str,
    *,
    tags: List[str],
    context: str = ".",
    file: str | None = None,
    push: bool = True,
) -> Step:
    inputs = {"context": context, "tags": "\n".join(tags), "push": "true" if push else "false"}
    if file:
        inputs["file"] = file
    return Step(name=name, uses="docker/build-push", inputs=inputs)


# ---------------------------------------------------------------------
# Command construction
# ---------------------------------------------------------------------

def docker_run_args(
    cmd: str,
    image: str,
    *,
    workspace: Path,
    cwd: str | None = None,
    env_keys: Iterable[str] = (),
    volumes: Iterable[str] = (),
    user: str | None = None,
) -> List[str]:
    """
    argv for running `cmd` in `image` with the workspace mounted at /workspace.

    Env vars are forwarded by name only (`-e KEY`), so docker copies the
    values from the calling process and they never appear on a command line.
    """
    args = ["docker", "run", "--rm", "-v", f"{Path(workspace).resolve()}:{CONTAINER_WORKDIR}"]
    for vol in volumes:
        args.extend(["-v", vol])

    step_cwd = cwd or "."
    container_cwd = f"{CONTAINER_WORKDIR}/{step_cwd}".replace("//", "/")
    if container_cwd.endswith("/."):
        container_cwd = container_cwd[:-2]
    args.extend(["-w", container_cwd])

    for key in sorted(set(env_keys)):
        args.extend(["-e", key])

    if user:
        args.extend(["--user", user])

    args.append(image)
    args.extend(["sh", "-c", cmd])
    return args


def wrap_in_docker(cmd: str, image: str, **kwargs) -> str:
    """Shell command equivalent of docker_run_args()."""
    return f"{require_tool('docker')} && {shlex.join(docker_run_args(cmd, image, **kwargs))}"


# ---------------------------------------------------------------------
# Action builders
# ---------------------------------------------------------------------

def build_docker_run(inputs: Mapping[str, str], ctx: ActionContext) -> ActionCommand:
    run = wrap_in_docker(
        inputs["run"],
        inputs["image"],
        workspace=ctx.workspace,
        cwd=ctx.cwd,
        env_keys=ctx.env_keys,
        volumes=split_list(inputs.get("volumes")),
        user=inputs.get("user") or None,
    )
    return ActionCommand(run=run)


def build_docker_login(inputs: Mapping[str, str], ctx: ActionContext) -> ActionCommand:
    argv = ["docker", "login"]
    if inputs.get("registry"):
        argv.append(inputs["registry"])
    argv.extend(["--username", inputs["username"], "--password-stdin"])
    run = (
        f"{require_tool('docker')} && "
        f"printf '%s' \"$RELAYCI_DOCKER_PASSWORD\" | {shlex.join(argv)}"
    )
    return ActionCommand(run=run, env={"RELAYCI_DOCKER_PASSWORD": inputs["password"]})


def build_docker_build_push(inputs: Mapping[str, str], ctx: ActionContext) -> ActionCommand:
    tags = split_list(inputs.get("tags"))
    if not tags:
        raise ValueError("docker/build-push needs at least one tag")

    build = ["docker", "build"]
    if inputs.get("file"):
        build.extend(["-f", inputs["file"]])
    for tag in tags:
        build.extend(["-t", tag])
    build.append(inputs.get("context") or ".")

    parts = [require_tool("docker"), shlex.join(build)]
    if as_bool(inputs.get("push"), default=False):
        parts.extend(shlex.join(["docker", "push", tag]) for tag in tags)
    return ActionCommand(run=" && ".join(parts))


register_action(
    "docker/run",
    build_docker_run,
    required=("image", "run"),
    description="Run a command inside a container with the workspace mounted",
)
register_action(
    "docker/login",
    build_docker_login,
    required=("username", "password"),
    aliases=("docker/login-action",),
    description="Log in to a container registry",
)
register_action(
    "docker/build-push",
    build_docker_build_push,
    required=("tags",),
    aliases=("docker/build-push-action",),
    description="Build an image and optionally push its tags",
)
