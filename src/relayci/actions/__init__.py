from .base import (
    Action,
    ActionCommand,
    ActionContext,
    action_name,
    get_action,
    known_actions,
    register_action,
)
from . import checkout, docker, lint  # noqa: F401  (register built-ins)
from .checkout import checkout_step
from .docker import docker_build_push_step, docker_login_step, docker_step
from .lint import lint_step

__all__ = [
    "Action",
    "ActionCommand",
    "ActionContext",
    "action_name",
    "get_action",
    "known_actions",
    "register_action",
    "checkout_step",
    "docker_step",
    "docker_login_step",
    "docker_build_push_step",
    "lint_step",
]
