"""Docker command builders.

This module provides the container tool collaborator: building, logging
in to a registry and pushing images.
"""

from __future__ import annotations

from typing import Any, Dict, List

from .types import ActionContext, ActionError, CommandSpec


def _require(params: Dict[str, Any], key: str, action: str) -> str:
    value = params.get(key)
    if value in (None, ""):
        raise ActionError(f"{action}: missing required parameter '{key}'")
    return str(value)


def build(params: Dict[str, Any], context: ActionContext) -> List[CommandSpec]:
    """Build an image from a Dockerfile.

    Args:
        params: ``tag`` (required), ``dockerfile`` (default "Dockerfile"),
            ``context`` (default "."), optional ``build_args`` mapping and
            ``platform``
        context: Action context (unused)

    Returns:
        A single ``docker build`` command

    Example:
        >>> build({"tag": "myrepo/app:latest"}, ctx)[0].argv
        ['docker', 'build', '-t', 'myrepo/app:latest', '-f', 'Dockerfile', '.']
    """
    tag = _require(params, "tag", "docker/build")
    argv = ["docker", "build", "-t", tag, "-f", str(params.get("dockerfile", "Dockerfile"))]

    build_args = params.get("build_args") or {}
    if not isinstance(build_args, dict):
        raise ActionError("docker/build: 'build_args' must be a mapping")
    for key, value in build_args.items():
        argv.extend(["--build-arg", f"{key}={value}"])

    if params.get("platform"):
        argv.extend(["--platform", str(params["platform"])])

    argv.append(str(params.get("context", ".")))
    return [CommandSpec(argv=argv)]


def login(params: Dict[str, Any], context: ActionContext) -> List[CommandSpec]:
    """Log in to a registry.

    The password is passed on standard input so it never appears in the
    process table.

    Args:
        params: ``username`` and ``password`` (required, usually
            ``${VAR}`` references to a credential binding), optional
            ``registry`` (defaults to Docker Hub)
        context: Action context (unused)

    Returns:
        A single ``docker login --password-stdin`` command
    """
    username = _require(params, "username", "docker/login")
    password = _require(params, "password", "docker/login")

    argv = ["docker", "login", "-u", username, "--password-stdin"]
    if params.get("registry"):
        argv.append(str(params["registry"]))
    return [CommandSpec(argv=argv, stdin=password)]


def push(params: Dict[str, Any], context: ActionContext) -> List[CommandSpec]:
    """Push an image to its registry.

    Args:
        params: ``image`` (or ``tag``) to push
        context: Action context (unused)

    Returns:
        A single ``docker push`` command
    """
    image = params.get("image") or params.get("tag")
    if not image:
        raise ActionError("docker/push: missing required parameter 'image'")
    return [CommandSpec(argv=["docker", "push", str(image)])]
