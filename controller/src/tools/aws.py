"""AWS CLI command builders."""

from __future__ import annotations

from typing import Any, Dict, List

from .types import ActionContext, ActionError, CommandSpec


def update_kubeconfig(params: Dict[str, Any], context: ActionContext) -> List[CommandSpec]:
    """Write cluster access configuration for an EKS cluster.

    Args:
        params: ``region`` and ``cluster`` (required), optional
            ``kubeconfig`` path, ``role_arn`` and ``alias``
        context: Action context (unused)

    Returns:
        A single ``aws eks update-kubeconfig`` command
    """
    for key in ("region", "cluster"):
        if not params.get(key):
            raise ActionError(f"aws/update-kubeconfig: missing required parameter '{key}'")

    argv = [
        "aws", "eks", "update-kubeconfig",
        "--region", str(params["region"]),
        "--name", str(params["cluster"]),
    ]
    if params.get("kubeconfig"):
        argv.extend(["--kubeconfig", str(params["kubeconfig"])])
    if params.get("role_arn"):
        argv.extend(["--role-arn", str(params["role_arn"])])
    if params.get("alias"):
        argv.extend(["--alias", str(params["alias"])])
    return [CommandSpec(argv=argv)]
