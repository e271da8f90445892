"""Helm command builders.

This module provides the cluster deployment collaborator: an idempotent
``helm upgrade --install`` of a release.
"""

from __future__ import annotations

from typing import Any, Dict, List

from .types import ActionContext, ActionError, CommandSpec


def upgrade_install(params: Dict[str, Any], context: ActionContext) -> List[CommandSpec]:
    """Deploy or upgrade a Helm release.

    If the release doesn't exist it is installed, otherwise upgraded, so
    re-running the step after a fix converges on the same state.

    Args:
        params: ``release`` and ``chart`` (required); ``namespace``
            (default "default"); ``helm`` binary (default ``$HELM`` when the
            step environment defines it, else ``helm``);
            ``create_namespace`` (default true); ``wait``; ``timeout``;
            ``values`` list of files; ``set`` mapping; ``kubeconfig``
        context: Action context; its environment is consulted for ``HELM``

    Returns:
        A single ``helm upgrade --install`` command

    Example:
        >>> upgrade_install({"release": "app", "chart": "./helm/app"}, ctx)[0].argv
        ['helm', 'upgrade', '--install', 'app', './helm/app', '--namespace', 'default', '--create-namespace']
    """
    for key in ("release", "chart"):
        if not params.get(key):
            raise ActionError(f"helm/upgrade-install: missing required parameter '{key}'")

    if params.get("helm"):
        helm = str(params["helm"])
    elif context.env.get("HELM"):
        helm = "${HELM}"
    else:
        helm = "helm"

    argv = [
        helm, "upgrade", "--install",
        str(params["release"]),
        str(params["chart"]),
        "--namespace", str(params.get("namespace", "default")),
    ]

    if params.get("create_namespace", True):
        argv.append("--create-namespace")
    if params.get("wait"):
        argv.append("--wait")
    if params.get("timeout"):
        argv.extend(["--timeout", str(params["timeout"])])
    if params.get("kubeconfig"):
        argv.extend(["--kubeconfig", str(params["kubeconfig"])])

    values = params.get("values") or []
    if isinstance(values, str):
        values = [values]
    for values_file in values:
        argv.extend(["-f", str(values_file)])

    overrides = params.get("set") or {}
    if not isinstance(overrides, dict):
        raise ActionError("helm/upgrade-install: 'set' must be a mapping")
    for key, value in overrides.items():
        argv.extend(["--set", f"{key}={value}"])

    return [CommandSpec(argv=argv)]
