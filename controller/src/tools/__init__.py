"""External tool collaborators.

Each ``uses:`` action maps to a builder that turns the step's ``with``
parameters into one or more commands for git, docker, the AWS CLI or helm.
"""

from typing import Callable, Dict, List

from controller.src.models.step import StepConfig
from controller.src.tools import aws, docker, git, helm
from controller.src.tools.types import (
    ActionContext,
    ActionError,
    CommandResult,
    CommandSpec,
    UnknownActionError,
)

ActionBuilder = Callable[[dict, ActionContext], List[CommandSpec]]

ACTIONS: Dict[str, ActionBuilder] = {
    "checkout": git.checkout,
    "docker/build": docker.build,
    "docker/login": docker.login,
    "docker/push": docker.push,
    "aws/update-kubeconfig": aws.update_kubeconfig,
    "helm/upgrade-install": helm.upgrade_install,
}

def build_commands(step: StepConfig, context: ActionContext) -> List[CommandSpec]:
    """Turn a step definition into the commands to execute."""
    if step.uses:
        builder = ACTIONS.get(step.uses)
        if builder is None:
            raise UnknownActionError(f"Unknown action '{step.uses}'")
        return builder(step.with_, context)

    if not step.run:
        raise ActionError(f"Step '{step.name}' has neither 'run' nor 'uses'")

    # The shell sees the step environment directly, so no placeholder expansion
    return [CommandSpec(argv=["/bin/sh", "-c", " && ".join(step.run)], expand=False)]

__all__ = [
    "ACTIONS",
    "build_commands",
    "ActionContext",
    "ActionError",
    "CommandResult",
    "CommandSpec",
    "UnknownActionError",
]
