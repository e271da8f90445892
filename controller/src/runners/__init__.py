from controller.src.config import Settings
from controller.src.runners.base import CancelCheck, StepInvocation, StepRunner
from controller.src.runners.local import LocalStepRunner

def get_step_runner(settings: Settings) -> StepRunner:
    """Build the step runner selected in settings."""
    if settings.step_runner == "local":
        return LocalStepRunner(
            workspace_root=settings.workspace_root,
            keep_workspace=settings.keep_workspace,
            poll_interval=settings.poll_interval,
        )
    if settings.step_runner == "kubernetes":
        from controller.src.runners.kubernetes import KubernetesStepRunner
        return KubernetesStepRunner(settings)
    raise ValueError(f"Unknown step runner '{settings.step_runner}'")

__all__ = [
    "CancelCheck",
    "StepInvocation",
    "StepRunner",
    "LocalStepRunner",
    "get_step_runner",
]
