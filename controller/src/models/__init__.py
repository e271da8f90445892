from controller.src.models.step import (
    RunStatus,
    StepStatus,
    StageStatus,
    branch_matches,
    CredentialBinding,
    StepConfig,
    StageConfig,
    Notifications,
    PipelineConfig,
    PushEvent,
    StepResult,
    StageResult,
    PipelineRunResult,
    PipelineJob,
)

__all__ = [
    "RunStatus",
    "StepStatus",
    "StageStatus",
    "branch_matches",
    "CredentialBinding",
    "StepConfig",
    "StageConfig",
    "Notifications",
    "PipelineConfig",
    "PushEvent",
    "StepResult",
    "StageResult",
    "PipelineRunResult",
    "PipelineJob",
]
