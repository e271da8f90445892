from api.src.models.pipeline import Repository, PipelineRun, PipelineStage, PipelineStep
from api.src.models.run import (
    PipelineRunResponse,
    StageResponse,
    StepResponse,
    RepositoryResponse,
    ManualTriggerRequest,
)

__all__ = [
    "Repository",
    "PipelineRun",
    "PipelineStage",
    "PipelineStep",
    "PipelineRunResponse",
    "StageResponse",
    "StepResponse",
    "RepositoryResponse",
    "ManualTriggerRequest",
]
