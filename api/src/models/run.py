from pydantic import BaseModel
from typing import Optional, List
from datetime import datetime
from uuid import UUID

class StepBase(BaseModel):
    name: str
    action: Optional[str] = None
    commands: List[str]

class StepResponse(StepBase):
    id: UUID
    status: str
    stage_order: int
    step_order: int
    exit_code: Optional[int] = None
    logs: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class StageResponse(BaseModel):
    id: UUID
    name: str
    branches: List[str] = []
    status: str
    reason: Optional[str] = None
    stage_order: int
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    steps: List[StepResponse] = []

    class Config:
        from_attributes = True

class PipelineRunBase(BaseModel):
    commit_sha: str
    branch: str

class PipelineRunResponse(PipelineRunBase):
    id: UUID
    status: str
    message: Optional[str] = None
    triggered_by: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    created_at: datetime
    stages: List[StageResponse] = []

    class Config:
        from_attributes = True

class RepositoryResponse(BaseModel):
    id: UUID
    name: str
    full_name: str
    clone_url: str
    created_at: datetime

    class Config:
        from_attributes = True

class ManualTriggerRequest(BaseModel):
    repository_url: str
    branch: str = "main"
    commit_sha: Optional[str] = None
