"""
Pipeline, stage and step execution models.
"""

from fnmatch import fnmatchcase
from pydantic import BaseModel, Field
from typing import List, Optional, Dict, Any
from datetime import datetime
from enum import Enum

class RunStatus(str, Enum):
    PENDING = "pending"
    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"

class StepStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"
    CANCELLED = "cancelled"

# Stages move through the same states as steps
StageStatus = StepStatus

def branch_matches(branch: str, patterns: List[str]) -> bool:
    """Empty filter matches every branch; entries may be glob patterns."""
    if not patterns:
        return True
    return any(branch == p or fnmatchcase(branch, p) for p in patterns)

class CredentialBinding(BaseModel):
    id: str
    username_variable: str = "USERNAME"
    password_variable: str = "PASSWORD"

class StepConfig(BaseModel):
    name: str
    run: List[str] = []
    uses: Optional[str] = None
    with_: Dict[str, Any] = Field(default_factory=dict, alias="with")
    image: Optional[str] = None
    env: Dict[str, str] = {}
    credentials: List[CredentialBinding] = []
    timeout: int = 600

    class Config:
        populate_by_name = True

class StageConfig(BaseModel):
    name: str
    branches: List[str] = []
    env: Dict[str, str] = {}
    credentials: List[CredentialBinding] = []
    steps: List[StepConfig]

    def applies_to(self, branch: str) -> bool:
        return branch_matches(branch, self.branches)

class Notifications(BaseModel):
    success: str = "Pipeline succeeded"
    failure: str = "Pipeline failed"

class PipelineConfig(BaseModel):
    name: str = "Unnamed Pipeline"
    trigger_branches: List[str] = []
    env: Dict[str, str] = {}
    notifications: Notifications = Notifications()
    stages: List[StageConfig]

    def should_trigger(self, branch: str) -> bool:
        return branch_matches(branch, self.trigger_branches)

class PushEvent(BaseModel):
    """Trigger event, as produced by the API's webhook parser."""
    branch: str
    commit_sha: str = ""
    clone_url: str = ""
    repo_name: str = ""
    repo_full_name: str = ""
    commit_message: str = ""
    pusher: str = ""

class StepResult(BaseModel):
    stage_order: int
    step_order: int
    name: str
    status: StepStatus = StepStatus.PENDING
    exit_code: Optional[int] = None
    logs: Optional[str] = None
    error: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

class StageResult(BaseModel):
    stage_order: int
    name: str
    status: StageStatus = StageStatus.PENDING
    reason: Optional[str] = None
    steps: List[StepResult] = []
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

class PipelineRunResult(BaseModel):
    run_id: str
    pipeline: str
    branch: str
    commit_sha: str = ""
    repository: str = ""
    status: RunStatus = RunStatus.PENDING
    message: Optional[str] = None
    stages: List[StageResult] = []
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    def stage(self, name: str) -> StageResult:
        for stage in self.stages:
            if stage.name == name:
                return stage
        raise KeyError(name)

class PipelineJob(BaseModel):
    run_id: str
    config: Dict[str, Any]
    repo_info: Dict[str, Any]
    queued_at: str
