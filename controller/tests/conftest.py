"""Shared fixtures for controller tests: in-memory collaborators for the executor."""

from typing import Dict, List, Optional, Tuple

import pytest

from controller.src.models.step import PipelineConfig, PushEvent
from controller.src.runners import StepInvocation, StepRunner
from controller.src.services.credentials import (
    CredentialResolutionError,
    CredentialStore,
    ResolvedCredential,
)
from controller.src.services.executor import PipelineExecutor
from controller.src.services.notifier import Notifier
from controller.src.services.status_reporter import StatusReporter
from controller.src.tools import CommandResult

class RecordingRunner(StepRunner):
    """Pretends to run steps; outcomes are looked up by step name."""

    def __init__(self):
        self.invocations: List[StepInvocation] = []
        self.outcomes: Dict[str, CommandResult] = {}
        self.exports: Dict[str, Dict[str, str]] = {}
        self.prepared: List[str] = []
        self.cleaned: List[str] = []
        self.prepare_error: Optional[Exception] = None

    async def prepare(self, run_id):
        self.prepared.append(run_id)
        if self.prepare_error:
            raise self.prepare_error
        return "/tmp/shipline-test/workspace"

    async def run(self, invocation, is_cancelled):
        self.invocations.append(invocation)
        return self.outcomes.get(
            invocation.step_name,
            CommandResult(success=True, stdout=f"ran {invocation.step_name}"),
        )

    def read_exports(self, invocation):
        return dict(self.exports.get(invocation.step_name, {}))

    async def cleanup(self, run_id):
        self.cleaned.append(run_id)

    @property
    def ran(self) -> List[str]:
        return [i.step_name for i in self.invocations]

    def invocation(self, step_name: str) -> StepInvocation:
        for invocation in self.invocations:
            if invocation.step_name == step_name:
                return invocation
        raise KeyError(step_name)

class DictCredentialStore(CredentialStore):
    def __init__(self, entries: Dict[str, Tuple[str, str]]):
        self.entries = entries
        self.lookups: List[str] = []

    def resolve(self, credential_id):
        self.lookups.append(credential_id)
        if credential_id not in self.entries:
            raise CredentialResolutionError(credential_id, "not found")
        username, password = self.entries[credential_id]
        return ResolvedCredential(id=credential_id, username=username, password=password)

class RecordingReporter(StatusReporter):
    def __init__(self):
        self.events = []

    def run_started(self, result):
        self.events.append(("run", result.status.value))

    def run_finished(self, result):
        self.events.append(("run", result.status.value))

    def stage_update(self, run_id, stage):
        self.events.append(("stage", stage.name, stage.status.value))

    def step_update(self, run_id, step):
        self.events.append(("step", step.name, step.status.value))

class RecordingNotifier(Notifier):
    def __init__(self):
        super().__init__()
        self.sent = []

    async def notify(self, result):
        self.sent.append((result.status, result.message))

DEPLOY_PIPELINE = {
    "name": "Deploy to EKS",
    "trigger_branches": ["main", "develop", "feature-*"],
    "env": {
        "AWS_REGION": "us-east-1",
        "IMAGE": "myrepo/app:latest",
        "CLUSTER_NAME": "demo-cluster",
    },
    "notifications": {
        "success": "Deployment successful!",
        "failure": "Deployment failed!",
    },
    "stages": [
        {
            "name": "Checkout",
            "steps": [{"name": "Clone", "uses": "checkout"}],
        },
        {
            "name": "Build & Push",
            "steps": [
                {"name": "Build image", "uses": "docker/build", "with": {"tag": "${IMAGE}"}},
                {
                    "name": "Registry login",
                    "uses": "docker/login",
                    "with": {"username": "${DOCKER_USER}", "password": "${DOCKER_PASS}"},
                    "credentials": [
                        {
                            "id": "docker-cred",
                            "username_variable": "DOCKER_USER",
                            "password_variable": "DOCKER_PASS",
                        }
                    ],
                },
                {"name": "Push image", "uses": "docker/push", "with": {"image": "${IMAGE}"}},
            ],
        },
        {
            "name": "Deploy",
            "branches": ["main", "develop"],
            "credentials": [
                {
                    "id": "aws-cred",
                    "username_variable": "AWS_ACCESS_KEY_ID",
                    "password_variable": "AWS_SECRET_ACCESS_KEY",
                }
            ],
            "steps": [
                {
                    "name": "Update kubeconfig",
                    "uses": "aws/update-kubeconfig",
                    "with": {"region": "${AWS_REGION}", "cluster": "${CLUSTER_NAME}"},
                },
                {
                    "name": "Helm upgrade",
                    "uses": "helm/upgrade-install",
                    "with": {"release": "app", "chart": "./helm/app"},
                },
            ],
        },
    ],
}

ALL_STEPS = [
    "Clone",
    "Build image",
    "Registry login",
    "Push image",
    "Update kubeconfig",
    "Helm upgrade",
]

@pytest.fixture
def pipeline():
    return PipelineConfig.model_validate(DEPLOY_PIPELINE)

@pytest.fixture
def make_event():
    def _make(branch="main", commit_sha="abc123"):
        return PushEvent(
            branch=branch,
            commit_sha=commit_sha,
            clone_url="https://github.com/acme/app.git",
            repo_name="app",
            repo_full_name="acme/app",
        )
    return _make

@pytest.fixture
def runner():
    return RecordingRunner()

@pytest.fixture
def credential_store():
    return DictCredentialStore({
        "docker-cred": ("ci-bot", "d0cker-s3cret"),
        "aws-cred": ("AKIAEXAMPLE", "aws-s3cret-key"),
    })

@pytest.fixture
def reporter():
    return RecordingReporter()

@pytest.fixture
def notifier():
    return RecordingNotifier()

@pytest.fixture
def executor(runner, credential_store, reporter, notifier):
    return PipelineExecutor(
        runner=runner,
        credential_store=credential_store,
        reporter=reporter,
        notifier=notifier,
    )
