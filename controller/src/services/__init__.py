from controller.src.services.executor import PipelineExecutor, RunContext, execute_pipeline, get_executor
from controller.src.services.credentials import (
    CredentialResolutionError,
    CredentialStore,
    EnvCredentialStore,
    FileCredentialStore,
    KubernetesSecretCredentialStore,
    bind_credentials,
    get_credential_store,
    mask_secrets,
)
from controller.src.services.notifier import Notifier
from controller.src.services.status_reporter import StatusReporter, DatabaseStatusReporter

__all__ = [
    "PipelineExecutor",
    "RunContext",
    "execute_pipeline",
    "get_executor",
    "CredentialResolutionError",
    "CredentialStore",
    "EnvCredentialStore",
    "FileCredentialStore",
    "KubernetesSecretCredentialStore",
    "bind_credentials",
    "get_credential_store",
    "mask_secrets",
    "Notifier",
    "StatusReporter",
    "DatabaseStatusReporter",
]
