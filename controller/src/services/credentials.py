"""
Credential stores and scoped credential injection.

Pipelines only ever reference credential identifiers. Values are looked up
right before a step runs, handed to that step alone and dropped afterwards.
"""

import base64
import logging
import os
import re
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, Mapping, Optional, Set

import yaml
from pydantic import BaseModel, SecretStr

from controller.src.config import Settings
from controller.src.models.step import CredentialBinding

logger = logging.getLogger(__name__)

MASK = "****"

class CredentialResolutionError(Exception):
    """Raised when a credential identifier cannot be resolved."""

    def __init__(self, credential_id: str, reason: str):
        self.credential_id = credential_id
        self.reason = reason
        super().__init__(f"Could not resolve credential '{credential_id}': {reason}")

class ResolvedCredential(BaseModel):
    id: str
    username: str
    password: SecretStr

class CredentialStore:
    """Looks up a username/password pair by identifier."""

    def resolve(self, credential_id: str) -> ResolvedCredential:
        raise NotImplementedError

class EnvCredentialStore(CredentialStore):
    """
    Reads SHIPLINE_CREDENTIAL_<ID>_USERNAME / _PASSWORD.
    The identifier is upper-cased and non-alphanumerics become underscores,
    so `docker-cred` maps to SHIPLINE_CREDENTIAL_DOCKER_CRED_*.
    """

    def __init__(self, environ: Optional[Mapping[str, str]] = None, prefix: str = "SHIPLINE_CREDENTIAL_"):
        self._environ = environ if environ is not None else os.environ
        self._prefix = prefix

    def variable_prefix(self, credential_id: str) -> str:
        return self._prefix + re.sub(r"[^A-Za-z0-9]", "_", credential_id).upper()

    def resolve(self, credential_id: str) -> ResolvedCredential:
        prefix = self.variable_prefix(credential_id)
        username = self._environ.get(f"{prefix}_USERNAME")
        password = self._environ.get(f"{prefix}_PASSWORD")

        if username is None or password is None:
            raise CredentialResolutionError(credential_id, f"{prefix}_USERNAME/_PASSWORD not set")

        return ResolvedCredential(id=credential_id, username=username, password=password)

class FileCredentialStore(CredentialStore):
    """YAML file of `id: {username, password}` entries, re-read on every lookup."""

    def __init__(self, path: str):
        self.path = path

    def resolve(self, credential_id: str) -> ResolvedCredential:
        try:
            with open(self.path, "r") as f:
                entries = yaml.safe_load(f) or {}
        except FileNotFoundError:
            raise CredentialResolutionError(credential_id, f"credentials file {self.path} not found")
        except yaml.YAMLError as e:
            raise CredentialResolutionError(credential_id, f"credentials file is not valid YAML: {e}")

        if not isinstance(entries, dict):
            raise CredentialResolutionError(credential_id, "credentials file must be a mapping")

        entry = entries.get(credential_id)
        if not isinstance(entry, dict):
            raise CredentialResolutionError(credential_id, "not found")

        if "username" not in entry or "password" not in entry:
            raise CredentialResolutionError(credential_id, "entry needs 'username' and 'password'")

        return ResolvedCredential(
            id=credential_id,
            username=str(entry["username"]),
            password=str(entry["password"]),
        )

class KubernetesSecretCredentialStore(CredentialStore):
    """Reads a Secret named after the identifier, with `username` and `password` keys."""

    def __init__(self, namespace: str):
        self.namespace = namespace

    def resolve(self, credential_id: str) -> ResolvedCredential:
        from kubernetes.client.rest import ApiException
        from controller.src.k8s.client import get_core_api

        try:
            secret = get_core_api().read_namespaced_secret(name=credential_id, namespace=self.namespace)
        except ApiException as e:
            if e.status == 404:
                raise CredentialResolutionError(credential_id, f"secret not found in namespace {self.namespace}")
            raise CredentialResolutionError(credential_id, f"Kubernetes API error: {e.reason}")

        data = secret.data or {}
        if "username" not in data or "password" not in data:
            raise CredentialResolutionError(credential_id, "secret needs 'username' and 'password' keys")

        return ResolvedCredential(
            id=credential_id,
            username=base64.b64decode(data["username"]).decode(),
            password=base64.b64decode(data["password"]).decode(),
        )

def get_credential_store(settings: Settings) -> CredentialStore:
    """Build the credential store selected in settings."""
    if settings.credential_store == "env":
        return EnvCredentialStore()
    if settings.credential_store == "file":
        return FileCredentialStore(settings.credentials_file)
    if settings.credential_store == "kubernetes":
        return KubernetesSecretCredentialStore(settings.k8s_namespace)
    raise ValueError(f"Unknown credential store '{settings.credential_store}'")

@dataclass
class BoundCredentials:
    env: Dict[str, str] = field(default_factory=dict)
    secrets: Set[str] = field(default_factory=set)

    def mask(self, text: Optional[str]) -> Optional[str]:
        return mask_secrets(text, self.secrets)

@contextmanager
def bind_credentials(store: CredentialStore, bindings: Iterable[CredentialBinding]) -> Iterator[BoundCredentials]:
    """
    Resolve every binding, then yield the injected variables.
    All bindings resolve before the caller runs anything, and the values are
    cleared when the block exits, whatever happens inside it.
    """
    bound = BoundCredentials()
    try:
        for binding in bindings:
            credential = store.resolve(binding.id)
            password = credential.password.get_secret_value()
            bound.env[binding.username_variable] = credential.username
            bound.env[binding.password_variable] = password
            bound.secrets.update(v for v in (credential.username, password) if v)
            logger.debug(f"Bound credential '{binding.id}' to {binding.username_variable}/{binding.password_variable}")
        yield bound
    finally:
        bound.env.clear()
        bound.secrets.clear()

def mask_secrets(text: Optional[str], secrets: Iterable[str]) -> Optional[str]:
    """Replace every secret value in text with a fixed mask."""
    if not text:
        return text
    # Longest first so a secret containing another is masked whole
    for secret in sorted((s for s in secrets if s), key=len, reverse=True):
        text = text.replace(secret, MASK)
    return text
