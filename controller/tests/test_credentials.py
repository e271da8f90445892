"""Tests for credential stores and scoped injection."""

import pytest

from controller.src.config import Settings
from controller.src.models.step import CredentialBinding
from controller.src.services.credentials import (
    CredentialResolutionError,
    EnvCredentialStore,
    FileCredentialStore,
    bind_credentials,
    get_credential_store,
    mask_secrets,
)

def test_env_store_maps_identifier_to_variables():
    store = EnvCredentialStore({
        "SHIPLINE_CREDENTIAL_DOCKER_CRED_USERNAME": "ci-bot",
        "SHIPLINE_CREDENTIAL_DOCKER_CRED_PASSWORD": "hunter2",
    })

    credential = store.resolve("docker-cred")

    assert credential.username == "ci-bot"
    assert credential.password.get_secret_value() == "hunter2"
    assert "hunter2" not in repr(credential)

def test_env_store_missing_credential():
    store = EnvCredentialStore({"SHIPLINE_CREDENTIAL_AWS_CRED_USERNAME": "AKIA"})

    with pytest.raises(CredentialResolutionError) as exc_info:
        store.resolve("aws-cred")
    assert exc_info.value.credential_id == "aws-cred"

def test_file_store(tmp_path):
    path = tmp_path / "credentials.yml"
    path.write_text(
        "docker-cred:\n"
        "  username: ci-bot\n"
        "  password: hunter2\n"
        "broken:\n"
        "  username: only-user\n"
    )
    store = FileCredentialStore(str(path))

    assert store.resolve("docker-cred").username == "ci-bot"
    with pytest.raises(CredentialResolutionError, match="not found"):
        store.resolve("aws-cred")
    with pytest.raises(CredentialResolutionError, match="needs 'username' and 'password'"):
        store.resolve("broken")

def test_file_store_rereads_the_file(tmp_path):
    path = tmp_path / "credentials.yml"
    path.write_text("cred:\n  username: a\n  password: one\n")
    store = FileCredentialStore(str(path))
    assert store.resolve("cred").password.get_secret_value() == "one"

    path.write_text("cred:\n  username: a\n  password: two\n")
    assert store.resolve("cred").password.get_secret_value() == "two"

def test_file_store_missing_file(tmp_path):
    store = FileCredentialStore(str(tmp_path / "nope.yml"))
    with pytest.raises(CredentialResolutionError, match="not found"):
        store.resolve("cred")

def test_get_credential_store():
    assert isinstance(get_credential_store(Settings(credential_store="env")), EnvCredentialStore)
    store = get_credential_store(Settings(credential_store="file", credentials_file="/etc/shipline/creds.yml"))
    assert isinstance(store, FileCredentialStore)
    assert store.path == "/etc/shipline/creds.yml"
    with pytest.raises(ValueError):
        get_credential_store(Settings(credential_store="vault"))

def test_bind_credentials_clears_values_on_exit():
    store = EnvCredentialStore({
        "SHIPLINE_CREDENTIAL_DOCKER_USERNAME": "ci-bot",
        "SHIPLINE_CREDENTIAL_DOCKER_PASSWORD": "hunter2",
    })
    bindings = [CredentialBinding(id="docker", username_variable="U", password_variable="P")]

    with bind_credentials(store, bindings) as bound:
        assert bound.env == {"U": "ci-bot", "P": "hunter2"}
        assert bound.mask("user ci-bot pass hunter2") == "user **** pass ****"

    assert bound.env == {}
    assert bound.secrets == set()

def test_bind_credentials_clears_values_on_error():
    store = EnvCredentialStore({
        "SHIPLINE_CREDENTIAL_DOCKER_USERNAME": "ci-bot",
        "SHIPLINE_CREDENTIAL_DOCKER_PASSWORD": "hunter2",
    })

    with pytest.raises(RuntimeError):
        with bind_credentials(store, [CredentialBinding(id="docker")]) as bound:
            raise RuntimeError("step blew up")
    assert bound.env == {}

def test_bind_credentials_resolves_all_before_yielding():
    store = EnvCredentialStore({
        "SHIPLINE_CREDENTIAL_DOCKER_USERNAME": "ci-bot",
        "SHIPLINE_CREDENTIAL_DOCKER_PASSWORD": "hunter2",
    })
    entered = []

    with pytest.raises(CredentialResolutionError, match="missing"):
        with bind_credentials(store, [CredentialBinding(id="docker"), CredentialBinding(id="missing")]):
            entered.append(True)
    assert entered == []

def test_mask_secrets_longest_first():
    assert mask_secrets("token abc123 and abc", ["abc", "abc123"]) == "token **** and ****"
    assert mask_secrets("", ["abc"]) == ""
    assert mask_secrets(None, ["abc"]) is None
    assert mask_secrets("nothing here", ["", "zzz"]) == "nothing here"
