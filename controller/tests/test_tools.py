"""Tests for the action command builders."""

import pytest

from controller.src.models.step import PushEvent, StepConfig
from controller.src.tools import (
    ActionContext,
    ActionError,
    CommandSpec,
    UnknownActionError,
    build_commands,
)
from controller.src.tools.types import placeholders, split_placeholders

@pytest.fixture
def context():
    event = PushEvent(
        branch="main",
        commit_sha="abc123",
        clone_url="https://github.com/acme/app.git",
        repo_full_name="acme/app",
    )
    return ActionContext(event=event, env={"IMAGE": "myrepo/app:latest"})

def step(**kwargs):
    return StepConfig.model_validate({"name": "step", **kwargs})

def test_run_step_is_one_shell_script(context):
    commands = build_commands(step(run=["npm ci", "npm test"]), context)

    assert len(commands) == 1
    assert commands[0].argv == ["/bin/sh", "-c", "npm ci && npm test"]
    assert commands[0].expand is False

def test_checkout_pins_commit(context):
    commands = build_commands(step(uses="checkout"), context)

    assert [c.argv for c in commands] == [
        ["git", "clone", "--depth", "1", "--branch", "main", "https://github.com/acme/app.git", "."],
        ["git", "-C", ".", "fetch", "--depth", "1", "origin", "abc123"],
        ["git", "-C", ".", "checkout", "abc123"],
    ]

def test_checkout_without_url():
    context = ActionContext(event=PushEvent(branch="main"))
    with pytest.raises(ActionError, match="no repository URL"):
        build_commands(step(uses="checkout"), context)

def test_docker_build(context):
    commands = build_commands(
        step(uses="docker/build", **{"with": {"tag": "${IMAGE}", "build_args": {"VERSION": "1.2"}}}),
        context,
    )
    assert commands[0].argv == [
        "docker", "build", "-t", "${IMAGE}", "-f", "Dockerfile",
        "--build-arg", "VERSION=1.2", ".",
    ]

def test_docker_build_requires_tag(context):
    with pytest.raises(ActionError, match="'tag'"):
        build_commands(step(uses="docker/build"), context)

def test_docker_login_reads_password_from_stdin(context):
    commands = build_commands(
        step(uses="docker/login", **{"with": {"username": "${U}", "password": "${P}", "registry": "ghcr.io"}}),
        context,
    )
    assert commands[0].argv == ["docker", "login", "-u", "${U}", "--password-stdin", "ghcr.io"]
    assert commands[0].stdin == "${P}"

def test_docker_push(context):
    commands = build_commands(step(uses="docker/push", **{"with": {"image": "${IMAGE}"}}), context)
    assert commands[0].argv == ["docker", "push", "${IMAGE}"]

def test_aws_update_kubeconfig(context):
    commands = build_commands(
        step(uses="aws/update-kubeconfig", **{"with": {"region": "us-east-1", "cluster": "demo"}}),
        context,
    )
    assert commands[0].argv == [
        "aws", "eks", "update-kubeconfig", "--region", "us-east-1", "--name", "demo",
    ]

def test_helm_upgrade_install(context):
    commands = build_commands(
        step(
            uses="helm/upgrade-install",
            **{"with": {
                "release": "app",
                "chart": "./helm/app",
                "wait": True,
                "set": {"image.tag": "latest"},
            }},
        ),
        context,
    )
    assert commands[0].argv == [
        "helm", "upgrade", "--install", "app", "./helm/app",
        "--namespace", "default", "--create-namespace", "--wait",
        "--set", "image.tag=latest",
    ]

def test_helm_binary_from_environment(context):
    context.env["HELM"] = "/usr/local/bin/helm"
    commands = build_commands(
        step(uses="helm/upgrade-install", **{"with": {"release": "app", "chart": "./c"}}),
        context,
    )
    assert commands[0].argv[0] == "${HELM}"
    assert commands[0].render(context.env).argv[0] == "/usr/local/bin/helm"

def test_unknown_action(context):
    with pytest.raises(UnknownActionError, match="kaniko/build"):
        build_commands(step(uses="kaniko/build"), context)

def test_render_expands_known_placeholders():
    command = CommandSpec(argv=["echo", "${NAME}", "${MISSING}", "pre-${NAME}-post"], stdin="${NAME}")
    rendered = command.render({"NAME": "world"})

    assert rendered.argv == ["echo", "world", "${MISSING}", "pre-world-post"]
    assert rendered.stdin == "world"
    assert command.argv[1] == "${NAME}"

def test_render_leaves_bare_dollars_alone():
    command = CommandSpec(argv=["echo", "$NAME", "$$", "cost: $5"])
    rendered = command.render({"NAME": "world"})

    assert rendered.argv == ["echo", "$NAME", "$$", "cost: $5"]

def test_render_leaves_shell_scripts_alone():
    command = CommandSpec(argv=["/bin/sh", "-c", "echo ${NAME}"], expand=False)
    assert command.render({"NAME": "world"}).argv[2] == "echo ${NAME}"

def test_placeholders():
    assert placeholders("${A}-${B_2}-$C") == ["A", "B_2"]
    assert split_placeholders("image:${TAG}!") == [(False, "image:"), (True, "TAG"), (False, "!")]
