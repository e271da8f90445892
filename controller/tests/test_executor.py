"""Tests for the pipeline executor."""

import asyncio

from controller.src.models.step import PipelineConfig, RunStatus, StepStatus
from controller.src.services import executor as executor_module
from controller.src.services.executor import PipelineExecutor
from controller.src.tools import CommandResult

from conftest import ALL_STEPS, DEPLOY_PIPELINE, RecordingReporter

def statuses(result):
    return {stage.name: stage.status.value for stage in result.stages}

def test_push_to_main_runs_every_stage(executor, runner, notifier, pipeline, make_event):
    result = asyncio.run(executor.trigger(make_event("main"), pipeline))

    assert result.status == RunStatus.SUCCEEDED
    assert runner.ran == ALL_STEPS
    assert statuses(result) == {
        "Checkout": "succeeded",
        "Build & Push": "succeeded",
        "Deploy": "succeeded",
    }
    assert result.message == "Deployment successful!"
    assert notifier.sent == [(RunStatus.SUCCEEDED, "Deployment successful!")]

def test_build_failure_stops_the_run(executor, runner, notifier, pipeline, make_event):
    runner.outcomes["Build image"] = CommandResult(
        success=False, stdout="Step 3/7 : RUN make", stderr="make: *** [all] Error 2", returncode=1
    )

    result = asyncio.run(executor.trigger(make_event("main"), pipeline))

    assert result.status == RunStatus.FAILED
    assert runner.ran == ["Clone", "Build image"]

    build = result.stage("Build & Push")
    assert build.status == StepStatus.FAILED
    assert [s.status for s in build.steps] == [
        StepStatus.FAILED,
        StepStatus.SKIPPED,
        StepStatus.SKIPPED,
    ]
    assert build.steps[0].exit_code == 1
    assert "Error 2" in build.steps[0].logs

    deploy = result.stage("Deploy")
    assert deploy.status == StepStatus.SKIPPED
    assert deploy.reason == "earlier stage failed"
    assert notifier.sent == [(RunStatus.FAILED, "Deployment failed!")]

def test_feature_branch_skips_deploy(executor, runner, credential_store, pipeline, make_event):
    result = asyncio.run(executor.trigger(make_event("feature-x"), pipeline))

    assert result.status == RunStatus.SUCCEEDED
    assert runner.ran == ["Clone", "Build image", "Registry login", "Push image"]
    assert result.stage("Deploy").status == StepStatus.SKIPPED
    assert "feature-x" in result.stage("Deploy").reason
    # The deploy stage's credential is never looked up
    assert credential_store.lookups == ["docker-cred"]

def test_missing_credential_fails_before_running(executor, runner, credential_store, pipeline, make_event):
    del credential_store.entries["docker-cred"]

    result = asyncio.run(executor.trigger(make_event("main"), pipeline))

    assert result.status == RunStatus.FAILED
    assert runner.ran == ["Clone", "Build image"]

    login = result.stage("Build & Push").steps[1]
    assert login.status == StepStatus.FAILED
    assert login.exit_code is None
    assert "docker-cred" in login.error
    assert result.stage("Build & Push").steps[2].status == StepStatus.SKIPPED
    assert result.stage("Deploy").status == StepStatus.SKIPPED

def test_non_matching_branch_is_not_triggered(executor, runner, notifier, pipeline, make_event):
    assert asyncio.run(executor.trigger(make_event("hotfix/1"), pipeline)) is None
    assert runner.prepared == []
    assert notifier.sent == []

def test_credentials_are_scoped_to_their_step(executor, runner, pipeline, make_event):
    asyncio.run(executor.trigger(make_event("main"), pipeline))

    assert runner.invocation("Build image").secret_env == {}
    assert runner.invocation("Registry login").secret_env == {
        "DOCKER_USER": "ci-bot",
        "DOCKER_PASS": "d0cker-s3cret",
    }
    assert runner.invocation("Push image").secret_env == {}

    # Stage-level bindings reach every step of the stage
    for name in ["Update kubeconfig", "Helm upgrade"]:
        assert runner.invocation(name).secret_env == {
            "AWS_ACCESS_KEY_ID": "AKIAEXAMPLE",
            "AWS_SECRET_ACCESS_KEY": "aws-s3cret-key",
        }

    for invocation in runner.invocations:
        assert "d0cker-s3cret" not in invocation.env.values()
        for command in invocation.commands:
            assert "d0cker-s3cret" not in command.display()

def test_secret_values_are_masked_in_logs(executor, runner, pipeline, make_event):
    runner.outcomes["Registry login"] = CommandResult(
        success=True, stdout="login as ci-bot with d0cker-s3cret"
    )
    runner.outcomes["Helm upgrade"] = CommandResult(
        success=False, stderr="bad key aws-s3cret-key", returncode=1
    )

    result = asyncio.run(executor.trigger(make_event("main"), pipeline))

    login = result.stage("Build & Push").steps[1]
    assert login.logs == "login as **** with ****"
    helm = result.stage("Deploy").steps[1]
    assert helm.error == "bad key ****"
    assert "aws-s3cret-key" not in helm.logs

def test_cancel_during_a_step(executor, runner, notifier, reporter, pipeline, make_event):
    runner.outcomes["Build image"] = CommandResult(
        success=False, stderr="Cancelled", returncode=-15, cancelled=True
    )

    result = asyncio.run(executor.trigger(make_event("main"), pipeline))

    assert result.status == RunStatus.CANCELLED
    assert result.stage("Build & Push").status == StepStatus.CANCELLED
    assert result.stage("Build & Push").steps[0].status == StepStatus.CANCELLED
    assert result.stage("Deploy").status == StepStatus.SKIPPED
    assert result.stage("Deploy").reason == "run cancelled"
    assert notifier.sent == [(RunStatus.CANCELLED, "Deployment failed!")]
    assert reporter.events[-1] == ("run", "cancelled")

def test_cancel_before_start(runner, credential_store, notifier, pipeline, make_event):
    async def always_cancelled(run_id):
        return True

    executor = PipelineExecutor(
        runner=runner,
        credential_store=credential_store,
        notifier=notifier,
        cancel_check=always_cancelled,
    )
    result = asyncio.run(executor.trigger(make_event("main"), pipeline))

    assert result.status == RunStatus.CANCELLED
    assert runner.ran == []
    assert set(statuses(result).values()) == {"skipped"}
    assert runner.cleaned == [result.run_id]

def test_exports_flow_to_later_steps(executor, runner, pipeline, make_event):
    runner.exports["Clone"] = {"GIT_SHA": "abc123"}
    runner.exports["Registry login"] = {
        "LEAK": "token=d0cker-s3cret",
        "DOCKER_USER": "ci-bot",
        "IMAGE_DIGEST": "sha256:feed",
    }

    asyncio.run(executor.trigger(make_event("main"), pipeline))

    assert runner.invocation("Build image").env["GIT_SHA"] == "abc123"
    push_env = runner.invocation("Push image").env
    assert push_env["IMAGE_DIGEST"] == "sha256:feed"
    assert "LEAK" not in push_env
    assert "DOCKER_USER" not in push_env

def test_environment_layers(runner, credential_store, make_event):
    pipeline = PipelineConfig.model_validate({
        "env": {"LEVEL": "pipeline", "ONLY_PIPELINE": "1"},
        "stages": [
            {
                "name": "Layers",
                "env": {"LEVEL": "stage"},
                "steps": [
                    {"name": "Stage level", "run": ["echo $LEVEL"]},
                    {"name": "Step level", "run": ["echo $LEVEL"], "env": {"LEVEL": "step"}},
                ],
            }
        ],
    })
    executor = PipelineExecutor(runner=runner, credential_store=credential_store)

    result = asyncio.run(executor.trigger(make_event("main"), pipeline))

    assert result.status == RunStatus.SUCCEEDED
    assert runner.invocation("Stage level").env["LEVEL"] == "stage"
    assert runner.invocation("Step level").env["LEVEL"] == "step"
    env = runner.invocation("Stage level").env
    assert env["ONLY_PIPELINE"] == "1"
    assert env["SHIPLINE_BRANCH"] == "main"
    assert env["SHIPLINE_COMMIT"] == "abc123"
    assert env["SHIPLINE_REPOSITORY"] == "acme/app"
    assert env["SHIPLINE_WORKSPACE"] == "/tmp/shipline-test/workspace"

def test_unknown_action_fails_the_step(runner, credential_store, make_event):
    pipeline = PipelineConfig.model_validate({
        "stages": [{"name": "Build", "steps": [{"name": "Bogus", "uses": "docker/bogus"}]}],
    })
    executor = PipelineExecutor(runner=runner, credential_store=credential_store)

    result = asyncio.run(executor.trigger(make_event("main"), pipeline))

    assert result.status == RunStatus.FAILED
    assert runner.ran == []
    assert "docker/bogus" in result.stages[0].steps[0].error

def test_setup_failure_fails_the_run(executor, runner, notifier, pipeline, make_event):
    runner.prepare_error = OSError("disk full")

    result = asyncio.run(executor.trigger(make_event("main"), pipeline))

    assert result.status == RunStatus.FAILED
    assert runner.ran == []
    assert all(stage.reason.startswith("run setup failed") for stage in result.stages)
    assert runner.cleaned == [result.run_id]
    assert len(notifier.sent) == 1

def test_rerun_after_fix_is_a_new_run(executor, runner, pipeline, make_event):
    runner.outcomes["Build image"] = CommandResult(success=False, returncode=1)
    first = asyncio.run(executor.trigger(make_event("main"), pipeline))

    del runner.outcomes["Build image"]
    second = asyncio.run(executor.trigger(make_event("main", commit_sha="def456"), pipeline))

    assert first.status == RunStatus.FAILED
    assert second.status == RunStatus.SUCCEEDED
    assert first.run_id != second.run_id

def test_reporter_sees_every_transition(executor, reporter, pipeline, make_event):
    asyncio.run(executor.trigger(make_event("feature-x"), pipeline))

    assert reporter.events[0] == ("run", "running")
    assert reporter.events[-1] == ("run", "succeeded")
    assert ("step", "Clone", "running") in reporter.events
    assert ("step", "Clone", "succeeded") in reporter.events
    assert ("stage", "Deploy", "skipped") in reporter.events

def test_execute_pipeline_job(monkeypatch, executor, runner):
    monkeypatch.setattr(executor_module, "_default_executor", executor)
    job = {
        "run_id": "00000000-0000-0000-0000-000000000001",
        "config": DEPLOY_PIPELINE,
        "repo_info": {
            "branch": "main",
            "commit_sha": "abc123",
            "clone_url": "https://github.com/acme/app.git",
            "repo_name": "app",
            "repo_full_name": "acme/app",
        },
        "queued_at": "2024-01-01T00:00:00",
    }

    assert asyncio.run(executor_module.execute_pipeline(job)) is True
    assert runner.prepared == ["00000000-0000-0000-0000-000000000001"]

def test_reporter_errors_do_not_strand_the_run(runner, credential_store, notifier, pipeline, make_event):
    class FlakyReporter(RecordingReporter):
        def stage_update(self, run_id, stage):
            raise ConnectionError("database went away")

    reporter = FlakyReporter()
    executor = PipelineExecutor(
        runner=runner,
        credential_store=credential_store,
        reporter=reporter,
        notifier=notifier,
    )

    result = asyncio.run(executor.trigger(make_event("main"), pipeline))

    assert result.status == RunStatus.SUCCEEDED
    assert runner.ran == ALL_STEPS
    assert reporter.events[-1] == ("run", "succeeded")
    assert notifier.sent == [(RunStatus.SUCCEEDED, "Deployment successful!")]
