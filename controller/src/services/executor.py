"""
Pipeline executor - runs stages and steps strictly in order.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Dict, Any, Optional

from controller.src.config import get_settings
from controller.src.models.step import (
    PipelineConfig,
    PipelineRunResult,
    PushEvent,
    RunStatus,
    StageConfig,
    StageResult,
    StageStatus,
    StepConfig,
    StepResult,
    StepStatus,
)
from controller.src.runners import StepInvocation, StepRunner, get_step_runner
from controller.src.services.credentials import (
    CredentialResolutionError,
    CredentialStore,
    bind_credentials,
    get_credential_store,
)
from controller.src.services.notifier import Notifier
from controller.src.services.status_reporter import StatusReporter
from controller.src.tools import ActionContext, ActionError, CommandResult, build_commands

logger = logging.getLogger(__name__)

CancelCheckFactory = Callable[[str], Awaitable[bool]]

async def never_cancelled(run_id: str) -> bool:
    return False

@dataclass
class RunContext:
    """State carried from stage to stage within one run."""
    run_id: str
    event: PushEvent
    env: Dict[str, str] = field(default_factory=dict)
    workspace: Optional[str] = None

    @property
    def branch(self) -> str:
        return self.event.branch

class PipelineExecutor:
    """
    Deployment pipeline controller.

    Stages run in declared order and steps in declared order within a stage.
    The first failing step stops the stage and the run; nothing is retried
    and nothing already applied is rolled back.
    """

    def __init__(
        self,
        runner: StepRunner,
        credential_store: CredentialStore,
        reporter: Optional[StatusReporter] = None,
        notifier: Optional[Notifier] = None,
        cancel_check: CancelCheckFactory = never_cancelled,
    ):
        self.runner = runner
        self.credential_store = credential_store
        self.reporter = reporter or StatusReporter()
        self.notifier = notifier or Notifier()
        self.cancel_check = cancel_check

    async def trigger(
        self,
        event: PushEvent,
        pipeline: PipelineConfig,
        run_id: Optional[str] = None,
    ) -> Optional[PipelineRunResult]:
        """
        Start a run for a push event and wait for it to finish.
        Returns None when the branch does not match the trigger filter.
        """
        if not pipeline.should_trigger(event.branch):
            logger.info(f"Branch '{event.branch}' does not match trigger branches {pipeline.trigger_branches}")
            return None

        return await self.execute(run_id or str(uuid.uuid4()), pipeline, event)

    async def execute(self, run_id: str, pipeline: PipelineConfig, event: PushEvent) -> PipelineRunResult:
        """Execute a run. Always returns with a terminal status."""
        result = PipelineRunResult(
            run_id=run_id,
            pipeline=pipeline.name,
            branch=event.branch,
            commit_sha=event.commit_sha,
            repository=event.repo_full_name or event.clone_url,
            status=RunStatus.RUNNING,
            started_at=datetime.utcnow(),
        )

        logger.info(f"Starting pipeline run {run_id} ({pipeline.name}) with {len(pipeline.stages)} stages")
        self.report("run_started", result)

        halted: Optional[StageStatus] = None
        skip_reason = "earlier stage failed"
        workspace = None
        try:
            try:
                workspace = await self.runner.prepare(run_id)
            except Exception as e:
                logger.error(f"Failed to prepare run {run_id}: {e}")
                halted = StageStatus.FAILED
                skip_reason = f"run setup failed: {e}"

            context = RunContext(
                run_id=run_id,
                event=event,
                env=self.base_env(run_id, event, workspace, pipeline),
                workspace=workspace,
            )

            for stage_order, stage in enumerate(pipeline.stages):
                if halted is None and await self.cancel_check(run_id):
                    logger.warning(f"Run {run_id} cancelled before stage '{stage.name}'")
                    halted = StageStatus.CANCELLED
                    skip_reason = "run cancelled"

                if halted is not None:
                    stage_result = self.skipped_stage(stage_order, stage, skip_reason)
                    self.report("stage_update", run_id, stage_result)
                    result.stages.append(stage_result)
                    continue

                stage_result = await self.run_stage(stage_order, stage, context)
                result.stages.append(stage_result)

                if stage_result.status == StageStatus.FAILED:
                    halted = StageStatus.FAILED
                elif stage_result.status == StageStatus.CANCELLED:
                    halted = StageStatus.CANCELLED
                    skip_reason = "run cancelled"
        finally:
            await self.runner.cleanup(run_id)

        if halted == StageStatus.CANCELLED:
            result.status = RunStatus.CANCELLED
        elif halted == StageStatus.FAILED:
            result.status = RunStatus.FAILED
        else:
            result.status = RunStatus.SUCCEEDED

        if result.status == RunStatus.SUCCEEDED:
            result.message = pipeline.notifications.success
        else:
            result.message = pipeline.notifications.failure

        result.finished_at = datetime.utcnow()
        self.report("run_finished", result)
        await self.notifier.notify(result)

        logger.info(f"Pipeline run {run_id} finished with status: {result.status.value}")
        return result

    def report(self, event: str, *args):
        """Forward a state change to the reporter. A reporter error is logged and the run carries on."""
        try:
            getattr(self.reporter, event)(*args)
        except Exception as e:
            logger.exception(f"Status reporter failed on {event}: {e}")

    @staticmethod
    def base_env(run_id: str, event: PushEvent, workspace: Optional[str], pipeline: PipelineConfig) -> Dict[str, str]:
        env = {
            "SHIPLINE_RUN_ID": run_id,
            "SHIPLINE_BRANCH": event.branch,
            "SHIPLINE_COMMIT": event.commit_sha,
            "SHIPLINE_REPOSITORY": event.repo_full_name or event.clone_url,
        }
        if workspace:
            env["SHIPLINE_WORKSPACE"] = workspace
        env.update(pipeline.env)
        return env

    @staticmethod
    def skipped_stage(stage_order: int, stage: StageConfig, reason: str) -> StageResult:
        return StageResult(
            stage_order=stage_order,
            name=stage.name,
            status=StageStatus.SKIPPED,
            reason=reason,
            steps=[
                StepResult(stage_order=stage_order, step_order=i, name=s.name, status=StepStatus.SKIPPED)
                for i, s in enumerate(stage.steps)
            ],
        )

    async def run_stage(self, stage_order: int, stage: StageConfig, context: RunContext) -> StageResult:
        """Run one stage, honouring its branch filter. Stops at the first failing step."""
        if not stage.applies_to(context.branch):
            logger.info(f"Skipping stage '{stage.name}': branch '{context.branch}' not in {stage.branches}")
            result = self.skipped_stage(stage_order, stage, f"branch '{context.branch}' not in {stage.branches}")
            self.report("stage_update", context.run_id, result)
            return result

        result = StageResult(
            stage_order=stage_order,
            name=stage.name,
            status=StageStatus.RUNNING,
            started_at=datetime.utcnow(),
            steps=[
                StepResult(stage_order=stage_order, step_order=i, name=s.name)
                for i, s in enumerate(stage.steps)
            ],
        )
        logger.info(f"Running stage {stage_order}: {stage.name}")
        self.report("stage_update", context.run_id, result)

        result.status = StageStatus.SUCCEEDED
        for step_order, step in enumerate(stage.steps):
            step_result = await self.run_step(stage, step, result.steps[step_order], context)

            if step_result.status != StepStatus.SUCCEEDED:
                result.status = step_result.status
                for remaining in result.steps[step_order + 1:]:
                    remaining.status = StepStatus.SKIPPED
                    self.report("step_update", context.run_id, remaining)
                break

        result.finished_at = datetime.utcnow()
        self.report("stage_update", context.run_id, result)
        logger.info(f"Stage {stage_order} ({stage.name}) {result.status.value}")
        return result

    async def run_step(
        self,
        stage: StageConfig,
        step: StepConfig,
        result: StepResult,
        context: RunContext,
    ) -> StepResult:
        """
        Resolve the step's credentials, then run its commands.
        A credential that cannot be resolved fails the step before any
        command is invoked.
        """
        result.status = StepStatus.RUNNING
        result.started_at = datetime.utcnow()
        self.report("step_update", context.run_id, result)
        logger.info(f"Executing step {result.stage_order}.{result.step_order}: {step.name}")

        env = dict(context.env)
        env.update(stage.env)
        env.update(step.env)

        try:
            with bind_credentials(self.credential_store, [*stage.credentials, *step.credentials]) as bound:
                try:
                    commands = build_commands(step, ActionContext(event=context.event, env=env))
                    invocation = StepInvocation(
                        run_id=context.run_id,
                        stage_order=result.stage_order,
                        step_order=result.step_order,
                        step_name=step.name,
                        commands=commands,
                        env=env,
                        secret_env=dict(bound.env),
                        image=step.image,
                        timeout=step.timeout,
                        workspace=context.workspace,
                    )
                    command_result = await self.runner.run(
                        invocation, lambda: self.cancel_check(context.run_id)
                    )
                except ActionError as e:
                    command_result = CommandResult(success=False, stderr=str(e), returncode=None)
                except Exception as e:
                    logger.error(f"Step '{step.name}' raised {type(e).__name__}: {bound.mask(str(e))}")
                    command_result = CommandResult(success=False, stderr=f"{type(e).__name__}: {e}", returncode=None)

                result.logs = bound.mask(command_result.output)
                result.exit_code = command_result.returncode

                if command_result.success:
                    self.merge_exports(context, self.runner.read_exports(invocation), bound.env, bound.secrets)
                elif command_result.stderr:
                    result.error = bound.mask(command_result.stderr)

        except CredentialResolutionError as e:
            logger.error(f"Step '{step.name}' aborted: {e}")
            result.error = str(e)
            result.logs = str(e)
            command_result = CommandResult(success=False, returncode=None)

        if command_result.success:
            result.status = StepStatus.SUCCEEDED
        elif command_result.cancelled:
            result.status = StepStatus.CANCELLED
        else:
            result.status = StepStatus.FAILED

        result.finished_at = datetime.utcnow()
        self.report("step_update", context.run_id, result)

        if result.status == StepStatus.SUCCEEDED:
            logger.info(f"Step {result.stage_order}.{result.step_order} ({step.name}) succeeded")
        else:
            logger.error(
                f"Step {result.stage_order}.{result.step_order} ({step.name}) {result.status.value}"
                f" (exit code {result.exit_code})"
            )
        return result

    @staticmethod
    def merge_exports(context: RunContext, exports: Dict[str, str], credential_env: Dict[str, str], secrets):
        for key, value in exports.items():
            if key in credential_env or any(secret in value for secret in secrets):
                logger.warning(f"Not exporting {key}: it carries a credential")
                continue
            context.env[key] = value

_default_executor = None

def get_executor() -> PipelineExecutor:
    """Executor wired to the configured runner, credential store, database and Redis."""
    global _default_executor
    if _default_executor is None:
        from controller.src.services.queue import cancel_requested
        from controller.src.services.status_reporter import DatabaseStatusReporter

        settings = get_settings()
        _default_executor = PipelineExecutor(
            runner=get_step_runner(settings),
            credential_store=get_credential_store(settings),
            reporter=DatabaseStatusReporter(),
            notifier=Notifier(settings.notify_webhook_url, settings.notify_timeout),
            cancel_check=cancel_requested,
        )
    return _default_executor

async def execute_pipeline(job_data: Dict[str, Any]) -> bool:
    """
    Execute a queued pipeline run.
    Returns True if the run succeeded, False otherwise.
    """
    run_id = job_data["run_id"]
    pipeline = PipelineConfig.model_validate(job_data["config"])
    event = PushEvent(**job_data["repo_info"])

    result = await get_executor().execute(run_id, pipeline, event)
    return result.status == RunStatus.SUCCEEDED
