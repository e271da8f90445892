"""
Run each step as a Kubernetes Job.
"""

import asyncio
import logging
from typing import Optional
from kubernetes.client.rest import ApiException

from controller.src.config import Settings
from controller.src.k8s import (
    get_batch_api,
    ensure_namespace,
    create_step_secret,
    delete_secret,
    delete_job,
    build_job,
    get_job_status,
)
from controller.src.k8s.job_builder import WORKSPACE_MOUNT
from controller.src.runners.base import CancelCheck, StepInvocation, StepRunner
from controller.src.services.log_collector import collect_logs, get_exit_code
from controller.src.tools.types import CommandResult

logger = logging.getLogger(__name__)

class KubernetesStepRunner(StepRunner):
    """
    One Job per step. Credential variables live in a Secret that exists only
    while the Job runs; the Job spec references it by key.
    """

    def __init__(self, settings: Settings):
        self.settings = settings

    async def prepare(self, run_id: str) -> Optional[str]:
        ensure_namespace()
        return WORKSPACE_MOUNT if self.settings.k8s_workspace_claim else None

    async def run(self, invocation: StepInvocation, is_cancelled: CancelCheck) -> CommandResult:
        batch_v1 = get_batch_api()
        namespace = self.settings.k8s_namespace

        secret_name = None
        if invocation.secret_env:
            secret_name = f"sl-{invocation.run_id[:8]}-{invocation.stage_order}-{invocation.step_order}-creds"

        job = build_job(
            run_id=invocation.run_id,
            stage_order=invocation.stage_order,
            step_order=invocation.step_order,
            step_name=invocation.step_name,
            image=invocation.image or self.settings.default_step_image,
            commands=invocation.commands,
            env_vars=invocation.env,
            secret_name=secret_name,
            secret_keys=sorted(invocation.secret_env),
            timeout=invocation.timeout,
        )
        job_name = job.metadata.name

        try:
            if secret_name:
                create_step_secret(
                    secret_name,
                    dict(invocation.secret_env),
                    labels={"app": "shipline", "run-id": invocation.run_id},
                )

            logger.info(f"Creating job {job_name}")
            try:
                batch_v1.create_namespaced_job(namespace=namespace, body=job)
            except ApiException as e:
                if e.status != 409:
                    raise
                # Job already exists, delete and recreate
                logger.warning(f"Job {job_name} already exists, deleting...")
                batch_v1.delete_namespaced_job(name=job_name, namespace=namespace, body={})
                await asyncio.sleep(2)
                batch_v1.create_namespaced_job(namespace=namespace, body=job)

            status = await self.wait_for_job(job_name, invocation.timeout, is_cancelled)
            logs = await collect_logs(job_name)
        finally:
            if secret_name:
                delete_secret(secret_name)

        if status == "cancelled":
            delete_job(job_name)
            return CommandResult(success=False, stdout=logs, stderr="Cancelled", returncode=None, cancelled=True)

        if status == "timed_out":
            delete_job(job_name)
            return CommandResult(success=False, stdout=logs, stderr="Step timed out", returncode=None, timed_out=True)

        exit_code = get_exit_code(job_name)
        if status == "succeeded":
            return CommandResult(success=True, stdout=logs, returncode=exit_code if exit_code is not None else 0)
        return CommandResult(success=False, stdout=logs, returncode=exit_code if exit_code is not None else 1)

    async def wait_for_job(self, job_name: str, timeout: int, is_cancelled: CancelCheck) -> str:
        """
        Wait for a job to complete.
        Returns 'succeeded', 'failed', 'cancelled' or 'timed_out'.
        """
        batch_v1 = get_batch_api()
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        while True:
            if loop.time() > deadline:
                logger.error(f"Job {job_name} timed out after {timeout}s")
                return "timed_out"

            if await is_cancelled():
                logger.warning(f"Job {job_name} cancelled")
                return "cancelled"

            try:
                job = batch_v1.read_namespaced_job(
                    name=job_name,
                    namespace=self.settings.k8s_namespace,
                )
                status = get_job_status(job)
                if status in ("succeeded", "failed"):
                    return status
            except ApiException as e:
                logger.error(f"Error checking job status: {e}")

            await asyncio.sleep(self.settings.poll_interval)
