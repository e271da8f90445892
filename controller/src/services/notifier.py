"""
Terminal notification for finished runs.
"""

import logging
from typing import Optional

import httpx

from controller.src.models.step import PipelineRunResult, RunStatus

logger = logging.getLogger(__name__)

class Notifier:
    """
    Emits exactly one message per finished run: logged always, and POSTed
    as JSON when a webhook URL is configured. Delivery problems are logged
    and never change the run's outcome.
    """

    def __init__(self, webhook_url: Optional[str] = None, timeout: float = 10.0):
        self.webhook_url = webhook_url
        self.timeout = timeout

    async def notify(self, result: PipelineRunResult):
        if result.status == RunStatus.SUCCEEDED:
            logger.info(f"[{result.pipeline}] run {result.run_id}: {result.message}")
        else:
            logger.error(f"[{result.pipeline}] run {result.run_id} {result.status.value}: {result.message}")

        if not self.webhook_url:
            return

        payload = {
            "run_id": result.run_id,
            "status": result.status.value,
            "message": result.message,
            "branch": result.branch,
            "commit_sha": result.commit_sha,
            "repository": result.repository,
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.webhook_url, json=payload)
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"Failed to deliver notification for run {result.run_id}: {e}")
