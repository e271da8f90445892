"""
Queue worker - pulls jobs from Redis and executes them.
"""

import asyncio
import logging

from controller.src.services.executor import execute_pipeline
from controller.src.services.queue import get_next_job

logger = logging.getLogger(__name__)

async def worker_loop():
    """Main worker loop. Runs are executed one at a time."""
    logger.info("Worker started, waiting for jobs...")

    while True:
        try:
            job = get_next_job()

            if job:
                run_id = job.get("run_id", "unknown")
                logger.info(f"Received job for run {run_id}")

                try:
                    await execute_pipeline(job)
                except Exception as e:
                    logger.exception(f"Failed to execute pipeline {run_id}: {e}")

        except KeyboardInterrupt:
            logger.info("Worker shutting down...")
            break
        except Exception as e:
            logger.exception(f"Worker error: {e}")
            await asyncio.sleep(5)

def run_worker():
    """Entry point for worker."""
    asyncio.run(worker_loop())
