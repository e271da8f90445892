"""
Redis access for the controller: job queue, live status and cancel flags.
"""

import json
import logging
from functools import lru_cache
from typing import Optional, Dict, Any

import redis

from controller.src.config import get_settings

logger = logging.getLogger(__name__)

PIPELINE_QUEUE = "shipline:jobs"
PIPELINE_STATUS = "shipline:status"
PIPELINE_CANCEL = "shipline:cancel:"

@lru_cache()
def get_redis_client() -> redis.Redis:
    """Shared sync Redis client."""
    return redis.from_url(get_settings().redis_url, decode_responses=True)

def get_next_job(timeout: int = 5) -> Optional[Dict[str, Any]]:
    """Pull next job from Redis queue."""
    result = get_redis_client().brpop(PIPELINE_QUEUE, timeout=timeout)
    if result:
        _, job_data = result
        return json.loads(job_data)
    return None

def set_live_status(run_id: str, status: str):
    """Mirror run status into the Redis hash read by the API."""
    get_redis_client().hset(PIPELINE_STATUS, run_id, status)

def is_cancel_requested(run_id: str) -> bool:
    return bool(get_redis_client().exists(PIPELINE_CANCEL + run_id))

async def cancel_requested(run_id: str) -> bool:
    """Async cancel check handed to the executor."""
    try:
        return is_cancel_requested(run_id)
    except redis.RedisError as e:
        # A Redis error reads as "not cancelled"; the next poll asks again
        logger.warning(f"Could not read cancel flag for run {run_id}: {e}")
        return False
