"""Redis pub/sub progress events and cancellation flags for upload jobs."""
import json
import logging

import redis

from app.config import get_settings

CANCEL_FLAG_TTL_SECONDS = 3600

settings = get_settings()
logger = logging.getLogger(__name__)


def channel_name(job_id: str) -> str:
    return f"upload:{job_id}"


def _cancel_key(job_id: str) -> str:
    return f"upload:{job_id}:cancel"


def _client() -> redis.Redis:
    return redis.Redis.from_url(settings.redis_url, decode_responses=True)


def publish_progress(
    job_id: str,
    processed: int,
    total: int,
    successful: int,
    failed: int,
    status: str,
    error: str = None,
) -> None:
    """
    Publish progress to Redis pub/sub for real-time SSE streaming.

    Args:
        job_id: Upload job ID
        processed: Number of rows processed
        total: Total number of rows
        successful: Number of rows provisioned
        failed: Number of rows that failed
        status: Current job status
        error: Error message (for terminal failures)
    """
    if not settings.redis_events_enabled:
        return
    try:
        message = {
            "job_id": str(job_id),
            "status": status,
            "processed": processed,
            "total": total,
            "successful": successful,
            "failed": failed,
        }
        if error:
            message["error"] = error
        _client().publish(channel_name(str(job_id)), json.dumps(message))
    except redis.RedisError as e:
        # Progress events are advisory
        logger.warning(f"Failed to publish progress for job {job_id}: {e}")


def request_cancel(job_id: str) -> bool:
    """Flag a running job to stop after its current row."""
    if not settings.redis_events_enabled:
        return False
    try:
        _client().set(_cancel_key(str(job_id)), "1", ex=CANCEL_FLAG_TTL_SECONDS)
        return True
    except redis.RedisError as e:
        logger.warning(f"Failed to set cancel flag for job {job_id}: {e}")
        return False


def is_cancel_requested(job_id: str) -> bool:
    if not settings.redis_events_enabled:
        return False
    try:
        return bool(_client().exists(_cancel_key(str(job_id))))
    except redis.RedisError as e:
        logger.warning(f"Failed to read cancel flag for job {job_id}: {e}")
        return False
