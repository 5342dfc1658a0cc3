"""ARQ (Async Redis Queue) configuration for background jobs.

Course generation, PDF rendering, the delayed coach-request release and
notifications all run as arq jobs. Jobs live in Redis, so a deferred job
(``_defer_until``) survives API and worker restarts.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional

from arq import create_pool
from arq.connections import ArqRedis, RedisSettings
from arq.jobs import Job

from app.core.config import settings

logger = logging.getLogger(__name__)

QUEUE_NAME = "coachly:jobs"


@dataclass
class RetryConfig:
    """Configuration for job retry behavior with exponential backoff."""

    max_retries: int = 3
    base_delay_seconds: int = 5
    max_delay_seconds: int = 300  # 5 minutes max
    exponential_base: float = 2.0

    def get_delay(self, attempt: int) -> int:
        """Calculate delay for a given retry attempt using exponential backoff.

        Args:
            attempt: Current retry attempt (0-indexed)

        Returns:
            Delay in seconds before next retry
        """
        delay = self.base_delay_seconds * (self.exponential_base ** attempt)
        return min(int(delay), self.max_delay_seconds)

    @property
    def max_tries(self) -> int:
        """Total attempts including the first one."""
        return self.max_retries + 1


# Default retry configuration
DEFAULT_RETRY_CONFIG = RetryConfig()

# Course generation retries (coach requests and published courses)
GENERATION_RETRY_CONFIG = RetryConfig(
    max_retries=settings.GENERATION_MAX_RETRIES,
    base_delay_seconds=10,
    max_delay_seconds=600,
)

_REDIS_URL_PATTERN = re.compile(
    r"(rediss?)://(?:(?:([^:@/]*):)?([^@/]+)@)?([^:/]+)(?::(\d+))?(?:/(\d+))?$"
)


def parse_redis_url(url: str) -> RedisSettings:
    """Parse Redis URL into ARQ RedisSettings.

    Accepts ``redis://[[user]:password@]host[:port][/db]`` and the
    ``rediss://`` TLS form.

    Raises:
        ValueError: If the URL does not match
    """
    match = _REDIS_URL_PATTERN.match(url)
    if not match:
        raise ValueError(f"Invalid Redis URL format: {url}")

    scheme, username, password, host, port, database = match.groups()

    return RedisSettings(
        host=host,
        port=int(port) if port else 6379,
        username=username or None,
        password=password or None,
        database=int(database) if database else 0,
        ssl=scheme == "rediss",
    )


def get_redis_settings() -> RedisSettings:
    """Get ARQ Redis settings from application config."""
    return parse_redis_url(settings.REDIS_URL)


# Global ARQ pool for enqueueing jobs
_arq_pool: Optional[ArqRedis] = None


async def get_arq_pool() -> ArqRedis:
    """Get or create the global ARQ Redis pool."""
    global _arq_pool
    if _arq_pool is None:
        _arq_pool = await create_pool(get_redis_settings(), default_queue_name=QUEUE_NAME)
    return _arq_pool


def set_arq_pool(pool: Optional[ArqRedis]) -> None:
    """Reuse an existing pool (the worker passes its own ``ctx['redis']``)."""
    global _arq_pool
    _arq_pool = pool


async def close_arq_pool() -> None:
    """Close the global ARQ Redis pool."""
    global _arq_pool
    if _arq_pool is not None:
        await _arq_pool.close()
        _arq_pool = None


async def enqueue_job(
    function_name: str,
    *args: Any,
    _job_id: Optional[str] = None,
    _defer_until: Optional[datetime] = None,
    _defer_by: Optional[timedelta] = None,
    **kwargs: Any,
) -> Optional[Job]:
    """Enqueue a job to the ARQ queue.

    Args:
        function_name: Name of the registered task
        *args: Positional arguments for the task
        _job_id: Optional custom job ID; arq refuses a second job with the same ID
        _defer_until: Datetime to defer execution until
        _defer_by: Timedelta to defer execution by
        **kwargs: Keyword arguments for the task

    Returns:
        Job object if enqueued, None if duplicate job ID exists
    """
    pool = await get_arq_pool()

    try:
        job = await pool.enqueue_job(
            function_name,
            *args,
            _job_id=_job_id,
            _queue_name=QUEUE_NAME,
            _defer_until=_defer_until,
            _defer_by=_defer_by,
            **kwargs,
        )

        if job is None:
            logger.info(f"Job with ID {_job_id} already exists, skipping")
        else:
            logger.info(f"Enqueued job {function_name} with ID {job.job_id}")

        return job

    except Exception as e:
        logger.error(f"Failed to enqueue job {function_name}: {e}")
        raise
