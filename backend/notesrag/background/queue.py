"""ARQ queue configuration for file ingestion jobs."""
import logging

from arq import create_pool
from arq.connections import ArqRedis, RedisSettings

from notesrag.config import Settings

logger = logging.getLogger(__name__)

INGEST_TASK_NAME = "ingest_file"


def get_redis_settings(settings: Settings) -> RedisSettings:
    return RedisSettings.from_dsn(settings.REDIS_URL)


async def create_queue_pool(settings: Settings) -> ArqRedis:
    """Create and return an ARQ Redis connection pool bound to the ingestion queue."""
    return await create_pool(
        get_redis_settings(settings),
        default_queue_name=settings.INGESTION_QUEUE_NAME,
    )


async def enqueue_ingestion(pool: ArqRedis, file_id: str) -> str | None:
    """Enqueue a file-ready job. Delivery is at-least-once; jobs are not deduplicated."""
    job = await pool.enqueue_job(INGEST_TASK_NAME, file_id)
    job_id = job.job_id if job else None
    logger.info(f"[ARQ] Enqueued ingestion for file {file_id} (job {job_id})")
    return job_id
