"""ARQ worker entry point.

Run with: arq notesrag.background.worker.WorkerSettings
"""
import logging

from arq import Retry

from notesrag.background.queue import get_redis_settings
from notesrag.config import get_settings
from notesrag.core.exceptions import AppBaseError, DocumentNotFoundError
from notesrag.core.services import build_services, close_services, configure_logging

logger = logging.getLogger("arq.worker")


async def ingest_file(ctx: dict, file_id: str) -> dict:
    """ARQ task: ingest one uploaded file into the vector index."""
    services = ctx["services"]
    job_try = ctx.get("job_try", 1)
    try:
        result = await services.ingestion_worker.process(file_id)
    except DocumentNotFoundError as e:
        # Stale job: the record is gone, retrying cannot help
        logger.warning(f"[ARQ] {e.message}, dropping job")
        return {"skipped": True, "reason": "not_found", "file_id": file_id}
    except AppBaseError as e:
        if e.retryable:
            defer = job_try * get_settings().INGESTION_RETRY_BACKOFF_SECONDS
            logger.warning(f"[ARQ] Ingestion {file_id} try {job_try} failed: {e.message} ({e.detail}); retrying in {defer}s")
            raise Retry(defer=defer) from e
        logger.error(f"[ARQ] Ingestion {file_id} failed permanently: {e.message}")
        raise
    logger.info(f"[ARQ] Ingestion {file_id} completed: {result.chunks} chunks")
    return result.model_dump()


async def startup(ctx: dict):
    settings = get_settings()
    configure_logging(settings)
    ctx["services"] = build_services(settings, for_worker=True)
    logger.info("[Startup] ARQ ingestion worker ready")


async def shutdown(ctx: dict):
    """Clean shutdown."""
    services = ctx.get("services")
    if services is not None:
        await close_services(services)
    logger.info("[Shutdown] ARQ worker stopping")


class WorkerSettings:
    """ARQ worker settings."""
    redis_settings = get_redis_settings(get_settings())
    functions = [ingest_file]
    on_startup = startup
    on_shutdown = shutdown
    max_jobs = get_settings().INGESTION_CONCURRENCY
    max_tries = get_settings().INGESTION_MAX_TRIES
    job_timeout = get_settings().INGESTION_JOB_TIMEOUT
    queue_name = get_settings().INGESTION_QUEUE_NAME
