from celery_app import celery_app
from isp_messaging.config import settings
from isp_messaging.db.database import async_session
from isp_messaging.services.message_queue import MessageQueueService
from isp_messaging.services.transport import build_transport
import asyncio
import logging

async def run_drain(batch_size: int) -> dict:
    async with async_session() as db:
        service = MessageQueueService(db, await build_transport(db))
        return await service.drain(batch_size)

async def run_retry(max_attempts: int, batch_size: int) -> dict:
    async with async_session() as db:
        service = MessageQueueService(db, await build_transport(db))
        return await service.retry_sweep(max_attempts, batch_size)

def _run(coro):
    # Celery workers are synchronous; reuse the worker's loop when there is one
    try:
        loop = asyncio.get_event_loop()
    except RuntimeError:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
    return loop.run_until_complete(coro)

@celery_app.task
def drain_queue_task(batch_size: int = None):
    stats = _run(run_drain(batch_size or settings.drain_batch_size))
    logging.info(f"[CELERY] Queue drain completed: {stats}")
    return stats

@celery_app.task
def retry_failed_task(max_attempts: int = None, batch_size: int = None):
    stats = _run(run_retry(max_attempts or settings.max_attempts, batch_size or settings.retry_batch_size))
    logging.info(f"[CELERY] Retry sweep completed: {stats}")
    return stats
