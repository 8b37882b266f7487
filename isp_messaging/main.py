from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from isp_messaging.routers import queue, templates, sms, notifications
from isp_messaging.db.database import engine, init_db, async_session
from isp_messaging.config import settings
from isp_messaging.services.message_queue import MessageQueueService
from isp_messaging.services.transport import build_transport
# Register every table on Base.metadata
from isp_messaging.models import message_queue as _message_queue_models  # noqa: F401
from isp_messaging.models import templates as _template_models  # noqa: F401
from isp_messaging.models import models as _models  # noqa: F401
import logging
import os
from apscheduler.schedulers.asyncio import AsyncIOScheduler

# Configure logging
if settings.log_file:
    os.makedirs(os.path.dirname(settings.log_file) or ".", exist_ok=True)
logging.basicConfig(
    level=settings.log_level,
    filename=settings.log_file or None,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

# Create FastAPI app
app = FastAPI(
    title="ISP Messaging API",
    description="Outbound email/SMS queue, SMS blasts and dashboard notifications",
    version="1.0.0"
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"]
)

# Include routers with proper prefixes
app.include_router(queue.router, prefix="/api", tags=["queue"])
app.include_router(templates.router, prefix="/api", tags=["templates"])
app.include_router(sms.router, prefix="/api", tags=["sms"])
app.include_router(notifications.router, prefix="/api", tags=["notifications"])

scheduler = AsyncIOScheduler()

async def periodic_drain_once():
    async with async_session() as db:
        try:
            service = MessageQueueService(db, await build_transport(db))
            await service.drain(settings.drain_batch_size)
        except Exception as e:
            logging.error(f"Error in periodic drain: {e}")

async def periodic_retry_once():
    async with async_session() as db:
        try:
            service = MessageQueueService(db, await build_transport(db))
            await service.retry_sweep(settings.max_attempts, settings.retry_batch_size)
        except Exception as e:
            logging.error(f"Error in periodic retry sweep: {e}")

@app.on_event("startup")
async def startup_event():
    await init_db()
    # Claims older than claim_timeout belong to a worker that died mid-batch
    async with async_session() as db:
        await MessageQueueService(db).release_stale_claims()
    if settings.scheduler_enabled:
        scheduler.add_job(
            periodic_drain_once,
            'interval',
            seconds=settings.drain_interval,
            id='drain_queue_job',
            replace_existing=True,
            max_instances=1
        )
        scheduler.add_job(
            periodic_retry_once,
            'interval',
            seconds=settings.retry_interval,
            id='retry_failed_job',
            replace_existing=True,
            max_instances=1
        )
        scheduler.start()
        logging.info("Queue scheduler started")
    logging.info("Application started successfully")

@app.on_event("shutdown")
async def shutdown_event():
    if scheduler.running:
        scheduler.shutdown(wait=False)
    await engine.dispose()
    logging.info("Application shutting down, services stopped")

@app.get("/")
async def root():
    return {"status": "ok", "docs": "/docs"}
