from celery import Celery
from isp_messaging.config import settings

celery_app = Celery(
    "isp_messaging",
    broker=settings.redis_url,
    backend=settings.redis_url
)

celery_app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,
    beat_schedule={
        'drain-message-queue': {
            'task': 'tasks.queue_tasks.drain_queue_task',
            'schedule': float(settings.drain_interval),
        },
        'retry-failed-messages': {
            'task': 'tasks.queue_tasks.retry_failed_task',
            'schedule': float(settings.retry_interval),
        },
    },
)

# Ensure tasks are registered when worker starts
from tasks import queue_tasks  # noqa: E402,F401
