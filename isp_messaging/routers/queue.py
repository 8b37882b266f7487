from fastapi import APIRouter, Depends, HTTPException, Query, Path
from typing import Optional
import logging
from isp_messaging.models import schemas
from isp_messaging.models.message_queue import MessageChannel, MessageStatus
from isp_messaging.services.message_queue import MessageQueueService
from isp_messaging.services.exceptions import MessageNotFoundError, InvalidStateError
from isp_messaging.utils.dependencies import get_queue_service
from isp_messaging.config import settings

router = APIRouter()

@router.get("/queue", response_model=schemas.MessagePage)
async def list_messages(
    status: Optional[MessageStatus] = None,
    account_no: Optional[str] = None,
    channel: Optional[MessageChannel] = None,
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=500),
    queue: MessageQueueService = Depends(get_queue_service)
):
    """List queued messages, newest first"""
    return await queue.list_by_filter(
        status=status,
        related_account_no=account_no,
        channel=channel,
        page=page,
        page_size=per_page
    )

@router.get("/queue/stats", response_model=schemas.QueueStats)
async def queue_stats(
    max_attempts: int = Query(settings.max_attempts, ge=1),
    queue: MessageQueueService = Depends(get_queue_service)
):
    """Message counts by status plus the retryable count"""
    return await queue.stats(max_attempts)

@router.get("/queue/{message_id}", response_model=schemas.QueuedMessageOut)
async def get_message(message_id: int = Path(...), queue: MessageQueueService = Depends(get_queue_service)):
    try:
        return await queue.get(message_id)
    except MessageNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

@router.post("/queue", response_model=schemas.QueuedMessageOut, status_code=201)
async def enqueue_message(
    message: schemas.QueuedMessageCreate,
    queue: MessageQueueService = Depends(get_queue_service)
):
    """Queue a message with literal content"""
    return await queue.enqueue(message)

@router.post("/queue/template", response_model=schemas.QueuedMessageOut, status_code=201)
async def enqueue_from_template(
    request: schemas.TemplateEnqueueRequest,
    queue: MessageQueueService = Depends(get_queue_service)
):
    """Render a template and queue the result"""
    try:
        message = await queue.enqueue_from_template(
            request.template_code,
            request.data,
            recipient=request.recipient,
            related_account_no=request.related_account_no
        )
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    if not message:
        raise HTTPException(status_code=404, detail="Template not found or inactive")
    return message

@router.post("/queue/process", response_model=schemas.BatchStats)
async def process_queue(
    batch_size: int = Query(settings.drain_batch_size, ge=1, le=500),
    queue: MessageQueueService = Depends(get_queue_service)
):
    """Send pending messages now"""
    return await queue.drain(batch_size)

@router.post("/queue/process/async", response_model=schemas.TaskDispatched, status_code=202)
async def process_queue_async(batch_size: int = Query(settings.drain_batch_size, ge=1, le=500)):
    """Hand a drain off to the Celery worker"""
    from tasks.queue_tasks import drain_queue_task
    try:
        result = drain_queue_task.delay(batch_size)
    except Exception as e:
        logging.error(f"Failed to dispatch drain task: {e}")
        raise HTTPException(status_code=503, detail="Task broker unavailable")
    return schemas.TaskDispatched(task_id=str(result.id))

@router.post("/queue/retry-failed", response_model=schemas.BatchStats)
async def retry_failed(
    max_attempts: int = Query(settings.max_attempts, ge=1),
    batch_size: int = Query(settings.retry_batch_size, ge=1, le=500),
    queue: MessageQueueService = Depends(get_queue_service)
):
    """Re-attempt failed messages below the attempt ceiling"""
    return await queue.retry_sweep(max_attempts, batch_size)

@router.post("/queue/{message_id}/retry", response_model=schemas.QueuedMessageOut)
async def retry_message(message_id: int = Path(...), queue: MessageQueueService = Depends(get_queue_service)):
    """Reset a message to pending so the next drain picks it up"""
    try:
        return await queue.reset_to_pending(message_id)
    except MessageNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidStateError as e:
        raise HTTPException(status_code=409, detail=str(e))

@router.delete("/queue/{message_id}", status_code=204)
async def delete_message(message_id: int = Path(...), queue: MessageQueueService = Depends(get_queue_service)):
    try:
        await queue.delete(message_id)
    except MessageNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return None
