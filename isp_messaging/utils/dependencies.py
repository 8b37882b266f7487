from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession
from isp_messaging.db.database import get_db
from isp_messaging.services.transport import Transport, build_transport
from isp_messaging.services.message_queue import MessageQueueService


async def get_transport(db: AsyncSession = Depends(get_db)) -> Transport:
    """Gateway transport with SMS credentials loaded for this request."""
    return await build_transport(db)


async def get_queue_service(
    db: AsyncSession = Depends(get_db),
    transport: Transport = Depends(get_transport)
) -> MessageQueueService:
    return MessageQueueService(db, transport)
