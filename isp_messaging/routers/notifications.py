from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List
from isp_messaging.db.database import get_db
from isp_messaging.models import schemas
from isp_messaging.services.notifications import NotificationService, DEFAULT_LIMIT

router = APIRouter()

@router.get("/notifications", response_model=List[schemas.NotificationItem])
async def latest_notifications(
    limit: int = Query(DEFAULT_LIMIT, ge=1, le=100),
    db: AsyncSession = Depends(get_db)
):
    """New applications and completed job orders, newest first"""
    return await NotificationService(db).latest(limit)
