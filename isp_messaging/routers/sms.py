from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List
from isp_messaging.db.database import get_db
from isp_messaging.models import schemas
from isp_messaging.services.sms_blast import SmsBlastService

router = APIRouter()

@router.post("/sms/blast", response_model=schemas.SmsBlastResult, status_code=202)
async def sms_blast(blast: schemas.SmsBlastRequest, db: AsyncSession = Depends(get_db)):
    """Queue one SMS per subscriber matching the filter. {{Account_No}} is personalized."""
    return await SmsBlastService(db).enqueue_blast(blast.filter_kind, blast.filter_value, blast.message)

@router.get("/sms/blast-logs", response_model=List[schemas.SmsBlastLogOut])
async def sms_blast_logs(limit: int = Query(100, ge=1, le=1000), db: AsyncSession = Depends(get_db)):
    return await SmsBlastService(db).list_logs(limit)
