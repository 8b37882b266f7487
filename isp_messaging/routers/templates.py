from fastapi import APIRouter, Depends, HTTPException, Path
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
from isp_messaging.db.database import get_db
from isp_messaging.models import schemas
from isp_messaging.models.message_queue import MessageChannel
from isp_messaging.services.templates import TemplateService
from isp_messaging.services.exceptions import TemplateNotFoundError

router = APIRouter()

@router.get("/templates", response_model=List[schemas.TemplateOut])
async def list_templates(
    channel: Optional[MessageChannel] = None,
    active_only: bool = False,
    db: AsyncSession = Depends(get_db)
):
    return await TemplateService(db).list_templates(channel=channel, active_only=active_only)

@router.get("/templates/{code}", response_model=schemas.TemplateOut)
async def get_template(code: str = Path(...), db: AsyncSession = Depends(get_db)):
    try:
        return await TemplateService(db).get_template(code)
    except TemplateNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

@router.post("/templates", response_model=schemas.TemplateOut, status_code=201)
async def create_template(template: schemas.TemplateCreate, db: AsyncSession = Depends(get_db)):
    """ Add a new email or SMS template """
    try:
        return await TemplateService(db).create_template(template)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

@router.patch("/templates/{code}", response_model=schemas.TemplateOut)
async def update_template(
    code: str = Path(...),
    template: schemas.TemplateUpdate = None,
    db: AsyncSession = Depends(get_db)
):
    try:
        return await TemplateService(db).update_template(code, template or schemas.TemplateUpdate())
    except TemplateNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
