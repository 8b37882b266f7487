import re
import logging
from typing import Any, Dict, Optional, Tuple
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from isp_messaging.models.message_queue import MessageChannel
from isp_messaging.models.templates import MessageTemplate
from isp_messaging.models import schemas
from isp_messaging.services.exceptions import TemplateNotFoundError

PLACEHOLDER = re.compile(r"\{\{\s*([A-Za-z0-9_.\-]+)\s*\}\}")

def render(text: Optional[str], data: Dict[str, Any]) -> Optional[str]:
    """
    Substitute {{ key }} placeholders from data.

    Placeholders with no matching key are left untouched so a missing value
    is visible in the delivered message. None renders as an empty string.
    """
    if text is None:
        return None

    def _replace(match):
        key = match.group(1)
        if key not in data:
            return match.group(0)
        value = data[key]
        return "" if value is None else str(value)

    return PLACEHOLDER.sub(_replace, text)

def render_template(template: MessageTemplate, data: Dict[str, Any]) -> Tuple[Optional[str], str]:
    return render(template.subject_template, data), render(template.body_template, data)

class TemplateService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_active(self, code: str) -> Optional[MessageTemplate]:
        """Return the active template for code, or None when missing or inactive."""
        result = await self.db.execute(
            select(MessageTemplate).where(
                MessageTemplate.code == code,
                MessageTemplate.is_active.is_(True)
            )
        )
        return result.scalar_one_or_none()

    async def list_templates(self, channel=None, active_only: bool = False) -> list[MessageTemplate]:
        query = select(MessageTemplate).order_by(MessageTemplate.code)
        if channel is not None:
            query = query.where(MessageTemplate.channel == channel)
        if active_only:
            query = query.where(MessageTemplate.is_active.is_(True))
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_template(self, code: str) -> MessageTemplate:
        result = await self.db.execute(select(MessageTemplate).where(MessageTemplate.code == code))
        template = result.scalar_one_or_none()
        if not template:
            raise TemplateNotFoundError(code)
        return template

    async def create_template(self, data: schemas.TemplateCreate) -> MessageTemplate:
        template = MessageTemplate(**data.model_dump())
        self.db.add(template)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise ValueError(f"Template with code {data.code!r} already exists.")
        await self.db.refresh(template)
        logging.info(f"Template created: code={template.code} channel={template.channel.value}")
        return template

    async def update_template(self, code: str, data: schemas.TemplateUpdate) -> MessageTemplate:
        template = await self.get_template(code)
        changes = data.model_dump(exclude_unset=True)
        subject = changes.get("subject_template", template.subject_template)
        if template.channel == MessageChannel.EMAIL and not subject:
            raise ValueError("subject_template is required for email templates")
        for key, value in changes.items():
            setattr(template, key, value)
        await self.db.commit()
        await self.db.refresh(template)
        logging.info(f"Template updated: code={template.code} active={template.is_active}")
        return template
