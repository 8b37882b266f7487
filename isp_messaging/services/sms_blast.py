import logging
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from isp_messaging.models import schemas
from isp_messaging.models.message_queue import QueuedMessage, MessageChannel, MessageStatus
from isp_messaging.models.models import SmsBlastLog
from isp_messaging.services.recipients import RecipientFilter
from isp_messaging.services.templates import render


class SmsBlastService:
    """Fans one SMS out to every subscriber matched by a recipient filter."""

    def __init__(self, db: AsyncSession, recipient_filter: RecipientFilter = None):
        self.db = db
        self.recipient_filter = recipient_filter or RecipientFilter(db)

    async def enqueue_blast(self, filter_kind: str, filter_value: str, message: str) -> dict:
        accounts = await self.recipient_filter.resolve_accounts(filter_kind, filter_value)

        queued = []
        for account_no, phone in accounts:
            try:
                phone = schemas.validate_phone(phone)
            except ValueError:
                logging.warning(f"SMS blast skipped account {account_no}: invalid phone {phone!r}")
                continue
            row = QueuedMessage(
                channel=MessageChannel.SMS,
                recipient=phone,
                body=render(message, {"Account_No": account_no}),
                related_account_no=account_no,
                status=MessageStatus.PENDING,
                attempt_count=0
            )
            self.db.add(row)
            queued.append(row)

        self.db.add(SmsBlastLog(
            message=message,
            filter_kind=filter_kind.strip().lower(),
            filter_value=filter_value,
            message_count=len(queued)
        ))
        await self.db.flush()
        message_ids = [row.id for row in queued]
        await self.db.commit()

        logging.info(f"SMS blast queued: filter={filter_kind}={filter_value} recipients={len(queued)}")
        return {
            "total_recipients": len(accounts),
            "queued": len(queued),
            "message_ids": message_ids
        }

    async def list_logs(self, limit: int = 100) -> list[SmsBlastLog]:
        result = await self.db.execute(
            select(SmsBlastLog).order_by(SmsBlastLog.created_at.desc(), SmsBlastLog.id.desc()).limit(limit)
        )
        return list(result.scalars().all())
