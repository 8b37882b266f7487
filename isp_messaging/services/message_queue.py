import asyncio
import logging
import math
import uuid
from datetime import timedelta
from typing import Any, Dict, Optional, Union
from sqlalchemy import select, update, delete, func, case
from sqlalchemy.ext.asyncio import AsyncSession
from isp_messaging.config import settings
from isp_messaging.models.message_queue import QueuedMessage, MessageChannel, MessageStatus, utcnow
from isp_messaging.models import schemas
from isp_messaging.services.exceptions import MessageNotFoundError, InvalidStateError
from isp_messaging.services.templates import TemplateService, render_template
from isp_messaging.services.transport import Transport

MAX_ERROR_LENGTH = 2000


class MessageQueueService:
    """
    Outbound email/SMS queue.

    Rows move pending -> sent | failed and failed -> pending. Drains and
    retry sweeps take ownership of rows with a single conditional UPDATE that
    stamps a claim token, so concurrent callers never process the same row.
    Every later write from the delivery path is guarded by that token.
    """

    def __init__(
        self,
        db: AsyncSession,
        transport: Optional[Transport] = None,
        max_attempts: Optional[int] = None,
        transport_timeout: Optional[float] = None,
        send_delay: Optional[float] = None,
    ):
        self.db = db
        self.transport = transport
        self.max_attempts = max_attempts if max_attempts is not None else settings.max_attempts
        self.transport_timeout = transport_timeout if transport_timeout is not None else settings.transport_timeout
        self.send_delay = send_delay if send_delay is not None else settings.send_delay

    # Queue store

    async def enqueue(self, data: Union[schemas.QueuedMessageCreate, Dict[str, Any]]) -> QueuedMessage:
        if not isinstance(data, schemas.QueuedMessageCreate):
            data = schemas.QueuedMessageCreate(**data)
        message = QueuedMessage(
            **data.model_dump(),
            status=MessageStatus.PENDING,
            attempt_count=0,
        )
        self.db.add(message)
        await self.db.commit()
        await self.db.refresh(message)
        logging.info(f"Message queued: id={message.id} channel={message.channel.value} recipient={message.recipient}")
        return message

    async def enqueue_from_template(
        self,
        code: str,
        data: Dict[str, Any],
        recipient: Optional[str] = None,
        related_account_no: Optional[str] = None,
    ) -> Optional[QueuedMessage]:
        """Render an active template and queue the result. Returns None when the template is missing or inactive."""
        template = await TemplateService(self.db).find_active(code)
        if not template:
            logging.error(f"Message template not found: template_code={code}")
            return None

        subject, body = render_template(template, data)
        payload = schemas.QueuedMessageCreate(
            channel=template.channel,
            recipient=recipient or data.get("recipient") or data.get("recipient_email") or data.get("contact_no"),
            subject=subject,
            body=body,
            cc=data.get("cc") or template.cc,
            bcc=data.get("bcc") or template.bcc,
            reply_to=template.reply_to,
            email_sender=template.email_sender,
            sender_name=template.sender_name,
            related_account_no=related_account_no or data.get("account_no"),
        )
        return await self.enqueue(payload)

    async def get(self, message_id: int) -> QueuedMessage:
        result = await self.db.execute(
            select(QueuedMessage)
            .where(QueuedMessage.id == message_id)
            .execution_options(populate_existing=True)
        )
        message = result.scalar_one_or_none()
        if not message:
            raise MessageNotFoundError(message_id)
        return message

    async def list_by_filter(
        self,
        status: Optional[MessageStatus] = None,
        related_account_no: Optional[str] = None,
        channel: Optional[MessageChannel] = None,
        page: int = 1,
        page_size: int = 50,
    ) -> Dict[str, Any]:
        if page < 1 or page_size < 1:
            raise ValueError("page and page_size must be positive")
        conditions = []
        if status is not None:
            conditions.append(QueuedMessage.status == MessageStatus(status))
        if related_account_no is not None:
            conditions.append(QueuedMessage.related_account_no == related_account_no)
        if channel is not None:
            conditions.append(QueuedMessage.channel == MessageChannel(channel))

        total = (await self.db.execute(
            select(func.count()).select_from(QueuedMessage).where(*conditions)
        )).scalar() or 0
        result = await self.db.execute(
            select(QueuedMessage)
            .where(*conditions)
            .order_by(QueuedMessage.created_at.desc(), QueuedMessage.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
            .execution_options(populate_existing=True)
        )
        return {
            "items": list(result.scalars().all()),
            "total": total,
            "page": page,
            "page_size": page_size,
            "pages": math.ceil(total / page_size) if total else 0,
        }

    async def delete(self, message_id: int) -> None:
        result = await self.db.execute(
            delete(QueuedMessage)
            .where(QueuedMessage.id == message_id)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        if result.rowcount == 0:
            raise MessageNotFoundError(message_id)
        logging.info(f"Message deleted from queue: id={message_id}")

    async def reset_to_pending(self, message_id: int) -> QueuedMessage:
        """Requeue a message. The attempt counter is kept so the retry ceiling still applies."""
        result = await self.db.execute(
            update(QueuedMessage)
            .where(
                QueuedMessage.id == message_id,
                QueuedMessage.status != MessageStatus.SENT
            )
            .values(status=MessageStatus.PENDING, last_error=None, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        if result.rowcount == 0:
            # Raises MessageNotFoundError when the row is gone
            await self.get(message_id)
            raise InvalidStateError(f"Message {message_id} already sent")
        logging.info(f"Message reset to pending: id={message_id}")
        return await self.get(message_id)

    async def stats(self, max_attempts: Optional[int] = None) -> Dict[str, int]:
        ceiling = max_attempts if max_attempts is not None else self.max_attempts
        retryable = case(
            (
                (QueuedMessage.status == MessageStatus.FAILED) & (QueuedMessage.attempt_count < ceiling),
                1
            ),
            else_=0
        )
        result = await self.db.execute(
            select(QueuedMessage.status, func.count(), func.sum(retryable))
            .group_by(QueuedMessage.status)
        )
        counts = {status.value: 0 for status in MessageStatus}
        retryable_count = 0
        for status, count, retry_count in result.all():
            counts[MessageStatus(status).value] = count
            retryable_count += retry_count or 0
        counts["retryable"] = retryable_count
        counts["total"] = counts["pending"] + counts["sent"] + counts["failed"]
        return counts

    async def release_stale_claims(self, older_than: Optional[int] = None) -> int:
        """Clear claims left behind by a worker that died mid-batch."""
        seconds = older_than if older_than is not None else settings.claim_timeout
        cutoff = utcnow() - timedelta(seconds=seconds)
        result = await self.db.execute(
            update(QueuedMessage)
            .where(
                QueuedMessage.claim_token.is_not(None),
                QueuedMessage.claimed_at <= cutoff
            )
            .values(claim_token=None, claimed_at=None, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        if result.rowcount:
            logging.warning(f"Released {result.rowcount} stale message claims older than {seconds}s")
        return result.rowcount

    # Drain and retry

    async def drain(self, batch_size: Optional[int] = None) -> Dict[str, int]:
        """Attempt delivery once for up to batch_size pending messages, oldest first."""
        batch_size = batch_size if batch_size is not None else settings.drain_batch_size
        token, messages = await self._claim(
            QueuedMessage.status == MessageStatus.PENDING,
            batch_size
        )
        if messages:
            logging.info(f"Processing message queue: count={len(messages)}")
        return await self._process(messages, token)

    async def retry_sweep(self, max_attempts: Optional[int] = None, batch_size: Optional[int] = None) -> Dict[str, int]:
        """Re-attempt failed messages still under the attempt ceiling, oldest first."""
        ceiling = max_attempts if max_attempts is not None else self.max_attempts
        batch_size = batch_size if batch_size is not None else settings.retry_batch_size
        token, messages = await self._claim(
            (QueuedMessage.status == MessageStatus.FAILED) & (QueuedMessage.attempt_count < ceiling),
            batch_size,
            status=MessageStatus.PENDING
        )
        if messages:
            logging.info(f"Retrying failed messages: count={len(messages)} max_attempts={ceiling}")
        return await self._process(messages, token)

    async def _claim(self, condition, batch_size: int, status: Optional[MessageStatus] = None):
        if batch_size < 1:
            raise ValueError("batch_size must be positive")
        token = str(uuid.uuid4())
        now = utcnow()
        candidates = (
            select(QueuedMessage.id)
            .where(condition, QueuedMessage.claim_token.is_(None))
            .order_by(QueuedMessage.created_at, QueuedMessage.id)
            .limit(batch_size)
            .with_for_update(skip_locked=True)
        )
        values = {"claim_token": token, "claimed_at": now, "updated_at": now}
        if status is not None:
            values["status"] = status
        # Conditions are repeated on the outer UPDATE so a row claimed between
        # subquery evaluation and the row lock is skipped.
        await self.db.execute(
            update(QueuedMessage)
            .where(
                QueuedMessage.id.in_(candidates),
                QueuedMessage.claim_token.is_(None),
                condition
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        result = await self.db.execute(
            select(QueuedMessage)
            .where(QueuedMessage.claim_token == token)
            .order_by(QueuedMessage.created_at, QueuedMessage.id)
            .execution_options(populate_existing=True)
        )
        messages = list(result.scalars().all())
        # No transaction stays open across transport calls
        await self.db.commit()
        return token, messages

    async def _process(self, messages, token: str) -> Dict[str, int]:
        stats = {"attempted": len(messages), "sent": 0, "failed": 0}
        for index, message in enumerate(messages):
            if index and self.send_delay:
                await asyncio.sleep(self.send_delay)
            if await self._deliver(message, token):
                stats["sent"] += 1
            else:
                stats["failed"] += 1
        if stats["failed"]:
            logging.warning(f"Queue batch finished with failures: {stats}")
        elif messages:
            logging.info(f"Queue batch finished: {stats}")
        return stats

    async def _send(self, message: QueuedMessage):
        if self.transport is None:
            raise RuntimeError("No transport configured for message delivery")
        if message.channel == MessageChannel.EMAIL:
            options = {
                "cc": message.cc,
                "bcc": message.bcc,
                "reply_to": message.reply_to,
                "email_sender": message.email_sender,
                "sender_name": message.sender_name,
            }
            return await self.transport.send_email(message.recipient, message.subject, message.body, options)
        return await self.transport.send_sms(message.recipient, message.body)

    async def _deliver(self, message: QueuedMessage, token: str) -> bool:
        error = None
        try:
            await asyncio.wait_for(self._send(message), timeout=self.transport_timeout)
        except asyncio.TimeoutError:
            error = f"Transport timed out after {self.transport_timeout}s"
        except Exception as e:
            error = str(e) or e.__class__.__name__

        now = utcnow()
        values = {"claim_token": None, "claimed_at": None, "updated_at": now}
        if error is None:
            values.update(status=MessageStatus.SENT, last_error=None, sent_at=now)
        else:
            values.update(
                status=MessageStatus.FAILED,
                attempt_count=QueuedMessage.attempt_count + 1,
                last_error=error[:MAX_ERROR_LENGTH]
            )
        result = await self.db.execute(
            update(QueuedMessage)
            .where(QueuedMessage.id == message.id, QueuedMessage.claim_token == token)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

        if result.rowcount == 0:
            logging.warning(f"Lost claim on message {message.id} before recording its outcome")
        elif error is None:
            logging.info(f"Message sent: id={message.id} channel={message.channel.value}")
        else:
            logging.error(f"Message failed: id={message.id} attempts={message.attempt_count + 1} error={error}")
        return error is None
