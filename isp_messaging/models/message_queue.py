from sqlalchemy import Column, Integer, String, DateTime, Text, Enum, Index
from datetime import datetime, timezone
from isp_messaging.db.database import Base
import enum


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class MessageChannel(str, enum.Enum):
    EMAIL = "email"
    SMS = "sms"


class MessageStatus(str, enum.Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class QueuedMessage(Base):
    __tablename__ = "message_queue"
    __table_args__ = (
        Index("ix_message_queue_status_created", "status", "created_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    channel = Column(Enum(MessageChannel, native_enum=False, length=10, values_callable=_enum_values), nullable=False)
    recipient = Column(String(255), nullable=False)
    subject = Column(String(200), nullable=True)
    body = Column(Text, nullable=False)
    # Email envelope extras
    cc = Column(Text, nullable=True)
    bcc = Column(Text, nullable=True)
    reply_to = Column(String(255), nullable=True)
    email_sender = Column(String(255), nullable=True)
    sender_name = Column(String(255), nullable=True)
    related_account_no = Column(String(50), nullable=True, index=True)
    status = Column(
        Enum(MessageStatus, native_enum=False, length=10, values_callable=_enum_values),
        default=MessageStatus.PENDING,
        nullable=False,
    )
    attempt_count = Column(Integer, default=0, nullable=False)
    last_error = Column(Text, nullable=True)
    # Set while a drain or retry sweep owns the row
    claim_token = Column(String(36), nullable=True, index=True)
    claimed_at = Column(DateTime, nullable=True)
    sent_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self):
        return f"<QueuedMessage id={self.id} channel={self.channel} status={self.status} attempts={self.attempt_count}>"
