from sqlalchemy import Column, Integer, String, DateTime, Text, Boolean, Enum
from isp_messaging.db.database import Base
from isp_messaging.models.message_queue import MessageChannel, utcnow, _enum_values


class MessageTemplate(Base):
    __tablename__ = "message_templates"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(100), unique=True, nullable=False, index=True)
    channel = Column(Enum(MessageChannel, native_enum=False, length=10, values_callable=_enum_values), nullable=False)
    subject_template = Column(String(255), nullable=True)
    body_template = Column(Text, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    # Email defaults copied onto queued messages
    cc = Column(Text, nullable=True)
    bcc = Column(Text, nullable=True)
    reply_to = Column(String(255), nullable=True)
    email_sender = Column(String(255), nullable=True)
    sender_name = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
