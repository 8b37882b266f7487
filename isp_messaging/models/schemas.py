from typing import Optional, List, Dict, Any
from pydantic import BaseModel, model_validator, Field
from datetime import datetime
import re
from isp_messaging.models.message_queue import MessageChannel, MessageStatus
from isp_messaging.services.message_utils import normalize_phone, split_addresses

# Local (09XXXXXXXXX) and international (+63...) numbers
PHONE_PATTERN = r'^\+?\d{7,15}$'
EMAIL_PATTERN = r'^[^@\s]+@[^@\s]+\.[^@\s]+$'

def validate_phone(phone: str) -> str:
    phone = normalize_phone(phone or "")
    if not re.match(PHONE_PATTERN, phone):
        raise ValueError('Invalid phone number format')
    return phone

def validate_email(email: str) -> str:
    email = (email or "").strip()
    if not re.match(EMAIL_PATTERN, email):
        raise ValueError('Invalid email address')
    return email

class QueuedMessageCreate(BaseModel):
    """Literal message content for the outbound queue."""
    channel: MessageChannel
    recipient: str
    subject: Optional[str] = Field(None, max_length=200)
    body: str = Field(..., min_length=1)
    cc: Optional[str] = None
    bcc: Optional[str] = None
    reply_to: Optional[str] = None
    email_sender: Optional[str] = None
    sender_name: Optional[str] = None
    related_account_no: Optional[str] = Field(None, max_length=50)

    @model_validator(mode='after')
    def check_channel_fields(self):
        if self.channel == MessageChannel.EMAIL:
            self.recipient = validate_email(self.recipient)
            if not self.subject:
                raise ValueError('subject is required for email messages')
            for field in ('cc', 'bcc'):
                addresses = split_addresses(getattr(self, field))
                for address in addresses:
                    validate_email(address)
                setattr(self, field, ", ".join(addresses) or None)
        else:
            self.recipient = validate_phone(self.recipient)
            self.subject = None
            self.cc = self.bcc = self.reply_to = None
            self.email_sender = self.sender_name = None
        return self

class TemplateEnqueueRequest(BaseModel):
    template_code: str = Field(..., min_length=1)
    data: Dict[str, Any] = Field(default_factory=dict)
    recipient: Optional[str] = None
    related_account_no: Optional[str] = Field(None, max_length=50)

class QueuedMessageOut(BaseModel):
    id: int
    channel: MessageChannel
    recipient: str
    subject: Optional[str] = None
    body: str
    cc: Optional[str] = None
    bcc: Optional[str] = None
    reply_to: Optional[str] = None
    related_account_no: Optional[str] = None
    status: MessageStatus
    attempt_count: int
    last_error: Optional[str] = None
    sent_at: Optional[datetime] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class MessagePage(BaseModel):
    items: List[QueuedMessageOut]
    total: int
    page: int
    page_size: int
    pages: int

class QueueStats(BaseModel):
    pending: int
    sent: int
    failed: int
    retryable: int
    total: int

class BatchStats(BaseModel):
    attempted: int
    sent: int
    failed: int

class TaskDispatched(BaseModel):
    task_id: str
    status: str = "queued"

class TemplateCreate(BaseModel):
    code: str = Field(..., min_length=1, max_length=100)
    channel: MessageChannel
    subject_template: Optional[str] = Field(None, max_length=255)
    body_template: str = Field(..., min_length=1)
    is_active: bool = True
    cc: Optional[str] = None
    bcc: Optional[str] = None
    reply_to: Optional[str] = None
    email_sender: Optional[str] = None
    sender_name: Optional[str] = None

    @model_validator(mode='after')
    def check_subject(self):
        if self.channel == MessageChannel.EMAIL and not self.subject_template:
            raise ValueError('subject_template is required for email templates')
        return self

class TemplateUpdate(BaseModel):
    subject_template: Optional[str] = Field(None, max_length=255)
    body_template: Optional[str] = Field(None, min_length=1)
    is_active: Optional[bool] = None
    cc: Optional[str] = None
    bcc: Optional[str] = None
    reply_to: Optional[str] = None
    email_sender: Optional[str] = None
    sender_name: Optional[str] = None

    @model_validator(mode='after')
    def check_required_fields(self):
        for field in ('body_template', 'is_active'):
            if field in self.model_fields_set and getattr(self, field) is None:
                raise ValueError(f'{field} cannot be null')
        return self

class TemplateOut(BaseModel):
    id: int
    code: str
    channel: MessageChannel
    subject_template: Optional[str] = None
    body_template: str
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class SmsBlastRequest(BaseModel):
    filter_kind: str = Field(..., description="One of: barangay, location, lcp, lcpnap")
    filter_value: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1)

class SmsBlastResult(BaseModel):
    total_recipients: int
    queued: int
    message_ids: List[int]

class SmsBlastLogOut(BaseModel):
    id: int
    message: str
    filter_kind: str
    filter_value: str
    message_count: int
    created_at: datetime

    class Config:
        from_attributes = True

class NotificationItem(BaseModel):
    id: int
    type: str
    customer_name: str
    plan_name: str
    title: str
    message: str
    timestamp: int
    formatted_date: str
    raw_date: str
