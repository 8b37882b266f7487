from abc import ABC, abstractmethod
from aiohttp import ClientSession, ClientError, ClientTimeout
import logging
import json
from dataclasses import dataclass
from typing import Optional, Dict, Any
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from isp_messaging.config import settings
from isp_messaging.models.models import SmsConfig
from isp_messaging.services.exceptions import TransportError
from isp_messaging.services.message_utils import split_addresses


class Transport(ABC):
    """Delivery capability used by the queue. Failures raise TransportError."""

    @abstractmethod
    async def send_email(self, to: str, subject: str, body: str, options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        ...

    @abstractmethod
    async def send_sms(self, to: str, body: str) -> Dict[str, Any]:
        ...


@dataclass
class SmsCredentials:
    email: Optional[str]
    password: Optional[str]
    api_code: Optional[str]
    sender_id: Optional[str]

    @property
    def configured(self) -> bool:
        return bool(self.email and self.password and self.api_code)


async def get_sms_config(db: AsyncSession) -> SmsCredentials:
    """Load gateway credentials for one operation: the sms_config row, else the environment."""
    result = await db.execute(select(SmsConfig).order_by(SmsConfig.id.desc()).limit(1))
    config = result.scalar_one_or_none()
    if config:
        return SmsCredentials(config.email, config.password, config.api_code, config.sender_id)
    return SmsCredentials(
        settings.itexmo_email,
        settings.itexmo_password,
        settings.itexmo_api_code,
        settings.itexmo_sender_id
    )


async def _post_json(url: str, payload: Dict[str, Any], headers: Optional[Dict[str, str]] = None, timeout: float = 30) -> Dict[str, Any]:
    try:
        async with ClientSession(timeout=ClientTimeout(total=timeout)) as client:
            async with client.post(url, json=payload, headers=headers or {}) as response:
                text = await response.text()
                if response.status < 200 or response.status >= 300:
                    try:
                        detail = json.loads(text).get("message", text)
                    except (json.JSONDecodeError, AttributeError):
                        detail = text
                    raise TransportError(f"Gateway error ({response.status}): {detail}")
                if not text:
                    return {}
                try:
                    return json.loads(text)
                except json.JSONDecodeError:
                    return {"raw": text}
    except ClientError as e:
        logging.error(f"Gateway request to {url} failed: {str(e)}")
        raise TransportError(f"Failed to connect to gateway: {str(e)}")


class ResendEmailClient:
    def __init__(self, api_key: str = None, api_url: str = None, from_address: str = None, from_name: str = None, timeout: float = None):
        self.api_key = api_key if api_key is not None else settings.resend_api_key
        self.api_url = api_url or settings.resend_api_url
        self.from_address = from_address or settings.mail_from_address
        self.from_name = from_name or settings.mail_from_name
        self.timeout = timeout or settings.transport_timeout

    def build_payload(self, to: str, subject: str, html: str, options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        options = options or {}
        from_address = options.get("email_sender") or self.from_address
        from_name = options.get("sender_name") or self.from_name
        payload = {
            "from": f"{from_name} <{from_address}>",
            "to": [to],
            "subject": subject,
            "html": html
        }
        if options.get("reply_to"):
            payload["reply_to"] = options["reply_to"]
        for field in ("cc", "bcc"):
            addresses = split_addresses(options.get(field))
            if addresses:
                payload[field] = addresses
        return payload

    async def send(self, to: str, subject: str, html: str, options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        if not self.api_key:
            raise TransportError("Email API key not configured")
        headers = {"Authorization": f"Bearer {self.api_key}"}
        return await _post_json(self.api_url, self.build_payload(to, subject, html, options), headers, self.timeout)


class ItexmoSmsClient:
    def __init__(self, credentials: SmsCredentials, api_url: str = None, timeout: float = None):
        self.credentials = credentials
        self.api_url = api_url or settings.itexmo_api_url
        self.timeout = timeout or settings.transport_timeout

    def build_payload(self, to: str, message: str) -> Dict[str, Any]:
        return {
            "Email": self.credentials.email,
            "Password": self.credentials.password,
            "ApiCode": self.credentials.api_code,
            "Recipients": [to],
            "Message": message,
            "SenderId": self.credentials.sender_id
        }

    async def send(self, to: str, message: str) -> Dict[str, Any]:
        if not self.credentials.configured:
            raise TransportError("SMS configuration not found. Please configure SMS settings.")
        if not to or not message:
            raise TransportError("Contact number and message are required")
        return await _post_json(self.api_url, self.build_payload(to, message), timeout=self.timeout)


class GatewayTransport(Transport):
    def __init__(self, email_client: ResendEmailClient, sms_client: ItexmoSmsClient):
        self.email_client = email_client
        self.sms_client = sms_client

    async def send_email(self, to, subject, body, options=None):
        response = await self.email_client.send(to, subject, body, options)
        logging.info(f"Email sent to {to}")
        return response

    async def send_sms(self, to, body):
        response = await self.sms_client.send(to, body)
        logging.info(f"SMS sent to {to} ({len(body)} chars)")
        return response


async def build_transport(db: AsyncSession) -> GatewayTransport:
    credentials = await get_sms_config(db)
    return GatewayTransport(ResendEmailClient(), ItexmoSmsClient(credentials))
