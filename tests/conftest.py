import asyncio
import os

# Log to stderr instead of ./logs during tests
os.environ.setdefault("LOG_FILE", "")

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker
from isp_messaging.db.database import Base
from isp_messaging.models import message_queue, templates, models  # noqa: F401
from isp_messaging.services.exceptions import TransportError
from isp_messaging.services.transport import Transport


class FakeTransport(Transport):
    """Records deliveries; recipients listed in fail_for are rejected."""

    def __init__(self, fail_for=(), delay: float = 0):
        self.fail_for = set(fail_for)
        self.fail_all = False
        self.delay = delay
        self.calls = []

    async def _deliver(self, channel, to, subject, body):
        await asyncio.sleep(self.delay)
        self.calls.append({"channel": channel, "to": to, "subject": subject, "body": body})
        if self.fail_all or to in self.fail_for:
            raise TransportError(f"Gateway rejected {to}")
        return {"id": len(self.calls)}

    async def send_email(self, to, subject, body, options=None):
        return await self._deliver("email", to, subject, body)

    async def send_sms(self, to, body):
        return await self._deliver("sms", to, None, body)

    @property
    def recipients(self):
        return [call["to"] for call in self.calls]


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def async_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def transport():
    return FakeTransport()


def email(recipient="subscriber@example.com", subject="Your bill", body="<p>Amount due</p>", **extra):
    return {"channel": "email", "recipient": recipient, "subject": subject, "body": body, **extra}


def sms(recipient="09171234567", body="Your bill is ready", **extra):
    return {"channel": "sms", "recipient": recipient, "body": body, **extra}
