import asyncio
from datetime import timedelta
import pytest
from sqlalchemy import select, func, update
from conftest import FakeTransport, email, sms
from isp_messaging.models.message_queue import QueuedMessage, MessageChannel, MessageStatus, utcnow
from isp_messaging.services.message_queue import MessageQueueService
from isp_messaging.services.exceptions import MessageNotFoundError, InvalidStateError


def make_queue(session, transport=None, **kwargs):
    kwargs.setdefault("send_delay", 0)
    return MessageQueueService(session, transport, **kwargs)


async def count_rows(session):
    return (await session.execute(select(func.count()).select_from(QueuedMessage))).scalar()


@pytest.mark.asyncio
async def test_enqueue_starts_pending_with_zero_attempts(async_session):
    queue = make_queue(async_session)
    for payload in (email(), sms()):
        message = await queue.enqueue(payload)
        assert message.status == MessageStatus.PENDING
        assert message.attempt_count == 0
        assert message.last_error is None
        assert message.created_at is not None


@pytest.mark.asyncio
async def test_enqueue_allows_duplicates(async_session):
    queue = make_queue(async_session)
    first = await queue.enqueue(email())
    second = await queue.enqueue(email())
    assert first.id != second.id
    assert await count_rows(async_session) == 2


@pytest.mark.asyncio
async def test_sms_drops_subject_and_normalizes_phone(async_session):
    queue = make_queue(async_session)
    message = await queue.enqueue(sms(recipient="917 123 4567", subject="ignored"))
    assert message.channel == MessageChannel.SMS
    assert message.recipient == "09171234567"
    assert message.subject is None


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [
    email(recipient="not-an-email"),
    email(subject=None),
    email(body=""),
    sms(recipient="call me"),
    {"channel": "fax", "recipient": "123", "body": "x"},
])
async def test_invalid_input_rejected_before_insert(async_session, payload):
    queue = make_queue(async_session)
    with pytest.raises(ValueError):
        await queue.enqueue(payload)
    assert await count_rows(async_session) == 0


@pytest.mark.asyncio
async def test_get_missing_message_raises_not_found(async_session):
    with pytest.raises(MessageNotFoundError):
        await make_queue(async_session).get(999)


@pytest.mark.asyncio
async def test_list_by_filter_paginates_newest_first(async_session):
    queue = make_queue(async_session)
    ids = [(await queue.enqueue(email(related_account_no="ACC-1"))).id for _ in range(3)]
    await queue.enqueue(sms(related_account_no="ACC-2"))

    page = await queue.list_by_filter(related_account_no="ACC-1", page=1, page_size=2)
    assert page["total"] == 3
    assert page["pages"] == 2
    assert [m.id for m in page["items"]] == [ids[2], ids[1]]

    second = await queue.list_by_filter(related_account_no="ACC-1", page=2, page_size=2)
    assert [m.id for m in second["items"]] == [ids[0]]

    sms_only = await queue.list_by_filter(channel="sms")
    assert sms_only["total"] == 1
    pending = await queue.list_by_filter(status="pending")
    assert pending["total"] == 4


@pytest.mark.asyncio
async def test_delete_allowed_in_any_status(async_session, transport):
    queue = make_queue(async_session, transport)
    message = await queue.enqueue(email())
    await queue.drain(10)
    assert (await queue.get(message.id)).status == MessageStatus.SENT

    await queue.delete(message.id)
    with pytest.raises(MessageNotFoundError):
        await queue.get(message.id)
    with pytest.raises(MessageNotFoundError):
        await queue.delete(message.id)


@pytest.mark.asyncio
async def test_reset_sent_message_is_invalid_and_leaves_it_unchanged(async_session, transport):
    queue = make_queue(async_session, transport)
    message = await queue.enqueue(sms())
    await queue.drain(10)
    sent = await queue.get(message.id)
    updated_at, sent_at = sent.updated_at, sent.sent_at

    with pytest.raises(InvalidStateError):
        await queue.reset_to_pending(message.id)

    after = await queue.get(message.id)
    assert after.status == MessageStatus.SENT
    assert after.attempt_count == 0
    assert after.updated_at == updated_at
    assert after.sent_at == sent_at


@pytest.mark.asyncio
async def test_reset_missing_message_raises_not_found(async_session):
    with pytest.raises(MessageNotFoundError):
        await make_queue(async_session).reset_to_pending(42)


@pytest.mark.asyncio
async def test_reset_failed_message_keeps_attempt_count(async_session):
    transport = FakeTransport(fail_for={"09170000000"})
    queue = make_queue(async_session, transport)
    message = await queue.enqueue(sms(recipient="09170000000"))
    await queue.drain(10)

    failed = await queue.get(message.id)
    assert failed.status == MessageStatus.FAILED
    assert failed.attempt_count == 1
    assert "rejected" in failed.last_error

    reset = await queue.reset_to_pending(message.id)
    assert reset.status == MessageStatus.PENDING
    assert reset.attempt_count == 1
    assert reset.last_error is None


@pytest.mark.asyncio
async def test_drain_processes_oldest_first(async_session, transport):
    queue = make_queue(async_session, transport)
    t0 = await queue.enqueue(email(recipient="t0@example.com"))
    t1 = await queue.enqueue(email(recipient="t1@example.com"))
    t2 = await queue.enqueue(email(recipient="t2@example.com"))

    stats = await queue.drain(2)

    assert stats == {"attempted": 2, "sent": 2, "failed": 0}
    assert transport.recipients == ["t0@example.com", "t1@example.com"]
    assert (await queue.get(t0.id)).status == MessageStatus.SENT
    assert (await queue.get(t1.id)).status == MessageStatus.SENT
    assert (await queue.get(t2.id)).status == MessageStatus.PENDING


@pytest.mark.asyncio
async def test_drain_failures_do_not_abort_batch(async_session):
    transport = FakeTransport(fail_for={"bad@example.com"})
    queue = make_queue(async_session, transport)
    good = await queue.enqueue(email(recipient="good@example.com"))
    bad = await queue.enqueue(email(recipient="bad@example.com"))
    later = await queue.enqueue(sms())

    stats = await queue.drain(10)

    assert stats == {"attempted": 3, "sent": 2, "failed": 1}
    assert (await queue.get(good.id)).status == MessageStatus.SENT
    assert (await queue.get(later.id)).status == MessageStatus.SENT
    failed = await queue.get(bad.id)
    assert failed.status == MessageStatus.FAILED
    assert failed.attempt_count == 1
    assert failed.claim_token is None


@pytest.mark.asyncio
async def test_drain_all_failures_still_returns_stats(async_session):
    transport = FakeTransport()
    transport.fail_all = True
    queue = make_queue(async_session, transport)
    for _ in range(3):
        await queue.enqueue(sms())
    assert await queue.drain(10) == {"attempted": 3, "sent": 0, "failed": 3}


@pytest.mark.asyncio
async def test_drain_does_not_retry_failed_messages(async_session):
    transport = FakeTransport(fail_for={"09170000000"})
    queue = make_queue(async_session, transport)
    await queue.enqueue(sms(recipient="09170000000"))
    await queue.drain(10)
    assert await queue.drain(10) == {"attempted": 0, "sent": 0, "failed": 0}
    assert len(transport.calls) == 1


@pytest.mark.asyncio
async def test_transport_timeout_counts_as_failure(async_session):
    queue = make_queue(async_session, FakeTransport(delay=0.5), transport_timeout=0.05)
    message = await queue.enqueue(email())

    stats = await queue.drain(10)

    assert stats == {"attempted": 1, "sent": 0, "failed": 1}
    failed = await queue.get(message.id)
    assert failed.status == MessageStatus.FAILED
    assert failed.attempt_count == 1
    assert "timed out" in failed.last_error


@pytest.mark.asyncio
async def test_sent_message_is_never_processed_again(async_session, transport):
    queue = make_queue(async_session, transport)
    message = await queue.enqueue(sms())
    await queue.drain(10)
    await queue.drain(10)
    await queue.retry_sweep(3, 10)
    assert len(transport.calls) == 1
    sent = await queue.get(message.id)
    assert sent.status == MessageStatus.SENT
    assert sent.sent_at is not None


@pytest.mark.asyncio
async def test_retry_sweep_respects_attempt_ceiling(async_session):
    transport = FakeTransport(fail_for={"09170000000"})
    queue = make_queue(async_session, transport)
    message = await queue.enqueue(sms(recipient="09170000000"))

    await queue.drain(10)
    await queue.retry_sweep(3, 10)
    assert (await queue.get(message.id)).attempt_count == 2

    stats = await queue.retry_sweep(3, 10)
    assert stats == {"attempted": 1, "sent": 0, "failed": 1}
    assert (await queue.get(message.id)).attempt_count == 3

    assert await queue.retry_sweep(3, 10) == {"attempted": 0, "sent": 0, "failed": 0}
    exhausted = await queue.get(message.id)
    assert exhausted.status == MessageStatus.FAILED
    assert exhausted.attempt_count == 3


@pytest.mark.asyncio
async def test_retry_sweep_sends_recovered_messages(async_session):
    transport = FakeTransport(fail_for={"09170000000"})
    queue = make_queue(async_session, transport)
    message = await queue.enqueue(sms(recipient="09170000000"))
    await queue.drain(10)

    transport.fail_for.clear()
    assert await queue.retry_sweep(3, 10) == {"attempted": 1, "sent": 1, "failed": 0}
    sent = await queue.get(message.id)
    assert sent.status == MessageStatus.SENT
    assert sent.attempt_count == 1
    assert sent.last_error is None


@pytest.mark.asyncio
async def test_retry_sweep_never_selects_exhausted_messages(async_session, transport):
    queue = make_queue(async_session, transport)
    for count in range(6):
        await queue.enqueue(sms(recipient=f"0917000000{count}"))
    # attempt_count 0..5 in insertion order
    await async_session.execute(
        update(QueuedMessage).values(status=MessageStatus.FAILED, attempt_count=QueuedMessage.id - 1)
    )
    await async_session.commit()

    await queue.retry_sweep(3, 10)

    assert sorted(transport.recipients) == ["09170000000", "09170000001", "09170000002"]


@pytest.mark.asyncio
async def test_manual_reset_past_ceiling_is_attempted_once(async_session):
    transport = FakeTransport(fail_for={"09170000000"})
    queue = make_queue(async_session, transport)
    message = await queue.enqueue(sms(recipient="09170000000"))
    await queue.drain(10)
    await queue.retry_sweep(2, 10)
    assert (await queue.get(message.id)).attempt_count == 2

    await queue.reset_to_pending(message.id)
    await queue.drain(10)
    failed = await queue.get(message.id)
    assert failed.attempt_count == 3
    assert await queue.retry_sweep(2, 10) == {"attempted": 0, "sent": 0, "failed": 0}


@pytest.mark.asyncio
async def test_stats_counts_are_consistent(async_session):
    transport = FakeTransport(fail_for={"09170000000"})
    queue = make_queue(async_session, transport)
    await queue.enqueue(sms(recipient="09170000000"))
    await queue.enqueue(sms())
    await queue.drain(10)
    await queue.enqueue(email())

    stats = await queue.stats(max_attempts=3)
    assert stats == {"pending": 1, "sent": 1, "failed": 1, "retryable": 1, "total": 3}
    assert stats["pending"] + stats["sent"] + stats["failed"] == stats["total"]
    assert (await queue.stats(max_attempts=1))["retryable"] == 0


@pytest.mark.asyncio
async def test_concurrent_drains_never_double_send(session_factory):
    transport = FakeTransport()
    async with session_factory() as seed:
        queue = make_queue(seed)
        for index in range(100):
            await queue.enqueue(sms(recipient=f"0917{index:07d}"))

    async with session_factory() as first, session_factory() as second:
        stats = await asyncio.gather(
            make_queue(first, transport).drain(60),
            make_queue(second, transport).drain(60),
        )

    processed = transport.recipients
    assert len(processed) == len(set(processed))
    assert sum(s["attempted"] for s in stats) == len(processed) <= 100
    async with session_factory() as check:
        counts = await make_queue(check).stats()
        assert counts["sent"] == len(processed)
        assert counts["pending"] == 100 - len(processed)


@pytest.mark.asyncio
async def test_claimed_messages_are_skipped_until_released(async_session, transport):
    queue = make_queue(async_session, transport)
    message = await queue.enqueue(sms())
    await async_session.execute(
        update(QueuedMessage)
        .where(QueuedMessage.id == message.id)
        .values(claim_token="crashed-worker", claimed_at=utcnow() - timedelta(hours=1))
    )
    await async_session.commit()

    assert (await queue.drain(10))["attempted"] == 0
    assert await queue.release_stale_claims(older_than=600) == 1
    assert (await queue.drain(10))["sent"] == 1


@pytest.mark.asyncio
async def test_fresh_claims_are_not_released(async_session):
    queue = make_queue(async_session)
    message = await queue.enqueue(sms())
    await async_session.execute(
        update(QueuedMessage)
        .where(QueuedMessage.id == message.id)
        .values(claim_token="live-worker", claimed_at=utcnow())
    )
    await async_session.commit()
    assert await queue.release_stale_claims(older_than=600) == 0


@pytest.mark.asyncio
async def test_drain_rejects_non_positive_batch(async_session, transport):
    with pytest.raises(ValueError):
        await make_queue(async_session, transport).drain(0)
