"""Outbox worker tests: ordered dispatch, payment retries and the cycle lock."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from carpool.domain.enums import EventType, PaymentOperationStatus
from carpool.infrastructure.models import OutboxEventModel
from carpool.infrastructure.repositories import OutboxRepository
from carpool.services.events import EventPublisher
from carpool.services.payments import PaymentOrchestrator
from carpool.workers import outbox


@pytest.fixture
def session_factory(db_session):
    """Sessions on the same in-memory database as ``db_session``."""
    return async_sessionmaker(db_session.bind, class_=AsyncSession, expire_on_commit=False)


async def publish(session, count: int) -> None:
    events = EventPublisher(session)
    for n in range(count):
        await events.publish(EventType.RIDE_POSTED, n + 1, {"ride_id": n + 1})
    await session.commit()


def mock_redis(acquired: bool = True) -> AsyncMock:
    client = AsyncMock()
    client.set = AsyncMock(return_value=acquired)
    client.eval = AsyncMock(return_value=1)
    return client


class TestDispatch:
    @pytest.mark.asyncio
    async def test_events_sent_in_order(self, db_session):
        await publish(db_session, 3)
        sink = AsyncMock()

        assert await outbox.dispatch_events(db_session, sink, limit=10) == 3

        sent = [c.args for c in sink.emit.await_args_list]
        assert [payload["ride_id"] for _, payload in sent] == [1, 2, 3]
        assert all(event_type == "ride.posted" for event_type, _ in sent)
        assert [payload["aggregate_id"] for _, payload in sent] == ["1", "2", "3"]
        assert len({payload["event_id"] for _, payload in sent}) == 3
        assert await OutboxRepository(db_session).count_undispatched() == 0

    @pytest.mark.asyncio
    async def test_sink_failure_stops_the_batch(self, db_session):
        await publish(db_session, 3)
        sink = AsyncMock()
        sink.emit.side_effect = [None, RuntimeError("stream down"), None]

        assert await outbox.dispatch_events(db_session, sink, limit=10) == 1
        assert sink.emit.await_count == 2

        rows = (
            await db_session.execute(select(OutboxEventModel).order_by(OutboxEventModel.id))
        ).scalars().all()
        assert rows[0].dispatched_at is not None
        assert rows[1].dispatched_at is None and rows[1].attempts == 1
        assert rows[2].dispatched_at is None and rows[2].attempts == 0

        # Next pass resumes from the failed event
        retry_sink = AsyncMock()
        assert await outbox.dispatch_events(db_session, retry_sink, limit=10) == 2
        assert retry_sink.emit.await_args_list[0].args[1]["ride_id"] == 2

    @pytest.mark.asyncio
    async def test_batch_limit(self, db_session):
        await publish(db_session, 5)
        sink = AsyncMock()
        assert await outbox.dispatch_events(db_session, sink, limit=2) == 2
        assert await OutboxRepository(db_session).count_undispatched() == 3


class TestPaymentRetry:
    @pytest.mark.asyncio
    async def test_pending_void_is_settled(self, db_session, gateway):
        orchestrator = PaymentOrchestrator(db_session, gateway)
        handle = await orchestrator.authorize(1500, "ref-1")
        op = await orchestrator.schedule_void(handle, "ref-1")
        await db_session.commit()

        assert await outbox.retry_payment_operations(db_session, gateway, limit=10) == 1
        assert op.status == PaymentOperationStatus.SUCCEEDED
        assert gateway.payments[handle].state == "VOIDED"

    @pytest.mark.asyncio
    async def test_still_failing_stays_pending(self, db_session, gateway):
        orchestrator = PaymentOrchestrator(db_session, gateway)
        handle = await orchestrator.authorize(1500, "ref-2")
        op = await orchestrator.schedule_void(handle, "ref-2")
        await db_session.commit()

        gateway.fail_next("void")
        assert await outbox.retry_payment_operations(db_session, gateway, limit=10) == 0
        assert op.status == PaymentOperationStatus.PENDING
        assert op.attempts == 1
        assert "unavailable" in op.last_error


class TestCycle:
    @pytest.mark.asyncio
    async def test_cycle_skipped_when_lock_held(self, db_session, session_factory, gateway):
        await publish(db_session, 1)
        sink = AsyncMock()
        client = mock_redis(acquired=False)

        with patch.object(outbox, "get_redis", AsyncMock(return_value=client)):
            result = await outbox.run_outbox_cycle(
                session_factory, gateway=gateway, sink=sink
            )

        assert result == (0, 0)
        sink.emit.assert_not_awaited()
        client.eval.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cycle_dispatches_and_releases_lock(self, db_session, session_factory, gateway):
        await publish(db_session, 2)
        sink = AsyncMock()
        client = mock_redis()

        with patch.object(outbox, "get_redis", AsyncMock(return_value=client)):
            result = await outbox.run_outbox_cycle(
                session_factory, gateway=gateway, sink=sink
            )

        assert result == (0, 2)
        client.set.assert_awaited_once()
        assert client.set.await_args.args[0] == "carpool:lock:outbox"
        # extend between the two steps, then release
        assert client.eval.await_count == 2

    @pytest.mark.asyncio
    async def test_dispatch_deferred_when_lock_is_lost(
        self, db_session, session_factory, gateway
    ):
        await publish(db_session, 2)
        sink = AsyncMock()
        client = mock_redis()
        client.eval = AsyncMock(side_effect=[0, 1])

        with patch.object(outbox, "get_redis", AsyncMock(return_value=client)):
            result = await outbox.run_outbox_cycle(
                session_factory, gateway=gateway, sink=sink
            )

        assert result == (0, 0)
        sink.emit.assert_not_awaited()
        assert await OutboxRepository(db_session).count_undispatched() == 2

    @pytest.mark.asyncio
    async def test_lock_released_when_cycle_fails(self, session_factory, gateway):
        client = mock_redis()
        with patch.object(outbox, "get_redis", AsyncMock(return_value=client)), patch.object(
            outbox, "dispatch_events", AsyncMock(side_effect=RuntimeError("boom"))
        ):
            result = await outbox.run_outbox_cycle(
                session_factory, gateway=gateway, sink=AsyncMock()
            )

        assert result == (0, 0)
        assert client.eval.await_count == 2


class TestLoop:
    @pytest.mark.asyncio
    async def test_start_and_stop(self):
        cycle = AsyncMock(return_value=(0, 0))
        with patch.object(outbox, "run_outbox_cycle", cycle):
            await outbox.start_outbox_loop()
            await asyncio.sleep(0.01)
            await outbox.stop_outbox_loop()

        assert cycle.await_count >= 1
