"""
Background Outbox Worker
========================

Runs every ``OUTBOX_INTERVAL_SECONDS`` (default 5 s).

Each cycle does two things:

1. **Payment retry** -- re-runs PENDING voids and refunds from the
   payment ledger with their original idempotency keys.  These follow a
   transition that is already committed, so they must eventually succeed.
2. **Event dispatch** -- forwards undispatched outbox rows to the event
   sink in insertion order.  A sink failure stops the batch so later
   events are not delivered ahead of earlier ones; the next cycle resumes
   from the same row.

Concurrency safety
------------------
A **Redis distributed lock** ensures only one instance runs a cycle at a
time across API processes.  Delivery is still at-least-once (a crash
between emit and commit re-sends), so consumers de-duplicate on
``event_id``.
"""

from __future__ import annotations

import asyncio
import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from carpool.config import settings
from carpool.domain.clock import utcnow
from carpool.infrastructure.database import async_session_factory
from carpool.infrastructure.event_sink import EventSink, build_event_sink
from carpool.infrastructure.locks import DistributedLock
from carpool.infrastructure.payments import PaymentGateway, get_payment_gateway
from carpool.infrastructure.redis_client import get_redis
from carpool.infrastructure.repositories import OutboxRepository
from carpool.services.payments import PaymentOrchestrator

logger = logging.getLogger(__name__)

_task: asyncio.Task | None = None
_stop_event: asyncio.Event | None = None


# ── Public API ────────────────────────────────────────────────────────


async def start_outbox_loop() -> None:
    global _task, _stop_event
    _stop_event = asyncio.Event()
    _task = asyncio.create_task(_loop())
    logger.info(
        "Outbox worker started (interval=%ds)", settings.outbox_interval_seconds
    )


async def stop_outbox_loop() -> None:
    if _stop_event:
        _stop_event.set()
    if _task:
        _task.cancel()
        try:
            await _task
        except asyncio.CancelledError:
            pass
    logger.info("Outbox worker stopped")


# ── Internals ─────────────────────────────────────────────────────────


async def _loop() -> None:
    """Periodic loop: run a cycle then sleep."""
    assert _stop_event is not None
    while not _stop_event.is_set():
        try:
            await run_outbox_cycle()
        except Exception:
            logger.exception("Unhandled error in outbox cycle")
        try:
            await asyncio.wait_for(
                _stop_event.wait(), timeout=settings.outbox_interval_seconds
            )
            break
        except asyncio.TimeoutError:
            pass


async def retry_payment_operations(
    session: AsyncSession, gateway: PaymentGateway, limit: int
) -> int:
    orchestrator = PaymentOrchestrator(session, gateway)
    settled = await orchestrator.retry_pending(limit)
    await session.commit()
    if settled:
        logger.info("Settled %d pending payment operation(s)", settled)
    return settled


async def dispatch_events(session: AsyncSession, sink: EventSink, limit: int) -> int:
    """Forward undispatched events in order.  Returns how many were sent."""
    outbox = OutboxRepository(session)
    sent = 0
    for event in await outbox.get_undispatched(limit):
        try:
            await sink.emit(
                event.event_type,
                {
                    **event.payload,
                    "event_id": event.id,
                    "aggregate_id": event.aggregate_id,
                },
            )
        except Exception:
            logger.exception("Failed to dispatch event %d (%s)", event.id, event.event_type)
            event.attempts = (event.attempts or 0) + 1
            break
        await outbox.mark_dispatched(event, utcnow())
        sent += 1

    await session.commit()
    if sent:
        logger.info("Dispatched %d event(s)", sent)
    return sent


async def run_outbox_cycle(
    session_factory: async_sessionmaker = async_session_factory,
    gateway: PaymentGateway | None = None,
    sink: EventSink | None = None,
) -> tuple[int, int]:
    """Execute one cycle.  Returns ``(payments settled, events dispatched)``."""
    redis = await get_redis()
    lock = DistributedLock(redis, "outbox", ttl_seconds=60)

    if not await lock.acquire():
        logger.debug("Lock held by another worker – skipping cycle")
        return 0, 0

    gateway = gateway or get_payment_gateway()
    sink = sink or build_event_sink(redis)
    settled = sent = 0
    try:
        async with session_factory() as session:
            settled = await retry_payment_operations(
                session, gateway, settings.outbox_batch_size
            )
            if await lock.extend():
                sent = await dispatch_events(session, sink, settings.outbox_batch_size)
            else:
                logger.warning("Outbox lock lost during payment retries; dispatch deferred")
    except Exception:
        logger.exception("Error in outbox cycle")
    finally:
        await lock.release()

    return settled, sent
