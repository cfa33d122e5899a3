"""
Payment Orchestrator
====================

Wraps the gateway with idempotent authorize / capture / void / refund and
keeps a ledger row per operation in ``payment_operations``.

Idempotency
-----------
Keys are ``<booking reference>:<kind>``.  A booking is authorized,
captured, voided and refunded at most once each, so a ledger row that
already SUCCEEDED short-circuits any repeat: retried driver decisions
never double-capture or double-refund.  The same key is sent to the
gateway, which de-duplicates on its side too.

Must-eventually-succeed operations
----------------------------------
Voids and refunds follow a state transition that is already committed.
They are first *scheduled* (a PENDING ledger row written in the
transition's transaction), then executed.  A failure leaves the row
PENDING; the outbox worker re-runs it with the same key until it
succeeds.  Captures are different: the booking must not be confirmed
until the capture succeeds, so a failed capture is reported to the
caller instead.
"""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from carpool.config import settings
from carpool.domain.clock import Clock, utcnow
from carpool.domain.enums import PaymentKind, PaymentOperationStatus
from carpool.domain.errors import (
    CaptureFailed,
    PaymentDeclined,
    RefundFailed,
    VoidFailed,
)
from carpool.infrastructure.models import PaymentOperationModel
from carpool.infrastructure.payments import (
    GatewayDeclined,
    GatewayError,
    PaymentGateway,
)
from carpool.infrastructure.repositories import PaymentOperationRepository

logger = logging.getLogger(__name__)


def idempotency_key(booking_ref: str, kind: PaymentKind) -> str:
    return f"{booking_ref}:{kind.value.lower()}"


class PaymentOrchestrator:
    def __init__(
        self,
        session: AsyncSession,
        gateway: PaymentGateway,
        clock: Clock = utcnow,
        currency: str | None = None,
    ):
        self.ledger = PaymentOperationRepository(session)
        self.gateway = gateway
        self.clock = clock
        self.currency = currency or settings.currency

    async def _succeeded(self, key: str) -> PaymentOperationModel | None:
        op = await self.ledger.get_by_key(key)
        if op is not None and op.status == PaymentOperationStatus.SUCCEEDED:
            return op
        return None

    async def _record(
        self,
        booking_ref: str,
        kind: PaymentKind,
        handle: str | None,
        amount: int,
        status: PaymentOperationStatus,
    ) -> PaymentOperationModel:
        key = idempotency_key(booking_ref, kind)
        op = await self.ledger.get_by_key(key)
        if op is None:
            op = await self.ledger.create(
                PaymentOperationModel(
                    booking_reference=booking_ref,
                    kind=kind,
                    payment_handle=handle,
                    amount=amount,
                    idempotency_key=key,
                    status=status,
                    attempts=0,
                )
            )
        if status == PaymentOperationStatus.SUCCEEDED:
            op.status = status
            op.completed_at = self.clock()
        return op

    # ── Synchronous verbs ─────────────────────────────────────────

    async def authorize(self, amount: int, booking_ref: str) -> str:
        """Place a hold for *amount*; returns the payment handle."""
        key = idempotency_key(booking_ref, PaymentKind.AUTHORIZE)
        done = await self._succeeded(key)
        if done is not None:
            return done.payment_handle

        try:
            handle = await self.gateway.authorize(
                amount, self.currency, key, booking_ref
            )
        except GatewayDeclined as exc:
            logger.info("Authorization declined for %s: %s", booking_ref, exc)
            raise PaymentDeclined() from exc
        except GatewayError as exc:
            logger.warning("Authorization failed for %s: %s", booking_ref, exc)
            raise PaymentDeclined("The payment could not be authorized") from exc

        op = await self._record(
            booking_ref, PaymentKind.AUTHORIZE, handle, amount,
            PaymentOperationStatus.SUCCEEDED,
        )
        op.attempts = 1
        return handle

    async def capture(self, handle: str, booking_ref: str, amount: int = 0) -> None:
        key = idempotency_key(booking_ref, PaymentKind.CAPTURE)
        if await self._succeeded(key) is not None:
            logger.info("Capture for %s already done; skipping", booking_ref)
            return

        try:
            await self.gateway.capture(handle, key)
        except GatewayError as exc:
            logger.warning("Capture failed for %s: %s", booking_ref, exc)
            raise CaptureFailed() from exc

        op = await self._record(
            booking_ref, PaymentKind.CAPTURE, handle, amount,
            PaymentOperationStatus.SUCCEEDED,
        )
        op.attempts = 1

    async def void(self, handle: str, booking_ref: str) -> None:
        op = await self.schedule_void(handle, booking_ref)
        if not await self.execute(op):
            raise VoidFailed()

    async def refund(self, handle: str, amount: int, booking_ref: str) -> None:
        op = await self.schedule_refund(handle, amount, booking_ref)
        if not await self.execute(op):
            raise RefundFailed()

    # ── Scheduled verbs ───────────────────────────────────────────

    async def schedule_void(self, handle: str, booking_ref: str) -> PaymentOperationModel:
        return await self._record(
            booking_ref, PaymentKind.VOID, handle, 0, PaymentOperationStatus.PENDING
        )

    async def schedule_refund(
        self, handle: str, amount: int, booking_ref: str
    ) -> PaymentOperationModel:
        if amount < 0:
            raise ValueError("Refund amount must be non-negative")
        # Nothing to send for a zero refund; the ledger still records it
        status = (
            PaymentOperationStatus.SUCCEEDED
            if amount == 0
            else PaymentOperationStatus.PENDING
        )
        return await self._record(booking_ref, PaymentKind.REFUND, handle, amount, status)

    async def execute(self, op: PaymentOperationModel) -> bool:
        """Run a scheduled operation once.  Returns True when it succeeded."""
        if op.status == PaymentOperationStatus.SUCCEEDED:
            return True

        op.attempts = (op.attempts or 0) + 1
        try:
            if op.kind == PaymentKind.VOID:
                await self.gateway.void(op.payment_handle, op.idempotency_key)
            elif op.kind == PaymentKind.REFUND:
                await self.gateway.refund(
                    op.payment_handle, op.amount, op.idempotency_key
                )
            else:
                raise ValueError(f"{op.kind.value} operations are not scheduled")
        except GatewayError as exc:
            op.last_error = str(exc)
            logger.warning(
                "%s %s failed (attempt %d): %s",
                op.kind.value, op.booking_reference, op.attempts, exc,
            )
            return False

        op.status = PaymentOperationStatus.SUCCEEDED
        op.completed_at = self.clock()
        op.last_error = None
        logger.info("%s %s succeeded", op.kind.value, op.booking_reference)
        return True

    async def retry_pending(self, limit: int = 100) -> int:
        """Re-run PENDING operations; returns how many succeeded."""
        settled = 0
        for op in await self.ledger.get_pending(limit):
            if await self.execute(op):
                settled += 1
        return settled
