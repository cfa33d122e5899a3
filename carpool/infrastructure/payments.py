"""
Payment gateway capability  (Strategy Pattern)
==============================================

The booking core only needs four verbs from a card processor:

* ``authorize`` -- place a hold for the booking total (delayed capture)
* ``capture``   -- turn the hold into a charge
* ``void``      -- drop the hold without charging
* ``refund``    -- return part or all of a captured charge

Every call carries an idempotency key; a gateway must treat a repeated key
as a no-op that returns the original outcome.

``SandboxPaymentGateway`` is an in-memory implementation with the same
semantics, used for local development, the seed script and the tests.
A real processor adapter subclasses ``PaymentGateway``.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from collections import Counter
from dataclasses import dataclass

from carpool.config import settings

logger = logging.getLogger(__name__)


class GatewayError(Exception):
    """Transient or state error reported by the processor."""


class GatewayDeclined(GatewayError):
    """The processor refused to place the hold."""


# ── Strategy hierarchy ────────────────────────────────────────────────


class PaymentGateway(ABC):
    @abstractmethod
    async def authorize(
        self, amount: int, currency: str, idempotency_key: str, reference: str
    ) -> str: ...

    @abstractmethod
    async def capture(self, handle: str, idempotency_key: str) -> None: ...

    @abstractmethod
    async def void(self, handle: str, idempotency_key: str) -> None: ...

    @abstractmethod
    async def refund(self, handle: str, amount: int, idempotency_key: str) -> None: ...


@dataclass
class SandboxPayment:
    handle: str
    amount: int
    currency: str
    reference: str
    state: str = "AUTHORIZED"  # AUTHORIZED | CAPTURED | VOIDED
    refunded: int = 0


class SandboxPaymentGateway(PaymentGateway):
    def __init__(self, decline_above: int | None = None, latency: float = 0.0):
        self.decline_above = decline_above
        self.latency = latency
        self.payments: dict[str, SandboxPayment] = {}
        self.calls: Counter[str] = Counter()
        self._seen: dict[str, str] = {}
        self._failures: Counter[str] = Counter()

    def fail_next(self, operation: str, times: int = 1) -> None:
        """Make the next *times* calls of *operation* raise ``GatewayError``."""
        self._failures[operation] += times

    async def _enter(self, operation: str) -> None:
        if self.latency:
            await asyncio.sleep(self.latency)
        if self._failures[operation] > 0:
            self._failures[operation] -= 1
            raise GatewayError(f"sandbox {operation} unavailable")

    def _payment(self, handle: str) -> SandboxPayment:
        try:
            return self.payments[handle]
        except KeyError:
            raise GatewayError(f"unknown payment {handle}") from None

    async def authorize(
        self, amount: int, currency: str, idempotency_key: str, reference: str
    ) -> str:
        if idempotency_key in self._seen:
            return self._seen[idempotency_key]
        await self._enter("authorize")
        if amount <= 0 or (
            self.decline_above is not None and amount > self.decline_above
        ):
            raise GatewayDeclined(f"declined: {amount} {currency}")
        handle = f"pay_{uuid.uuid4().hex[:16]}"
        self.payments[handle] = SandboxPayment(handle, amount, currency, reference)
        self._seen[idempotency_key] = handle
        self.calls["authorize"] += 1
        return handle

    async def capture(self, handle: str, idempotency_key: str) -> None:
        if idempotency_key in self._seen:
            return
        await self._enter("capture")
        payment = self._payment(handle)
        if payment.state != "AUTHORIZED":
            raise GatewayError(f"cannot capture a {payment.state} payment")
        payment.state = "CAPTURED"
        self._seen[idempotency_key] = handle
        self.calls["capture"] += 1

    async def void(self, handle: str, idempotency_key: str) -> None:
        if idempotency_key in self._seen:
            return
        await self._enter("void")
        payment = self._payment(handle)
        if payment.state == "CAPTURED":
            raise GatewayError("cannot void a captured payment")
        payment.state = "VOIDED"
        self._seen[idempotency_key] = handle
        self.calls["void"] += 1

    async def refund(self, handle: str, amount: int, idempotency_key: str) -> None:
        if idempotency_key in self._seen:
            return
        await self._enter("refund")
        payment = self._payment(handle)
        if payment.state != "CAPTURED":
            raise GatewayError(f"cannot refund a {payment.state} payment")
        if amount > payment.amount - payment.refunded:
            raise GatewayError("refund exceeds captured amount")
        payment.refunded += amount
        self._seen[idempotency_key] = handle
        self.calls["refund"] += 1


_gateway: PaymentGateway | None = None


def get_payment_gateway() -> PaymentGateway:
    """Process-wide gateway instance selected by ``settings.payment_gateway``."""
    global _gateway
    if _gateway is None:
        if settings.payment_gateway != "sandbox":
            raise ValueError(
                f"Unsupported payment gateway: {settings.payment_gateway!r}"
            )
        logger.warning("Using the in-memory sandbox payment gateway")
        _gateway = SandboxPaymentGateway(decline_above=settings.sandbox_decline_above)
    return _gateway
