"""
Error taxonomy for the booking core.

Every error carries a stable ``code`` and the HTTP ``status_code`` the API
layer answers with, so routes never translate exceptions by hand.

* **Validation**   -- rejected synchronously, no state change.
* **Concurrency**  -- another actor changed the record first.
* **External**     -- the payment capability failed or declined.
* **Lookup/authz** -- missing records or the wrong actor.
"""

from __future__ import annotations


class CarpoolError(Exception):
    code = "carpool_error"
    status_code = 400

    def __init__(self, message: str | None = None):
        self.message = message or (self.__doc__ or self.code).strip()
        super().__init__(self.message)


# ── Validation ────────────────────────────────────────────────────────


class InvalidBookingRequest(CarpoolError):
    """The booking request is malformed."""

    code = "invalid_booking_request"
    status_code = 400


class IncompatibleRide(CarpoolError):
    """The travelling party may not book this ride."""

    code = "incompatible_ride"
    status_code = 403


class RideNotBookable(CarpoolError):
    """The ride is no longer open for booking."""

    code = "ride_not_bookable"
    status_code = 409


class InvalidDelta(CarpoolError):
    """Seat capacity cannot drop below the seats already booked."""

    code = "invalid_delta"
    status_code = 400


class NotYetDeparted(CarpoolError):
    """The ride has not departed yet."""

    code = "not_yet_departed"
    status_code = 409


class InvalidStateTransition(CarpoolError):
    """Raised when a status change violates the state machine."""

    code = "invalid_state_transition"
    status_code = 409


class InvalidRideRequest(CarpoolError):
    """The ride details are invalid."""

    code = "invalid_ride_request"
    status_code = 400


class InvalidWishRequest(CarpoolError):
    """The ride wish is malformed."""

    code = "invalid_wish_request"
    status_code = 400


class InvalidDriverApplication(CarpoolError):
    """The driver application cannot be accepted."""

    code = "invalid_driver_application"
    status_code = 400


# ── Concurrency ───────────────────────────────────────────────────────


class SeatsUnavailable(CarpoolError):
    """Not enough seats left on this ride."""

    code = "seats_unavailable"
    status_code = 409


class StaleBookingState(CarpoolError):
    """This booking has already changed."""

    code = "stale_booking_state"
    status_code = 409


class InventoryContention(CarpoolError):
    """The seat counter kept changing underneath this update; try again."""

    code = "inventory_contention"
    status_code = 409


# ── External dependency ───────────────────────────────────────────────


class PaymentDeclined(CarpoolError):
    """The payment authorization was declined."""

    code = "payment_declined"
    status_code = 402


class CaptureFailed(CarpoolError):
    """The payment could not be captured."""

    code = "capture_failed"
    status_code = 502


class VoidFailed(CarpoolError):
    """The payment hold could not be released."""

    code = "void_failed"
    status_code = 502


class RefundFailed(CarpoolError):
    """The refund could not be issued."""

    code = "refund_failed"
    status_code = 502


# ── Lookup / authorization ────────────────────────────────────────────


class NotFound(CarpoolError):
    """Record not found."""

    code = "not_found"
    status_code = 404


class NotOwner(CarpoolError):
    """This actor does not own the record."""

    code = "not_owner"
    status_code = 403


class DriverNotApproved(CarpoolError):
    """Only approved drivers can post rides."""

    code = "driver_not_approved"
    status_code = 403


class NotAdmin(CarpoolError):
    """Only administrators can review driver applications."""

    code = "not_admin"
    status_code = 403
