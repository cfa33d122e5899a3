"""Domain enumerations and state-transition rules."""

import enum


class RideStatus(str, enum.Enum):
    UPCOMING = "UPCOMING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


# State machine: maps current status -> set of valid next statuses
RIDE_TRANSITIONS: dict[RideStatus, set[RideStatus]] = {
    RideStatus.UPCOMING: {RideStatus.COMPLETED, RideStatus.CANCELLED},
    RideStatus.COMPLETED: set(),
    RideStatus.CANCELLED: set(),
}


class BookingStatus(str, enum.Enum):
    PENDING_DRIVER = "PENDING_DRIVER"
    CONFIRMED = "CONFIRMED"
    REJECTED = "REJECTED"
    CANCELLED_BY_PASSENGER = "CANCELLED_BY_PASSENGER"
    CANCELLED_BY_DRIVER = "CANCELLED_BY_DRIVER"
    COMPLETED = "COMPLETED"


class BookingEvent(str, enum.Enum):
    DRIVER_ACCEPT = "DRIVER_ACCEPT"
    DRIVER_REJECT = "DRIVER_REJECT"
    PASSENGER_CANCEL = "PASSENGER_CANCEL"
    DRIVER_CANCEL_RIDE = "DRIVER_CANCEL_RIDE"
    RIDE_COMPLETE = "RIDE_COMPLETE"


# (current status, event) -> next status.  Pairs not listed are illegal.
BOOKING_TRANSITIONS: dict[tuple[BookingStatus, BookingEvent], BookingStatus] = {
    (BookingStatus.PENDING_DRIVER, BookingEvent.DRIVER_ACCEPT): BookingStatus.CONFIRMED,
    (BookingStatus.PENDING_DRIVER, BookingEvent.DRIVER_REJECT): BookingStatus.REJECTED,
    (BookingStatus.PENDING_DRIVER, BookingEvent.PASSENGER_CANCEL): BookingStatus.CANCELLED_BY_PASSENGER,
    (BookingStatus.PENDING_DRIVER, BookingEvent.DRIVER_CANCEL_RIDE): BookingStatus.CANCELLED_BY_DRIVER,
    (BookingStatus.CONFIRMED, BookingEvent.PASSENGER_CANCEL): BookingStatus.CANCELLED_BY_PASSENGER,
    (BookingStatus.CONFIRMED, BookingEvent.DRIVER_CANCEL_RIDE): BookingStatus.CANCELLED_BY_DRIVER,
    (BookingStatus.CONFIRMED, BookingEvent.RIDE_COMPLETE): BookingStatus.COMPLETED,
}

TERMINAL_BOOKING_STATUSES = frozenset(
    {
        BookingStatus.REJECTED,
        BookingStatus.CANCELLED_BY_PASSENGER,
        BookingStatus.CANCELLED_BY_DRIVER,
        BookingStatus.COMPLETED,
    }
)

# Bookings in these statuses hold seats on their ride
SEAT_HOLDING_STATUSES = frozenset(
    {BookingStatus.PENDING_DRIVER, BookingStatus.CONFIRMED, BookingStatus.COMPLETED}
)


class WishStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    FULFILLED = "FULFILLED"


class DriverApplicationStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class Gender(str, enum.Enum):
    MALE = "MALE"
    FEMALE = "FEMALE"
    UNDISCLOSED = "UNDISCLOSED"


class TravelStatus(str, enum.Enum):
    SOLO = "SOLO"
    COUPLE = "COUPLE"


class TravellerKind(str, enum.Enum):
    SELF = "SELF"
    THIRD_PARTY = "THIRD_PARTY"


class LuggageSize(str, enum.Enum):
    NONE = "NONE"
    SMALL = "SMALL"
    MEDIUM = "MEDIUM"
    LARGE = "LARGE"


class PaymentKind(str, enum.Enum):
    AUTHORIZE = "AUTHORIZE"
    CAPTURE = "CAPTURE"
    VOID = "VOID"
    REFUND = "REFUND"


class PaymentOperationStatus(str, enum.Enum):
    PENDING = "PENDING"
    SUCCEEDED = "SUCCEEDED"


class EventType(str, enum.Enum):
    RIDE_POSTED = "ride.posted"
    RIDE_CANCELLED = "ride.cancelled"
    RIDE_COMPLETED = "ride.completed"
    BOOKING_REQUESTED = "booking.requested"
    BOOKING_ACCEPTED = "booking.accepted"
    BOOKING_REJECTED = "booking.rejected"
    BOOKING_CANCELLED_BY_PASSENGER = "booking.cancelled_by_passenger"
    BOOKING_CANCELLED_BY_DRIVER = "booking.cancelled_by_driver"
    BOOKING_COMPLETED = "booking.completed"
    WISH_CREATED = "wish.created"
    WISH_MATCHED = "wish.matched"
    WISH_FULFILLED = "wish.fulfilled"
    WISH_DRIVER_CANDIDATE = "wish.driver_candidate"
    DRIVER_APPLICATION_SUBMITTED = "driver.application_submitted"
    DRIVER_APPROVED = "driver.approved"
    DRIVER_REJECTED = "driver.rejected"
