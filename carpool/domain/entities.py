"""
Domain entities and value objects.

Patterns used
-------------
- **State Pattern** on ``Ride``: enforces valid lifecycle transitions
  (UPCOMING -> COMPLETED | CANCELLED).
- ``next_booking_status`` is the single lookup into the booking
  transition table; an unlisted (status, event) pair is an error, never
  a silent no-op.
- Travellers are a tagged variant: ``SelfTraveller`` books for the
  account holder, ``ThirdPartyTraveller`` carries its own attributes.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union

from .enums import (
    BOOKING_TRANSITIONS,
    RIDE_TRANSITIONS,
    BookingEvent,
    BookingStatus,
    Gender,
    RideStatus,
    TravelStatus,
    TravellerKind,
)
from .errors import InvalidStateTransition


# ── Value Objects ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class Occupants:
    """People already in the vehicle, excluding the driver."""

    males: int = 0
    females: int = 0
    couples: int = 0

    def has_gender(self, gender: Gender) -> bool:
        if gender == Gender.MALE:
            return self.males > 0
        if gender == Gender.FEMALE:
            return self.females > 0
        return False

    @property
    def has_couple(self) -> bool:
        return self.couples > 0


@dataclass(frozen=True)
class TravellingParty:
    gender: Gender = Gender.UNDISCLOSED
    travel_status: TravelStatus = TravelStatus.SOLO


@dataclass(frozen=True)
class RideCompany:
    """Who the travelling party would share the car with."""

    driver_gender: Gender = Gender.UNDISCLOSED
    driver_travel_status: TravelStatus = TravelStatus.SOLO
    occupants: Occupants = Occupants()


@dataclass(frozen=True)
class SelfTraveller:
    kind: TravellerKind = TravellerKind.SELF


@dataclass(frozen=True)
class ThirdPartyTraveller:
    gender: Gender
    age_group: Optional[str] = None
    special_needs: Optional[str] = None
    kind: TravellerKind = TravellerKind.THIRD_PARTY


Traveller = Union[SelfTraveller, ThirdPartyTraveller]


def party_for(
    traveller: Traveller, gender: Gender, travel_status: TravelStatus
) -> TravellingParty:
    """Resolve the party the gate evaluates.

    A third-party traveller is a single person, so always travels solo;
    otherwise the account holder's own profile applies.
    """
    if isinstance(traveller, ThirdPartyTraveller):
        return TravellingParty(traveller.gender, TravelStatus.SOLO)
    return TravellingParty(gender, travel_status)


@dataclass(frozen=True)
class DriverCandidate:
    driver_id: int
    name: str
    home_area: Optional[str] = None


# ── Transitions ───────────────────────────────────────────────────────


def next_booking_status(current: BookingStatus, event: BookingEvent) -> BookingStatus:
    """Look up the booking transition table, raising on illegal pairs."""
    try:
        return BOOKING_TRANSITIONS[(current, event)]
    except KeyError:
        raise InvalidStateTransition(
            f"Cannot apply {event.value} to a booking in {current.value}"
        ) from None


@dataclass
class Ride:
    id: Optional[int] = None
    driver_id: int = 0
    departure_time: Optional[datetime] = None
    seats_total: int = 1
    seats_available: int = 1
    status: RideStatus = RideStatus.UPCOMING

    def transition_to(self, new_status: RideStatus) -> None:
        """Move to *new_status* if the transition is legal, else raise."""
        allowed = RIDE_TRANSITIONS.get(self.status, set())
        if new_status not in allowed:
            raise InvalidStateTransition(
                f"Cannot transition ride from {self.status.value} to {new_status.value}"
            )
        self.status = new_status

    @property
    def seats_committed(self) -> int:
        return self.seats_total - self.seats_available
