"""
Ride-wish matching rules.

A wish matches a ride when the route is the same (case and whitespace
insensitive), the ride departs on the wished date, the ride still has room
for the wished party, and the wisher is not the driver.  Compatibility is
checked separately through the gate.

"Local" drivers for a wish are resolved through service areas: each known
pick-up location belongs to an area; unknown locations form their own.
"""

from __future__ import annotations

from datetime import date
from typing import Optional

from .clock import as_utc

AREA_LOCATIONS: dict[str, list[str]] = {
    "Gateshead": [
        "Gateshead Metro Station",
        "Gateshead Town Centre",
        "IKEA Gateshead",
        "Team Valley Trading Estate",
    ],
    "Manchester": [
        "Manchester Piccadilly Station",
        "Manchester Airport",
        "Manchester City Centre (Piccadilly Gardens)",
        "Trafford Centre",
    ],
    "London": [
        "King's Cross Station",
        "Victoria Station",
        "London City Airport",
        "Heathrow Airport",
    ],
}


def _norm(value: str) -> str:
    return " ".join(value.split()).casefold()


_LOCATION_TO_AREA = {
    _norm(loc): area for area, locs in AREA_LOCATIONS.items() for loc in locs
}
_AREAS = {_norm(area): area for area in AREA_LOCATIONS}


def area_for_location(location: str) -> str:
    """Return the service area *location* belongs to."""
    key = _norm(location)
    return _LOCATION_TO_AREA.get(key) or _AREAS.get(key) or location.strip()


def same_area(a: Optional[str], b: Optional[str]) -> bool:
    if not a or not b:
        return False
    return _norm(area_for_location(a)) == _norm(area_for_location(b))


def same_route(from_a: str, to_a: str, from_b: str, to_b: str) -> bool:
    return _norm(from_a) == _norm(from_b) and _norm(to_a) == _norm(to_b)


def is_expired(desired_date: date, today: date) -> bool:
    return desired_date < today


def wish_covers_ride(wish, ride) -> bool:
    """Same route, departing on the wished date."""
    return (
        same_route(
            wish.departure_location,
            wish.arrival_location,
            ride.departure_location,
            ride.arrival_location,
        )
        and as_utc(ride.departure_time).date() == wish.desired_date
    )


def wish_matches_ride(wish, ride) -> bool:
    """Route, date, capacity and ownership check (no compatibility)."""
    if wish.user_id == ride.driver_id:
        return False
    return wish_covers_ride(wish, ride) and wish.passengers_count <= ride.seats_available
