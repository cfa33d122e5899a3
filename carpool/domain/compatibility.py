"""
Compatibility Gate  (Strategy Pattern)
======================================

Decides whether a travelling party may book a ride, given who else is in
the car.  The same predicate drives booking eligibility and ride-wish
matching, so both paths always agree.

Default policy (``single_gender``)
----------------------------------
* A couple may travel with anyone.
* A couple driving accepts anyone.
* A car already carrying a couple accepts anyone.
* Otherwise a solo traveller needs the driver, or at least one existing
  occupant, to share their gender.
* An undisclosed gender only matches through one of the couple rules.

Every policy is a pure, total function: no I/O, no exceptions.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from .entities import RideCompany, TravellingParty
from .enums import Gender, TravelStatus


# ── Strategy hierarchy ────────────────────────────────────────────────


class CompatibilityPolicy(ABC):
    name: str = ""

    @abstractmethod
    def allows(self, party: TravellingParty, company: RideCompany) -> bool: ...


class SingleGenderPolicy(CompatibilityPolicy):
    name = "single_gender"

    def allows(self, party: TravellingParty, company: RideCompany) -> bool:
        if party.travel_status == TravelStatus.COUPLE:
            return True
        if company.driver_travel_status == TravelStatus.COUPLE:
            return True
        if company.occupants.has_couple:
            return True
        if party.gender == Gender.UNDISCLOSED:
            return False
        return (
            company.driver_gender == party.gender
            or company.occupants.has_gender(party.gender)
        )


class UnrestrictedPolicy(CompatibilityPolicy):
    name = "unrestricted"

    def allows(self, party: TravellingParty, company: RideCompany) -> bool:
        return True


POLICIES: dict[str, type[CompatibilityPolicy]] = {
    SingleGenderPolicy.name: SingleGenderPolicy,
    UnrestrictedPolicy.name: UnrestrictedPolicy,
}


def get_policy(name: str) -> CompatibilityPolicy:
    try:
        return POLICIES[name]()
    except KeyError:
        raise ValueError(f"Unknown compatibility policy: {name!r}") from None


# ── Gate facade ───────────────────────────────────────────────────────


class CompatibilityGate:
    """High-level API used by the booking state machine and wish engine."""

    def __init__(self, policy: CompatibilityPolicy | None = None):
        self.policy = policy or SingleGenderPolicy()

    def is_compatible(self, party: TravellingParty, company: RideCompany) -> bool:
        return self.policy.allows(party, company)
