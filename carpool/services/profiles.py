"""Adapters from stored rows to the compatibility gate's value objects."""

from __future__ import annotations

from carpool.domain.entities import (
    Occupants,
    RideCompany,
    SelfTraveller,
    ThirdPartyTraveller,
    Traveller,
    TravellingParty,
    party_for,
)
from carpool.domain.enums import TravellerKind
from carpool.infrastructure.models import RideModel, RideWishModel, UserModel


def ride_company(ride: RideModel, driver: UserModel) -> RideCompany:
    return RideCompany(
        driver_gender=driver.gender,
        driver_travel_status=driver.travel_status,
        occupants=Occupants(
            males=ride.occupant_males or 0,
            females=ride.occupant_females or 0,
            couples=ride.occupant_couples or 0,
        ),
    )


def driver_company(driver: UserModel) -> RideCompany:
    """The driver alone, for rides that do not exist yet."""
    return RideCompany(driver.gender, driver.travel_status)


def wish_traveller(wish: RideWishModel) -> Traveller:
    if wish.traveller_kind == TravellerKind.THIRD_PARTY and wish.third_party_gender:
        return ThirdPartyTraveller(
            gender=wish.third_party_gender, age_group=wish.third_party_age_group
        )
    return SelfTraveller()


def user_party(traveller: Traveller, user: UserModel) -> TravellingParty:
    return party_for(traveller, user.gender, user.travel_status)
