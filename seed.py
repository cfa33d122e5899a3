"""
Seed script -- populates the database with sample data for reviewers.

Run after migrations:
    python seed.py

Creates:
  - 9 sample users (3 approved drivers, one per service area, and an admin)
  - 4 upcoming rides posted through the ride service
  - 1 pending booking and 1 confirmed booking (sandbox payments)
  - 1 standing ride wish
  - 1 driver application awaiting review
"""

import asyncio
from datetime import timedelta

from sqlalchemy import text

from carpool.domain.clock import utcnow
from carpool.domain.enums import Gender, LuggageSize, TravelStatus
from carpool.infrastructure.database import async_session_factory, engine
from carpool.infrastructure.models import UserModel
from carpool.infrastructure.payments import get_payment_gateway
from carpool.services.bookings import BookingService
from carpool.services.drivers import DriverApplicationService
from carpool.services.rides import RideService
from carpool.services.wishes import WishMatchingEngine

USERS = [
    {"name": "Tom Hardy", "email": "tom@example.com", "gender": Gender.MALE,
     "home_area": "Gateshead", "is_approved_driver": True, "rating": 4.8},
    {"name": "Sarah Lee", "email": "sarah@example.com", "gender": Gender.FEMALE,
     "home_area": "Manchester", "is_approved_driver": True, "rating": 4.9},
    {"name": "Ben & Amy Clark", "email": "clarks@example.com", "gender": Gender.MALE,
     "travel_status": TravelStatus.COUPLE, "partner_name": "Amy Clark",
     "home_area": "London", "is_approved_driver": True, "rating": 4.7},
    {"name": "James Wood", "email": "james@example.com", "gender": Gender.MALE},
    {"name": "Emma Brown", "email": "emma@example.com", "gender": Gender.FEMALE},
    {"name": "Olivia Green", "email": "olivia@example.com", "gender": Gender.FEMALE},
    {"name": "Noah & Mia Hall", "email": "halls@example.com", "gender": Gender.FEMALE,
     "travel_status": TravelStatus.COUPLE, "partner_name": "Noah Hall"},
    {"name": "Alex Kim", "email": "alex@example.com"},
    {"name": "Priya Shah", "email": "admin@example.com", "gender": Gender.FEMALE,
     "is_admin": True},
]


async def seed():
    async with async_session_factory() as session:
        # Check if already seeded
        result = await session.execute(text("SELECT count(*) FROM users"))
        if result.scalar() > 0:
            print("Database already seeded. Skipping.")
            return

        # ── Users ─────────────────────────────────────────────────────
        users = [UserModel(**u) for u in USERS]
        session.add_all(users)
        await session.commit()
        tom, sarah, clarks, james, emma, olivia, halls, alex, _ = users
        print(f"  Created {len(users)} users")

        # ── Rides ─────────────────────────────────────────────────────
        now = utcnow()
        rides = RideService(session)
        ride_specs = [
            (tom, "Gateshead Metro Station", "Manchester Airport", 3, 4, 2000),
            (sarah, "Manchester Piccadilly Station", "King's Cross Station", 5, 3, 3500),
            (clarks, "Heathrow Airport", "Trafford Centre", 7, 4, 4200),
            (tom, "IKEA Gateshead", "Victoria Station", 10, 2, 3000),
        ]
        posted = []
        for driver, origin, destination, days, seats, price in ride_specs:
            ride, _ = await rides.post_ride(
                driver.id,
                origin,
                destination,
                now + timedelta(days=days),
                seats_total=seats,
                price_per_seat=price,
                vehicle_make="Ford",
                vehicle_model="Focus",
                luggage_size=LuggageSize.MEDIUM,
                luggage_count=2,
            )
            posted.append(ride)
        print(f"  Created {len(posted)} rides")

        # ── Bookings ──────────────────────────────────────────────────
        bookings = BookingService(session, get_payment_gateway())
        await bookings.request_booking(posted[0].id, james.id, 2)
        confirmed = await bookings.request_booking(posted[1].id, emma.id, 1)
        await bookings.accept_booking(confirmed.id, sarah.id)
        print("  Created 2 bookings (1 pending, 1 confirmed)")

        # ── Wishes ────────────────────────────────────────────────────
        wishes = WishMatchingEngine(session, bookings.gate)
        await wishes.create_wish(
            olivia.id,
            "Manchester Airport",
            "London City Airport",
            (now + timedelta(days=4)).date(),
        )
        print("  Created 1 ride wish")

        # ── Driver applications ───────────────────────────────────────
        await DriverApplicationService(session).submit_application(
            alex.id,
            "Alex",
            "Kim",
            "Toyota",
            "Yaris",
            years_driving_experience=6,
            has_drivers_license=True,
            car_insured=True,
            has_mot=True,
            home_area="Manchester",
        )
        print("  Created 1 pending driver application")

    print("\nSeed complete!")


async def main():
    print("Seeding database...")
    await seed()
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
