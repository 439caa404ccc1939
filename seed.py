"""
Seed script -- populates the database with sample data for reviewers.

Run after migrations:
    python seed.py

Creates:
  - 4 drivers (3 linked to driver-app accounts, 1 unlinked)
  - 7 bookings picked up today (mix of Requested, Scheduled, on-route and
    finished rides)

and prints bearer tokens for a dispatcher, each linked driver and a booker,
signed with the configured ``JWT_SECRET``.
"""

import asyncio
from datetime import timedelta

from sqlalchemy import func, select

from src.api.security import create_token
from src.domain.entities import utcnow
from src.domain.enums import BookingStatus, RideStatus, UserRole
from src.infrastructure.database import async_session_factory, engine
from src.infrastructure.models import BookingModel, DriverModel

BOOKER = {"uid": "booker-001", "name": "Helen Park", "email": "helen.park@example.com"}

DRIVERS = [
    {"name": "Marcus Bell", "phone": "+1-555-0101", "email": "marcus@example.com", "user_uid": "drv-marcus"},
    {"name": "Sofia Reyes", "phone": "+1-555-0102", "email": "sofia@example.com", "user_uid": "drv-sofia"},
    {"name": "Tom Okafor", "phone": "+1-555-0103", "email": "tom@example.com", "user_uid": "drv-tom"},
    # Not linked to an app account yet: assigning him is rejected
    {"name": "Ivan Petrov", "phone": "+1-555-0104", "email": None, "user_uid": None},
]

# (driver index or None, booking status, ride status, pickup offset hours)
BOOKINGS = [
    (None, BookingStatus.REQUESTED, None, 5),
    (None, BookingStatus.CONFIRMED, None, 6),
    (0, BookingStatus.SCHEDULED, RideStatus.SCHEDULED, 2),
    (0, BookingStatus.SCHEDULED, RideStatus.SCHEDULED, 8),
    (1, BookingStatus.IN_PROGRESS, RideStatus.ON_ROUTE, 1),
    (2, BookingStatus.IN_PROGRESS, RideStatus.PASSENGER_ONBOARD, 0),
    (2, BookingStatus.COMPLETED, RideStatus.COMPLETED, -3),
]

ROUTES = [
    ("JFK Terminal 4", "The Plaza Hotel, 768 5th Ave"),
    ("LaGuardia Terminal B", "One World Trade Center"),
    ("Newark Terminal C", "Grand Central Terminal"),
    ("The Pierre, 2 E 61st St", "JFK Terminal 1"),
]


async def seed():
    async with async_session_factory() as session:
        # Check if already seeded
        count = await session.scalar(select(func.count()).select_from(DriverModel))
        if count:
            print("Database already seeded. Skipping.")
            return

        # ── Drivers ───────────────────────────────────────────────────
        drivers = [DriverModel(**d) for d in DRIVERS]
        session.add_all(drivers)
        await session.flush()
        print(f"  Created {len(drivers)} drivers")

        # ── Bookings ──────────────────────────────────────────────────
        now = utcnow()
        for i, (driver_idx, status, ride_status, offset) in enumerate(BOOKINGS):
            pickup, dropoff = ROUTES[i % len(ROUTES)]
            driver = drivers[driver_idx] if driver_idx is not None else None
            session.add(
                BookingModel(
                    status=status,
                    current_ride_status=ride_status,
                    assigned_driver_id=driver.id if driver else None,
                    assigned_driver_uid=driver.user_uid if driver else None,
                    assigned_driver_name=driver.name if driver else None,
                    booker_name=BOOKER["name"],
                    booker_email=BOOKER["email"],
                    passenger_name=f"Guest {i + 1}",
                    passenger_email=f"guest{i + 1}@example.com",
                    passenger_phone=f"+1-555-02{i:02d}",
                    passenger_count=1 + i % 3,
                    vehicle_class="SUV" if i % 2 else "Sedan",
                    pickup_location=pickup,
                    pickup_datetime=now + timedelta(hours=offset),
                    dropoff_location=dropoff,
                    created_by_user_id=BOOKER["uid"],
                )
            )
        await session.flush()
        print(f"  Created {len(BOOKINGS)} bookings")

        await session.commit()
        print("\nSeed complete!")

    print("\nBearer tokens:")
    print(f"  dispatcher: {create_token('dispatch-001', UserRole.DISPATCHER, 'dispatch')}")
    for d in DRIVERS:
        if d["user_uid"]:
            print(f"  {d['name']}: {create_token(d['user_uid'], UserRole.DRIVER, d['name'])}")
    print(
        f"  booker: "
        f"{create_token(BOOKER['uid'], UserRole.BOOKER, BOOKER['name'], BOOKER['email'])}"
    )


async def main():
    print("Seeding database...")
    await seed()
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
