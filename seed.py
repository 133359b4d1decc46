"""
Seed script -- populates the database with sample data for reviewers.

Run after migrations:
    python seed.py

Creates:
  - 3 staff ride providers and 6 student riders
  - 6 sample rides (upcoming, one already departed, one cancelled)
  - 5 sample bookings (mix of PENDING, CONFIRMED, CANCELLED)
"""

import asyncio
from datetime import timedelta

from sqlalchemy import text

from campusride.domain.clock import utcnow
from campusride.domain.enums import (
    BookingStatus,
    PaymentStatus,
    RideStatus,
    UserRole,
    VehicleType,
)
from campusride.infrastructure.database import async_session_factory, engine
from campusride.infrastructure.models import BookingModel, RideModel, UserModel


STAFF = [
    {"name": "Dr. Helen Okafor", "email": "h.okafor@campus.example", "phone": "+1 555 0101"},
    {"name": "Marcus Lindqvist", "email": "m.lindqvist@campus.example", "phone": "+1 555 0102"},
    {"name": "Farah Qureshi", "email": "f.qureshi@campus.example", "phone": None},
]

STUDENTS = [
    {"name": "Tomás Rivera", "email": "trivera@student.campus.example"},
    {"name": "Mei Chen", "email": "mchen@student.campus.example"},
    {"name": "Jonah Adler", "email": "jadler@student.campus.example"},
    {"name": "Amara Nwosu", "email": "anwosu@student.campus.example"},
    {"name": "Lukas Brandt", "email": "lbrandt@student.campus.example"},
    {"name": "Priya Raman", "email": "praman@student.campus.example"},
]


async def seed():
    async with async_session_factory() as session:
        # Check if already seeded
        result = await session.execute(text("SELECT count(*) FROM users"))
        if result.scalar() > 0:
            print("Database already seeded. Skipping.")
            return

        # ── Users ─────────────────────────────────────────────────────
        staff = [UserModel(role=UserRole.STAFF, **u) for u in STAFF]
        students = [UserModel(role=UserRole.STUDENT, **u) for u in STUDENTS]
        session.add_all(staff + students)
        await session.flush()
        print(f"  Created {len(staff)} staff and {len(students)} students")

        # ── Rides ─────────────────────────────────────────────────────
        today = utcnow().date()
        rides_data = [
            ("Main Gate", "Central Station", 1, "08:30", 4, 4, 3.50, VehicleType.CAR, RideStatus.ACTIVE),
            ("Library", "Airport Terminal 2", 2, "06:15", 7, 7, 12.00, VehicleType.VAN, RideStatus.ACTIVE),
            ("Science Park", "City Centre", 1, "17:45", 3, 3, 2.75, VehicleType.CAR, RideStatus.ACTIVE),
            ("North Dorms", "Stadium", 3, "18:00", 8, 8, 4.00, VehicleType.BUS, RideStatus.ACTIVE),
            ("Main Gate", "Riverside Mall", -1, "10:00", 4, 2, 3.00, VehicleType.CAR, RideStatus.EXPIRED),
            ("Library", "Central Station", 2, "09:00", 4, 4, 3.50, VehicleType.CAR, RideStatus.CANCELLED),
        ]
        rides = []
        for i, (pickup, dest, days, at, total, avail, price, vehicle, status) in enumerate(
            rides_data
        ):
            ride = RideModel(
                provider_id=staff[i % len(staff)].id,
                pickup_location=pickup,
                destination=dest,
                departure_date=today + timedelta(days=days),
                departure_time=at,
                total_seats=total,
                available_seats=avail,
                price_per_seat=price,
                vehicle_type=vehicle,
                status=status,
                meeting_point=f"{pickup} drop-off bay",
            )
            session.add(ride)
            rides.append(ride)
        await session.flush()
        print(f"  Created {len(rides)} rides")

        # ── Bookings ──────────────────────────────────────────────────
        now = utcnow()
        bookings_data = [
            # (ride index, student index, seats, status, payment status)
            (0, 0, 1, BookingStatus.PENDING, PaymentStatus.PENDING),
            (0, 1, 2, BookingStatus.CONFIRMED, PaymentStatus.PAID),
            (1, 2, 1, BookingStatus.PENDING, PaymentStatus.PENDING),
            (4, 3, 2, BookingStatus.COMPLETED, PaymentStatus.PAID),
            (2, 4, 1, BookingStatus.CANCELLED, PaymentStatus.PENDING),
        ]
        for ride_idx, student_idx, seats, status, payment in bookings_data:
            ride = rides[ride_idx]
            booking = BookingModel(
                ride_id=ride.id,
                rider_id=students[student_idx].id,
                seats_booked=seats,
                total_price=round(ride.price_per_seat * seats, 2),
                status=status,
                payment_status=payment,
                booked_at=now,
                confirmed_at=now if status == BookingStatus.CONFIRMED else None,
                completed_at=now if status == BookingStatus.COMPLETED else None,
                cancelled_at=now if status == BookingStatus.CANCELLED else None,
                cancellation_reason=(
                    "Plans changed" if status == BookingStatus.CANCELLED else None
                ),
            )
            session.add(booking)
            if status in (BookingStatus.PENDING, BookingStatus.CONFIRMED):
                ride.available_seats -= seats
        await session.flush()
        print(f"  Created {len(bookings_data)} bookings")

        await session.commit()
        print("\nSeed complete!")


async def main():
    print("Seeding database...")
    await seed()
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
