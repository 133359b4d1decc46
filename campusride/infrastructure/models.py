"""
SQLAlchemy ORM models.

Tables
------
* ``users``          -- staff providers and student riders
* ``rides``          -- scheduled rides with seat inventory
* ``bookings``       -- per-rider seat reservations
* ``notifications``  -- append-only user-facing notices

Indexes
-------
* **B-Tree** on ``(status, departure_date)`` for the expiration sweep,
  ``provider_id``, ``(ride_id, status)`` and ``(rider_id, status)``.
* **Partial unique** on ``bookings(ride_id, rider_id)`` restricted to
  open statuses: at most one pending/confirmed booking per rider per ride.

Constraints
-----------
* ``ck_rides_seat_bounds`` keeps ``0 <= available_seats <= total_seats``.
"""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    func,
    text,
)

from .database import Base
from campusride.domain.enums import (
    BookingStatus,
    NotificationCategory,
    NotificationPriority,
    PaymentStatus,
    RideStatus,
    UserRole,
    VehicleType,
)

OPEN_BOOKING_CLAUSE = text("status IN ('pending', 'confirmed')")


def _enum(enum_cls):
    """Persist enum *values* (``"active"``) rather than member names."""
    return Enum(enum_cls, values_callable=lambda members: [m.value for m in members])


class UserModel(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(120), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    phone = Column(String(32), nullable=True)
    role = Column(_enum(UserRole), default=UserRole.STUDENT, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class RideModel(Base):
    __tablename__ = "rides"

    id = Column(Integer, primary_key=True, autoincrement=True)
    provider_id = Column(Integer, ForeignKey("users.id"), nullable=False)

    pickup_location = Column(String(100), nullable=False)
    destination = Column(String(100), nullable=False)
    departure_date = Column(Date, nullable=False)
    departure_time = Column(String(5), nullable=False)  # HH:MM

    total_seats = Column(Integer, nullable=False)
    available_seats = Column(Integer, nullable=False)
    price_per_seat = Column(Float, nullable=False)
    vehicle_type = Column(_enum(VehicleType), default=VehicleType.CAR, nullable=False)
    status = Column(_enum(RideStatus), default=RideStatus.ACTIVE, nullable=False)

    description = Column(String(500), nullable=True)
    meeting_point = Column(String(200), nullable=True)
    estimated_duration = Column(Integer, nullable=True)  # minutes

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("idx_rides_status_date", "status", "departure_date"),
        Index("idx_rides_provider", "provider_id"),
        CheckConstraint(
            "available_seats >= 0 AND available_seats <= total_seats",
            name="ck_rides_seat_bounds",
        ),
    )


class BookingModel(Base):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    ride_id = Column(Integer, ForeignKey("rides.id"), nullable=False)
    rider_id = Column(Integer, ForeignKey("users.id"), nullable=False)

    seats_booked = Column(Integer, nullable=False)
    total_price = Column(Float, nullable=False)
    status = Column(_enum(BookingStatus), default=BookingStatus.PENDING, nullable=False)
    payment_status = Column(
        _enum(PaymentStatus), default=PaymentStatus.PENDING, nullable=False
    )
    payment_intent_id = Column(String(64), nullable=True)
    refund_id = Column(String(64), nullable=True)

    special_requests = Column(String(300), nullable=True)
    contact_phone = Column(String(32), nullable=True)
    pickup_notes = Column(String(200), nullable=True)

    booked_at = Column(DateTime(timezone=True), nullable=False)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancellation_reason = Column(String(200), nullable=True)

    __table_args__ = (
        Index("idx_bookings_ride_status", "ride_id", "status"),
        Index("idx_bookings_rider_status", "rider_id", "status"),
        Index("idx_bookings_payment_intent", "payment_intent_id"),
        Index(
            "uq_bookings_open_rider_ride",
            "ride_id",
            "rider_id",
            unique=True,
            postgresql_where=OPEN_BOOKING_CLAUSE,
            sqlite_where=OPEN_BOOKING_CLAUSE,
        ),
    )


class NotificationModel(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    title = Column(String(100), nullable=False)
    message = Column(String(500), nullable=False)
    category = Column(_enum(NotificationCategory), nullable=False)
    related_id = Column(Integer, nullable=True)
    related_type = Column(String(20), nullable=True)
    priority = Column(
        _enum(NotificationPriority), default=NotificationPriority.MEDIUM, nullable=False
    )
    is_read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("idx_notifications_user_read", "user_id", "is_read", "created_at"),
    )
