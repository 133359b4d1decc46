"""Initial schema: users, rides, bookings and notifications.

Revision ID: 001
Create Date: 2026-10-17
"""

from alembic import op
import sqlalchemy as sa


revision = "001"
down_revision = None
branch_labels = None
depends_on = None

OPEN_BOOKING_CLAUSE = sa.text("status IN ('pending', 'confirmed')")


def upgrade() -> None:
    # ── users ─────────────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("email", sa.String(255), unique=True, nullable=False),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column(
            "role",
            sa.Enum("staff", "student", name="userrole"),
            default="student",
            nullable=False,
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )

    # ── rides ─────────────────────────────────────────────────────────
    op.create_table(
        "rides",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "provider_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False
        ),
        sa.Column("pickup_location", sa.String(100), nullable=False),
        sa.Column("destination", sa.String(100), nullable=False),
        sa.Column("departure_date", sa.Date, nullable=False),
        sa.Column("departure_time", sa.String(5), nullable=False),
        sa.Column("total_seats", sa.Integer, nullable=False),
        sa.Column("available_seats", sa.Integer, nullable=False),
        sa.Column("price_per_seat", sa.Float, nullable=False),
        sa.Column(
            "vehicle_type",
            sa.Enum("car", "van", "bus", name="vehicletype"),
            default="car",
            nullable=False,
        ),
        sa.Column(
            "status",
            sa.Enum("active", "expired", "completed", "cancelled", name="ridestatus"),
            default="active",
            nullable=False,
        ),
        sa.Column("description", sa.String(500), nullable=True),
        sa.Column("meeting_point", sa.String(200), nullable=True),
        sa.Column("estimated_duration", sa.Integer, nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint(
            "available_seats >= 0 AND available_seats <= total_seats",
            name="ck_rides_seat_bounds",
        ),
    )
    op.create_index("idx_rides_status_date", "rides", ["status", "departure_date"])
    op.create_index("idx_rides_provider", "rides", ["provider_id"])

    # ── bookings ──────────────────────────────────────────────────────
    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("ride_id", sa.Integer, sa.ForeignKey("rides.id"), nullable=False),
        sa.Column("rider_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("seats_booked", sa.Integer, nullable=False),
        sa.Column("total_price", sa.Float, nullable=False),
        sa.Column(
            "status",
            sa.Enum(
                "pending", "confirmed", "completed", "cancelled", name="bookingstatus"
            ),
            default="pending",
            nullable=False,
        ),
        sa.Column(
            "payment_status",
            sa.Enum("pending", "paid", "refunded", "failed", name="paymentstatus"),
            default="pending",
            nullable=False,
        ),
        sa.Column("payment_intent_id", sa.String(64), nullable=True),
        sa.Column("refund_id", sa.String(64), nullable=True),
        sa.Column("special_requests", sa.String(300), nullable=True),
        sa.Column("contact_phone", sa.String(32), nullable=True),
        sa.Column("pickup_notes", sa.String(200), nullable=True),
        sa.Column("booked_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancellation_reason", sa.String(200), nullable=True),
    )
    op.create_index("idx_bookings_ride_status", "bookings", ["ride_id", "status"])
    op.create_index("idx_bookings_rider_status", "bookings", ["rider_id", "status"])
    op.create_index("idx_bookings_payment_intent", "bookings", ["payment_intent_id"])
    op.create_index(
        "uq_bookings_open_rider_ride",
        "bookings",
        ["ride_id", "rider_id"],
        unique=True,
        postgresql_where=OPEN_BOOKING_CLAUSE,
    )

    # ── notifications ─────────────────────────────────────────────────
    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("title", sa.String(100), nullable=False),
        sa.Column("message", sa.String(500), nullable=False),
        sa.Column(
            "category",
            sa.Enum(
                "booking",
                "payment",
                "ride_update",
                "cancellation",
                "completion",
                "system",
                name="notificationcategory",
            ),
            nullable=False,
        ),
        sa.Column("related_id", sa.Integer, nullable=True),
        sa.Column("related_type", sa.String(20), nullable=True),
        sa.Column(
            "priority",
            sa.Enum("low", "medium", "high", "urgent", name="notificationpriority"),
            default="medium",
            nullable=False,
        ),
        sa.Column("is_read", sa.Boolean, default=False, nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )
    op.create_index(
        "idx_notifications_user_read",
        "notifications",
        ["user_id", "is_read", "created_at"],
    )


def downgrade() -> None:
    op.drop_table("notifications")
    op.drop_table("bookings")
    op.drop_table("rides")
    op.drop_table("users")
    for enum_name in (
        "notificationpriority",
        "notificationcategory",
        "paymentstatus",
        "bookingstatus",
        "ridestatus",
        "vehicletype",
        "userrole",
    ):
        op.execute(f"DROP TYPE IF EXISTS {enum_name}")
