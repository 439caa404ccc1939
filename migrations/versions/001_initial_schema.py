"""Initial schema: drivers, bookings and the audit trail.

Revision ID: 001
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


revision = "001"
down_revision = None
branch_labels = None
depends_on = None

RIDE_STATUSES = (
    "Scheduled",
    "OnRoute",
    "Arrived",
    "PassengerOnboard",
    "Completed",
    "Cancelled",
)
BOOKING_STATUSES = (
    "Requested",
    "Confirmed",
    "Scheduled",
    "InProgress",
    "Completed",
    "Cancelled",
    "NoShow",
)
AUDIT_RESULTS = ("Success", "Failed", "Forbidden")


def _status(values: tuple[str, ...], name: str) -> sa.Enum:
    # Stored as VARCHAR + CHECK, matching the ORM's non-native enums.
    return sa.Enum(*values, name=name, native_enum=False, length=32)


def upgrade() -> None:
    # ── drivers ───────────────────────────────────────────────────────
    op.create_table(
        "drivers",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("phone", sa.String(40), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("user_uid", sa.String(64), unique=True, nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )

    # ── bookings ──────────────────────────────────────────────────────
    op.create_table(
        "bookings",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column(
            "status",
            _status(BOOKING_STATUSES, "bookingstatus"),
            nullable=False,
            server_default="Requested",
        ),
        sa.Column(
            "current_ride_status",
            _status(RIDE_STATUSES, "ridestatus"),
            nullable=True,
        ),
        sa.Column("assigned_driver_id", sa.String(32), nullable=True),
        sa.Column("assigned_driver_uid", sa.String(64), nullable=True),
        sa.Column("assigned_driver_name", sa.String(120), nullable=True),
        sa.Column("booker_name", sa.String(120), nullable=False, server_default=""),
        sa.Column("booker_email", sa.String(255), nullable=True),
        sa.Column("passenger_name", sa.String(120), nullable=False, server_default=""),
        sa.Column("passenger_email", sa.String(255), nullable=True),
        sa.Column("passenger_phone", sa.String(40), nullable=True),
        sa.Column("passenger_count", sa.Integer, nullable=False, server_default="1"),
        sa.Column("vehicle_class", sa.String(40), nullable=False, server_default="Sedan"),
        sa.Column("pickup_location", sa.String(255), nullable=False),
        sa.Column("pickup_datetime", sa.DateTime(timezone=True), nullable=False),
        sa.Column("dropoff_location", sa.String(255), nullable=True),
        sa.Column("additional_request", sa.Text, nullable=True),
        sa.Column("created_by_user_id", sa.String(64), nullable=True),
        sa.Column("modified_by_user_id", sa.String(64), nullable=True),
        sa.Column("modified_on", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )
    op.create_index("idx_bookings_status", "bookings", ["status"])
    op.create_index("idx_bookings_driver_uid", "bookings", ["assigned_driver_uid"])
    op.create_index("idx_bookings_created_by", "bookings", ["created_by_user_id"])
    op.create_index("idx_bookings_pickup", "bookings", ["pickup_datetime"])

    # ── audit_logs ────────────────────────────────────────────────────
    op.create_table(
        "audit_logs",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=True),
        sa.Column("username", sa.String(255), nullable=True),
        sa.Column("user_role", sa.String(32), nullable=True),
        sa.Column("action", sa.String(64), nullable=False),
        sa.Column("entity_type", sa.String(64), nullable=False),
        sa.Column("entity_id", sa.String(64), nullable=True),
        sa.Column("details", sa.Text, nullable=True),
        sa.Column("result", _status(AUDIT_RESULTS, "auditresult"), nullable=False),
        sa.Column("error_message", sa.Text, nullable=True),
    )
    op.create_index("idx_audit_logs_timestamp", "audit_logs", ["timestamp"])
    op.create_index("idx_audit_logs_entity", "audit_logs", ["entity_id"])


def downgrade() -> None:
    op.drop_table("audit_logs")
    op.drop_table("bookings")
    op.drop_table("drivers")
