"""
SQLAlchemy ORM models.

Tables
------
* ``drivers``     -- chauffeurs; ``user_uid`` links a driver to the account
  the driver app signs in with
* ``bookings``    -- booking requests with their dual status
  (coarse ``status`` + driver-facing ``current_ride_status``)
* ``audit_logs``  -- append-only compliance trail

Indexes
-------
B-Tree on ``bookings.status``, ``bookings.assigned_driver_uid``,
``bookings.created_by_user_id`` and ``bookings.pickup_datetime`` for the
driver "today" list and per-owner booking lists, and on
``audit_logs.timestamp`` / ``audit_logs.entity_id`` for the admin viewer.
"""

import uuid

from sqlalchemy import (
    Column,
    DateTime,
    Enum,
    Index,
    Integer,
    String,
    Text,
    func,
)

from .database import Base
from src.domain.enums import AuditResult, BookingStatus, RideStatus


def _hex_id() -> str:
    return uuid.uuid4().hex


def _enum(enum_cls, name: str) -> Enum:
    # Store the enum *values* ("OnRoute"), which is what clients send.
    return Enum(
        enum_cls,
        name=name,
        values_callable=lambda members: [m.value for m in members],
        native_enum=False,
        length=32,
    )


class DriverModel(Base):
    __tablename__ = "drivers"

    id = Column(String(32), primary_key=True, default=_hex_id)
    name = Column(String(120), nullable=False)
    phone = Column(String(40), nullable=True)
    email = Column(String(255), nullable=True)
    user_uid = Column(String(64), unique=True, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class BookingModel(Base):
    __tablename__ = "bookings"

    id = Column(String(32), primary_key=True, default=_hex_id)
    status = Column(
        _enum(BookingStatus, "bookingstatus"),
        default=BookingStatus.REQUESTED,
        nullable=False,
    )
    current_ride_status = Column(_enum(RideStatus, "ridestatus"), nullable=True)

    # Driver assignment: id links to the roster, uid to the driver app login
    assigned_driver_id = Column(String(32), nullable=True)
    assigned_driver_uid = Column(String(64), nullable=True)
    assigned_driver_name = Column(String(120), nullable=True)

    booker_name = Column(String(120), nullable=False, default="")
    booker_email = Column(String(255), nullable=True)
    passenger_name = Column(String(120), nullable=False, default="")
    passenger_email = Column(String(255), nullable=True)
    passenger_phone = Column(String(40), nullable=True)
    passenger_count = Column(Integer, nullable=False, default=1)
    vehicle_class = Column(String(40), nullable=False, default="Sedan")
    pickup_location = Column(String(255), nullable=False)
    pickup_datetime = Column(DateTime(timezone=True), nullable=False)
    dropoff_location = Column(String(255), nullable=True)
    additional_request = Column(Text, nullable=True)

    created_by_user_id = Column(String(64), nullable=True)
    modified_by_user_id = Column(String(64), nullable=True)
    modified_on = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("idx_bookings_status", "status"),
        Index("idx_bookings_driver_uid", "assigned_driver_uid"),
        Index("idx_bookings_created_by", "created_by_user_id"),
        Index("idx_bookings_pickup", "pickup_datetime"),
    )


class AuditLogModel(Base):
    __tablename__ = "audit_logs"

    id = Column(String(32), primary_key=True, default=_hex_id)
    timestamp = Column(DateTime(timezone=True), nullable=False)
    user_id = Column(String(64), nullable=True)
    username = Column(String(255), nullable=True)
    user_role = Column(String(32), nullable=True)
    action = Column(String(64), nullable=False)
    entity_type = Column(String(64), nullable=False)
    entity_id = Column(String(64), nullable=True)
    details = Column(Text, nullable=True)
    result = Column(_enum(AuditResult, "auditresult"), nullable=False)
    error_message = Column(Text, nullable=True)

    __table_args__ = (
        Index("idx_audit_logs_timestamp", "timestamp"),
        Index("idx_audit_logs_entity", "entity_id"),
    )
