"""Pydantic request / response schemas for the REST API.

The mobile apps and the admin portal speak camelCase JSON, so every schema
accepts and emits camelCase aliases while the Python side stays snake_case.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from src.domain.enums import AuditResult, BookingStatus, RideStatus


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# ── Requests ──────────────────────────────────────────────────────────


class RideStatusUpdateRequest(CamelModel):
    new_status: RideStatus


class LocationUpdateRequest(CamelModel):
    ride_id: str = Field(..., min_length=1, max_length=64)
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    heading: Optional[float] = Field(None, ge=0, le=360)
    speed: Optional[float] = Field(None, ge=0, description="Metres per second.")
    accuracy: Optional[float] = Field(None, ge=0, description="Metres.")
    timestamp: Optional[datetime] = None


class BookingCreateRequest(CamelModel):
    booker_name: str = Field(..., min_length=1, max_length=120)
    booker_email: Optional[str] = Field(None, max_length=255)
    passenger_name: str = Field(..., min_length=1, max_length=120)
    passenger_email: Optional[str] = Field(None, max_length=255)
    passenger_phone: Optional[str] = Field(None, max_length=40)
    passenger_count: int = Field(1, ge=1, le=14)
    vehicle_class: str = Field("Sedan", max_length=40)
    pickup_location: str = Field(..., min_length=1, max_length=255)
    pickup_datetime: datetime
    dropoff_location: Optional[str] = Field(None, max_length=255)
    additional_request: Optional[str] = None


class DriverAssignmentRequest(CamelModel):
    driver_id: str


class DriverCreateRequest(CamelModel):
    name: str = Field(..., min_length=1, max_length=120)
    phone: Optional[str] = Field(None, max_length=40)
    email: Optional[str] = Field(None, max_length=255)
    user_uid: Optional[str] = Field(None, max_length=64)


# ── Responses ─────────────────────────────────────────────────────────


class RideStatusUpdateResponse(CamelModel):
    success: bool = True
    ride_id: str
    new_status: RideStatus
    booking_status: BookingStatus
    timestamp: datetime


class LocationAcceptedResponse(CamelModel):
    message: str = "Location updated"
    ride_id: str
    timestamp: datetime


class RideLocationResponse(CamelModel):
    """Latest location for one ride, or the "not tracking yet" shape."""

    ride_id: str
    tracking_active: bool
    message: Optional[str] = None
    current_status: Optional[RideStatus] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    heading: Optional[float] = None
    speed: Optional[float] = None
    accuracy: Optional[float] = None
    timestamp: Optional[datetime] = None
    age_seconds: Optional[float] = None
    driver_uid: Optional[str] = None
    driver_name: Optional[str] = None


class ActiveRideLocation(CamelModel):
    ride_id: str
    driver_uid: Optional[str] = None
    driver_name: Optional[str] = None
    passenger_name: Optional[str] = None
    pickup_location: Optional[str] = None
    dropoff_location: Optional[str] = None
    current_status: Optional[RideStatus] = None
    latitude: float
    longitude: float
    heading: Optional[float] = None
    speed: Optional[float] = None
    timestamp: datetime
    age_seconds: float


class ActiveLocationsResponse(CamelModel):
    count: int
    locations: list[ActiveRideLocation]
    timestamp: datetime


class RideLocationsBatchResponse(CamelModel):
    requested: int
    found: int
    locations: list[ActiveRideLocation]
    timestamp: datetime


class BookingResponse(CamelModel):
    id: str
    status: BookingStatus
    current_ride_status: Optional[RideStatus] = None
    assigned_driver_id: Optional[str] = None
    assigned_driver_uid: Optional[str] = None
    assigned_driver_name: Optional[str] = None
    booker_name: str
    booker_email: Optional[str] = None
    passenger_name: str
    passenger_email: Optional[str] = None
    passenger_phone: Optional[str] = None
    passenger_count: int
    vehicle_class: str
    pickup_location: str
    pickup_datetime: datetime
    dropoff_location: Optional[str] = None
    additional_request: Optional[str] = None
    created_by_user_id: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class DriverRideListItem(CamelModel):
    id: str
    pickup_datetime: datetime
    pickup_location: str
    dropoff_location: Optional[str] = None
    passenger_name: str
    passenger_phone: str
    status: RideStatus


class DriverRideDetail(DriverRideListItem):
    passenger_count: int
    vehicle_class: str
    additional_request: Optional[str] = None


class DriverResponse(CamelModel):
    id: str
    name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    user_uid: Optional[str] = None


class AuditLogResponse(CamelModel):
    id: str
    timestamp: datetime
    user_id: Optional[str] = None
    username: Optional[str] = None
    user_role: Optional[str] = None
    action: str
    entity_type: str
    entity_id: Optional[str] = None
    details: Optional[str] = None
    result: AuditResult
    error_message: Optional[str] = None


class HealthResponse(BaseModel):
    status: str = "ok"


class ErrorResponse(BaseModel):
    detail: str
