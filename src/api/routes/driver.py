"""
Driver endpoints
================

POST /driver/rides/{ride_id}/status -- move a ride through the state machine
POST /driver/location/update        -- submit a GPS sample (rate-limited)
GET  /driver/rides/today            -- the caller's rides for the next 24 h
GET  /driver/rides/{ride_id}        -- ride detail for the assigned driver
"""

from __future__ import annotations

from datetime import timedelta

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_db, get_lifecycle_service
from src.api.middleware import limiter
from src.api.schemas import (
    DriverRideDetail,
    DriverRideListItem,
    LocationAcceptedResponse,
    LocationUpdateRequest,
    RideStatusUpdateRequest,
    RideStatusUpdateResponse,
)
from src.api.security import require_driver
from src.config import settings
from src.domain.entities import CallerIdentity, LocationSample, utcnow
from src.domain.exceptions import NotAssignedDriver, RideNotFound
from src.domain.ride_state import effective_ride_status
from src.infrastructure.models import BookingModel
from src.infrastructure.repositories import BookingRepository
from src.services.ride_lifecycle import RideLifecycleService

router = APIRouter(prefix="/driver", tags=["driver"])


def _list_item(b: BookingModel) -> dict:
    return dict(
        id=b.id,
        pickup_datetime=b.pickup_datetime,
        pickup_location=b.pickup_location,
        dropoff_location=b.dropoff_location,
        passenger_name=b.passenger_name,
        passenger_phone=b.passenger_phone or "N/A",
        status=effective_ride_status(b.current_ride_status),
    )


@router.post(
    "/rides/{ride_id}/status",
    response_model=RideStatusUpdateResponse,
    summary="Update ride status",
    responses={
        400: {"description": "Transition not allowed from the current status"},
        403: {"description": "Caller is not the assigned driver"},
        404: {"description": "Ride not found"},
    },
)
@limiter.limit(settings.rate_limit)
async def update_ride_status(
    request: Request,
    ride_id: str,
    body: RideStatusUpdateRequest,
    driver: CallerIdentity = Depends(require_driver),
    service: RideLifecycleService = Depends(get_lifecycle_service),
):
    change = await service.update_ride_status(
        ride_id, driver.user_id, body.new_status, actor=driver
    )
    return RideStatusUpdateResponse(
        ride_id=change.ride_id,
        new_status=change.ride_status,
        booking_status=change.booking_status,
        timestamp=change.timestamp,
    )


@router.post(
    "/location/update",
    response_model=LocationAcceptedResponse,
    summary="Submit a driver location sample",
    responses={
        400: {"description": "Ride is not in an active status"},
        404: {"description": "Ride not found or not assigned to caller"},
        429: {"description": "Previous sample accepted too recently"},
    },
)
@limiter.limit(settings.rate_limit)
async def update_location(
    request: Request,
    body: LocationUpdateRequest,
    driver: CallerIdentity = Depends(require_driver),
    service: RideLifecycleService = Depends(get_lifecycle_service),
):
    sample = LocationSample(
        ride_id=body.ride_id,
        latitude=body.latitude,
        longitude=body.longitude,
        heading=body.heading,
        speed=body.speed,
        accuracy=body.accuracy,
        timestamp=body.timestamp or utcnow(),
    )
    entry = await service.submit_location_update(body.ride_id, driver.user_id, sample)
    return LocationAcceptedResponse(ride_id=body.ride_id, timestamp=entry.stored_at)


@router.get(
    "/rides/today",
    response_model=list[DriverRideListItem],
    summary="Caller's rides in the next 24 hours",
)
@limiter.limit(settings.rate_limit)
async def get_rides_today(
    request: Request,
    driver: CallerIdentity = Depends(require_driver),
    db: AsyncSession = Depends(get_db),
):
    now = utcnow()
    rides = await BookingRepository(db).list_upcoming_for_driver(
        driver.user_id, now, now + timedelta(hours=24)
    )
    return [DriverRideListItem(**_list_item(b)) for b in rides]


@router.get(
    "/rides/{ride_id}",
    response_model=DriverRideDetail,
    summary="Ride detail for the assigned driver",
)
@limiter.limit(settings.rate_limit)
async def get_ride_detail(
    request: Request,
    ride_id: str,
    driver: CallerIdentity = Depends(require_driver),
    db: AsyncSession = Depends(get_db),
):
    booking = await BookingRepository(db).get_by_id(ride_id)
    if booking is None:
        raise RideNotFound(ride_id)
    if booking.assigned_driver_uid != driver.user_id:
        raise NotAssignedDriver(ride_id)
    return DriverRideDetail(
        **_list_item(booking),
        passenger_count=booking.passenger_count,
        vehicle_class=booking.vehicle_class,
        additional_request=booking.additional_request,
    )
