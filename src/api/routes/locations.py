"""
Location read endpoints
=======================

GET /driver/location/{ride_id}             -- assigned driver or staff
GET /passenger/rides/{ride_id}/location    -- booker / passenger of the ride
GET /admin/locations                       -- every tracked ride (staff)
GET /admin/locations/rides?rideIds=a,b     -- selected rides (staff)

A ride that is not being tracked yet is a normal answer
(``trackingActive: false``), never an error.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_db, get_location_store
from src.api.middleware import limiter
from src.api.schemas import (
    ActiveLocationsResponse,
    ActiveRideLocation,
    RideLocationResponse,
    RideLocationsBatchResponse,
)
from src.api.security import (
    get_current_user,
    is_booking_party,
    require_staff,
)
from src.config import settings
from src.domain.entities import CallerIdentity, LocationEntry, utcnow
from src.domain.exceptions import RideNotFound
from src.domain.ride_state import effective_ride_status
from src.infrastructure.models import BookingModel
from src.infrastructure.repositories import BookingRepository
from src.services.location_store import LocationStore

router = APIRouter(tags=["locations"])


def _ride_location(
    booking: BookingModel, entry: LocationEntry | None, not_tracking_message: str
) -> RideLocationResponse:
    if entry is None:
        return RideLocationResponse(
            ride_id=booking.id,
            tracking_active=False,
            message=not_tracking_message,
            current_status=effective_ride_status(booking.current_ride_status),
        )
    sample = entry.sample
    return RideLocationResponse(
        ride_id=booking.id,
        tracking_active=True,
        current_status=booking.current_ride_status,
        latitude=sample.latitude,
        longitude=sample.longitude,
        heading=sample.heading,
        speed=sample.speed,
        accuracy=sample.accuracy,
        timestamp=sample.timestamp,
        age_seconds=entry.age_seconds(),
        driver_uid=booking.assigned_driver_uid,
        driver_name=booking.assigned_driver_name,
    )


def _active_location(entry: LocationEntry, booking: BookingModel) -> ActiveRideLocation:
    sample = entry.sample
    return ActiveRideLocation(
        ride_id=entry.ride_id,
        driver_uid=entry.driver_uid,
        driver_name=booking.assigned_driver_name,
        passenger_name=booking.passenger_name,
        pickup_location=booking.pickup_location,
        dropoff_location=booking.dropoff_location,
        current_status=booking.current_ride_status,
        latitude=sample.latitude,
        longitude=sample.longitude,
        heading=sample.heading,
        speed=sample.speed,
        timestamp=sample.timestamp,
        age_seconds=entry.age_seconds(),
    )


async def _join_bookings(
    entries: list[LocationEntry], db: AsyncSession
) -> list[ActiveRideLocation]:
    bookings = await BookingRepository(db).get_many(e.ride_id for e in entries)
    return [
        _active_location(e, bookings[e.ride_id])
        for e in entries
        if e.ride_id in bookings
    ]


@router.get(
    "/driver/location/{ride_id}",
    response_model=RideLocationResponse,
    summary="Latest location for a ride (driver / staff)",
)
@limiter.limit(settings.rate_limit)
async def get_ride_location(
    request: Request,
    ride_id: str,
    user: CallerIdentity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    store: LocationStore = Depends(get_location_store),
):
    booking = await BookingRepository(db).get_by_id(ride_id)
    if booking is None:
        raise RideNotFound(ride_id)
    is_assigned = user.is_driver and booking.assigned_driver_uid == user.user_id
    if not (user.is_staff or is_assigned):
        raise HTTPException(
            status_code=403,
            detail="You do not have permission to view this ride's location",
        )
    return _ride_location(booking, store.get_entry(ride_id), "No recent location data")


@router.get(
    "/passenger/rides/{ride_id}/location",
    response_model=RideLocationResponse,
    summary="Latest location for the caller's own booking",
)
@limiter.limit(settings.rate_limit)
async def get_passenger_ride_location(
    request: Request,
    ride_id: str,
    user: CallerIdentity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    store: LocationStore = Depends(get_location_store),
):
    booking = await BookingRepository(db).get_by_id(ride_id)
    if booking is None:
        raise RideNotFound(ride_id)
    if not is_booking_party(user, booking):
        raise HTTPException(
            status_code=403,
            detail="You can only view location for your own bookings",
        )
    return _ride_location(
        booking, store.get_entry(ride_id), "Driver has not started tracking yet"
    )


@router.get(
    "/admin/locations",
    response_model=ActiveLocationsResponse,
    summary="All actively tracked rides (dashboard)",
)
@limiter.limit(settings.rate_limit)
async def get_all_active_locations(
    request: Request,
    staff: CallerIdentity = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
    store: LocationStore = Depends(get_location_store),
):
    locations = await _join_bookings(store.get_all_active_locations(), db)
    return ActiveLocationsResponse(
        count=len(locations), locations=locations, timestamp=utcnow()
    )


@router.get(
    "/admin/locations/rides",
    response_model=RideLocationsBatchResponse,
    summary="Locations for selected rides (dashboard)",
)
@limiter.limit(settings.rate_limit)
async def get_ride_locations(
    request: Request,
    ride_ids: str = Query("", alias="rideIds"),
    staff: CallerIdentity = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
    store: LocationStore = Depends(get_location_store),
):
    ids = [i.strip() for i in ride_ids.split(",") if i.strip()]
    if not ids:
        raise HTTPException(
            status_code=400, detail="rideIds query parameter is required"
        )
    locations = await _join_bookings(store.get_locations(ids), db)
    return RideLocationsBatchResponse(
        requested=len(ids),
        found=len(locations),
        locations=locations,
        timestamp=utcnow(),
    )
