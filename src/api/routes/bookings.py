"""
Booking endpoints
=================

POST /bookings                          -- create a booking (201)
GET  /bookings/list?take=50             -- staff: all, others: their own
GET  /bookings/{booking_id}             -- staff or owner
POST /bookings/{booking_id}/cancel      -- staff or owner
POST /bookings/{booking_id}/assign-driver  -- staff
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_db, get_lifecycle_service
from src.api.middleware import limiter
from src.api.schemas import BookingCreateRequest, BookingResponse, DriverAssignmentRequest
from src.api.security import can_access_booking, get_current_user, require_staff
from src.config import settings
from src.domain.entities import CallerIdentity
from src.domain.exceptions import BookingNotFound
from src.infrastructure.models import BookingModel
from src.infrastructure.repositories import BookingRepository
from src.services.ride_lifecycle import RideLifecycleService

router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.post(
    "",
    response_model=BookingResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a booking",
)
@limiter.limit(settings.rate_limit)
async def create_booking(
    request: Request,
    body: BookingCreateRequest,
    user: CallerIdentity = Depends(get_current_user),
    service: RideLifecycleService = Depends(get_lifecycle_service),
):
    booking = await service.create_booking(BookingModel(**body.model_dump()), user)
    return BookingResponse.model_validate(booking)


@router.get(
    "/list",
    response_model=list[BookingResponse],
    summary="Most recent bookings visible to the caller",
)
@limiter.limit(settings.rate_limit)
async def list_bookings(
    request: Request,
    take: int = Query(50, ge=1, le=500),
    user: CallerIdentity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    created_by = None if user.is_staff else user.user_id
    bookings = await BookingRepository(db).list_recent(take, created_by=created_by)
    return [BookingResponse.model_validate(b) for b in bookings]


@router.get(
    "/{booking_id}",
    response_model=BookingResponse,
    summary="Booking detail",
)
@limiter.limit(settings.rate_limit)
async def get_booking(
    request: Request,
    booking_id: str,
    user: CallerIdentity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    booking = await BookingRepository(db).get_by_id(booking_id)
    if booking is None:
        raise BookingNotFound(booking_id)
    if not can_access_booking(user, booking):
        raise HTTPException(status_code=403, detail="Access to this booking is denied")
    return BookingResponse.model_validate(booking)


@router.post(
    "/{booking_id}/cancel",
    response_model=BookingResponse,
    summary="Cancel a booking that has not been scheduled yet",
    responses={
        400: {"description": "Booking is past the cancellable statuses"},
        403: {"description": "Caller is neither staff nor the owner"},
    },
)
@limiter.limit(settings.rate_limit)
async def cancel_booking(
    request: Request,
    booking_id: str,
    user: CallerIdentity = Depends(get_current_user),
    service: RideLifecycleService = Depends(get_lifecycle_service),
):
    booking = await service.cancel_booking(booking_id, user)
    return BookingResponse.model_validate(booking)


@router.post(
    "/{booking_id}/assign-driver",
    response_model=BookingResponse,
    summary="Assign a driver to a booking",
    responses={400: {"description": "Driver has no linked user account"}},
)
@limiter.limit(settings.rate_limit)
async def assign_driver(
    request: Request,
    booking_id: str,
    body: DriverAssignmentRequest,
    staff: CallerIdentity = Depends(require_staff),
    service: RideLifecycleService = Depends(get_lifecycle_service),
):
    booking = await service.assign_driver(booking_id, body.driver_id, staff)
    return BookingResponse.model_validate(booking)
