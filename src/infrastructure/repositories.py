"""
Repository Pattern -- abstracts DB access so domain logic stays DB-agnostic.

Each repository receives an ``AsyncSession`` (unit-of-work) and exposes
domain-relevant queries only.
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import AuditLogModel, BookingModel, DriverModel
from src.domain.entities import utcnow
from src.domain.enums import BookingStatus, RideStatus, TERMINAL_RIDE_STATUSES


class BookingRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, booking: BookingModel) -> BookingModel:
        self.session.add(booking)
        await self.session.flush()
        await self.session.refresh(booking)
        return booking

    async def get_by_id(self, booking_id: str) -> Optional[BookingModel]:
        return await self.session.get(BookingModel, booking_id)

    async def get_many(self, booking_ids: Iterable[str]) -> dict[str, BookingModel]:
        ids = list(booking_ids)
        if not ids:
            return {}
        result = await self.session.execute(
            select(BookingModel).where(BookingModel.id.in_(ids))
        )
        return {b.id: b for b in result.scalars().all()}

    async def list_recent(
        self, take: int = 50, created_by: Optional[str] = None
    ) -> list[BookingModel]:
        query = select(BookingModel).order_by(BookingModel.created_at.desc())
        if created_by is not None:
            query = query.where(BookingModel.created_by_user_id == created_by)
        result = await self.session.execute(query.limit(take))
        return list(result.scalars().all())

    async def list_upcoming_for_driver(
        self, driver_uid: str, start: datetime, end: datetime
    ) -> list[BookingModel]:
        """Driver's rides with pickup in ``[start, end]`` that are not finished."""
        result = await self.session.execute(
            select(BookingModel)
            .where(
                BookingModel.assigned_driver_uid == driver_uid,
                BookingModel.pickup_datetime >= start,
                BookingModel.pickup_datetime <= end,
                (
                    BookingModel.current_ride_status.is_(None)
                    | BookingModel.current_ride_status.not_in(
                        list(TERMINAL_RIDE_STATUSES)
                    )
                ),
            )
            .order_by(BookingModel.pickup_datetime)
        )
        return list(result.scalars().all())

    async def update_ride_status(
        self,
        booking_id: str,
        ride_status: RideStatus,
        booking_status: BookingStatus,
        *,
        expected_ride_status: Optional[RideStatus],
        modified_by: Optional[str] = None,
    ) -> bool:
        """
        Write both statuses in one UPDATE, guarded by compare-and-swap.

        The row only changes if its ride status is still
        *expected_ride_status*; returns ``False`` when another request got
        there first.
        """
        guard = self._ride_status_is(expected_ride_status)
        values = dict(
            current_ride_status=ride_status,
            status=booking_status,
            modified_by_user_id=modified_by,
            modified_on=utcnow(),
        )
        if booking_status == BookingStatus.CANCELLED:
            values["cancelled_at"] = utcnow()
        result = await self.session.execute(
            update(BookingModel)
            .where(BookingModel.id == booking_id, guard)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def update_status(
        self,
        booking_id: str,
        status: BookingStatus,
        *,
        expected_status: BookingStatus,
        ride_status: Optional[RideStatus] = None,
        modified_by: Optional[str] = None,
    ) -> bool:
        """Booking-level status change (cancel), guarded like ``update_ride_status``."""
        values = dict(
            status=status,
            modified_by_user_id=modified_by,
            modified_on=utcnow(),
        )
        if ride_status is not None:
            values["current_ride_status"] = ride_status
        if status == BookingStatus.CANCELLED:
            values["cancelled_at"] = utcnow()
        result = await self.session.execute(
            update(BookingModel)
            .where(BookingModel.id == booking_id, BookingModel.status == expected_status)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def update_driver_assignment(
        self,
        booking_id: str,
        driver_id: str,
        driver_uid: str,
        driver_name: str,
        *,
        status: BookingStatus,
        ride_status: Optional[RideStatus],
        expected_status: BookingStatus,
        expected_ride_status: Optional[RideStatus],
        modified_by: Optional[str] = None,
    ) -> bool:
        """Store the driver and the scheduled statuses, guarded on both statuses read."""
        result = await self.session.execute(
            update(BookingModel)
            .where(
                BookingModel.id == booking_id,
                BookingModel.status == expected_status,
                self._ride_status_is(expected_ride_status),
            )
            .values(
                assigned_driver_id=driver_id,
                assigned_driver_uid=driver_uid,
                assigned_driver_name=driver_name,
                status=status,
                current_ride_status=ride_status,
                modified_by_user_id=modified_by,
                modified_on=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @staticmethod
    def _ride_status_is(expected: Optional[RideStatus]):
        if expected is None:
            return BookingModel.current_ride_status.is_(None)
        return BookingModel.current_ride_status == expected

    async def refresh(self, booking: BookingModel) -> BookingModel:
        await self.session.refresh(booking)
        return booking


class DriverRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, driver: DriverModel) -> DriverModel:
        self.session.add(driver)
        await self.session.flush()
        await self.session.refresh(driver)
        return driver

    async def get_by_id(self, driver_id: str) -> Optional[DriverModel]:
        return await self.session.get(DriverModel, driver_id)

    async def list_all(self) -> list[DriverModel]:
        result = await self.session.execute(
            select(DriverModel).order_by(DriverModel.name)
        )
        return list(result.scalars().all())


class AuditLogRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def add_many(self, entries: Iterable[AuditLogModel]) -> None:
        self.session.add_all(list(entries))
        await self.session.flush()

    async def list_recent(
        self, take: int = 100, entity_id: Optional[str] = None
    ) -> list[AuditLogModel]:
        query = select(AuditLogModel).order_by(AuditLogModel.timestamp.desc())
        if entity_id is not None:
            query = query.where(AuditLogModel.entity_id == entity_id)
        result = await self.session.execute(query.limit(take))
        return list(result.scalars().all())
