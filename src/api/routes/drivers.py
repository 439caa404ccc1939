"""
Driver roster endpoints (staff only)
====================================

POST /drivers       -- add a driver
GET  /drivers/list  -- all drivers, by name
"""

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_audit_logger, get_db
from src.api.middleware import limiter
from src.api.schemas import DriverCreateRequest, DriverResponse
from src.api.security import require_staff
from src.config import settings
from src.domain.entities import CallerIdentity
from src.infrastructure.models import DriverModel
from src.infrastructure.repositories import DriverRepository
from src.services.audit import AuditActions, AuditLogger

router = APIRouter(prefix="/drivers", tags=["drivers"])


@router.post(
    "",
    response_model=DriverResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add a driver to the roster",
)
@limiter.limit(settings.rate_limit)
async def create_driver(
    request: Request,
    body: DriverCreateRequest,
    staff: CallerIdentity = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
    audit: AuditLogger = Depends(get_audit_logger),
):
    driver = await DriverRepository(db).create(DriverModel(**body.model_dump()))
    audit.success(
        staff,
        AuditActions.DRIVER_CREATED,
        "Driver",
        driver.id,
        details={"name": driver.name, "userUid": driver.user_uid},
    )
    return DriverResponse.model_validate(driver)


@router.get(
    "/list",
    response_model=list[DriverResponse],
    summary="List drivers",
)
@limiter.limit(settings.rate_limit)
async def list_drivers(
    request: Request,
    staff: CallerIdentity = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    drivers = await DriverRepository(db).list_all()
    return [DriverResponse.model_validate(d) for d in drivers]
