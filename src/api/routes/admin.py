"""
Admin / observability endpoints
===============================

GET /health                     -- simple health check
GET /admin/audit-logs?take=100  -- most recent audit entries (staff)
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_db
from src.api.middleware import limiter
from src.api.schemas import AuditLogResponse, HealthResponse
from src.api.security import require_staff
from src.config import settings
from src.domain.entities import CallerIdentity
from src.infrastructure.repositories import AuditLogRepository

router = APIRouter(tags=["admin"])


@router.get(
    "/admin/audit-logs",
    response_model=list[AuditLogResponse],
    summary="Most recent audit log entries",
)
@limiter.limit(settings.rate_limit)
async def get_audit_logs(
    request: Request,
    take: int = Query(100, ge=1, le=1000),
    entity_id: Optional[str] = Query(None, alias="entityId"),
    staff: CallerIdentity = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    entries = await AuditLogRepository(db).list_recent(take, entity_id=entity_id)
    return [AuditLogResponse.model_validate(e) for e in entries]


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health():
    return HealthResponse()
