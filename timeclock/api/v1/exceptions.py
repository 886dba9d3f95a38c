"""
Attendance exception endpoints: list / detail for the tenant, manager resolution,
and on-demand recomputation for one employee-day.
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from timeclock.core.config import settings
from timeclock.core.deps import MANAGER_ROLES, RequestContext, get_db, get_request_context, require_roles
from timeclock.models.attendance_exception import ExceptionStatus
from timeclock.schemas.attendance_exception import (
    AttendanceExceptionListResponse,
    AttendanceExceptionOut,
    ExceptionResolveRequest,
    GenerateExceptionsRequest,
)
from timeclock.services.exception_generator import ExceptionThresholds
from timeclock.services.exception_service import (
    get_exception,
    list_exceptions,
    replace_exceptions,
    resolve_exception,
)
from timeclock.services.punch_store import get_shift

router = APIRouter()


@router.post("/generate", response_model=AttendanceExceptionListResponse)
async def generate_exceptions_endpoint(
    body: GenerateExceptionsRequest,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(require_roles(*MANAGER_ROLES)),
):
    """
    Recompute exceptions for one employee on one day against a shift.
    Idempotent: unchanged punches give the same exceptions (same ids); resolved ones are kept.
    """
    shift = get_shift(db, body.shift_id)
    if shift is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Shift not found")
    if shift.tenant_id != context.tenant_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Shift does not belong to your tenant")

    rows = replace_exceptions(
        db,
        context.tenant_id,
        body.employee_id,
        body.work_date,
        shift,
        ExceptionThresholds.from_settings(settings),
    )
    db.commit()
    for row in rows:
        db.refresh(row)
    return AttendanceExceptionListResponse(data=[AttendanceExceptionOut.model_validate(r) for r in rows])


@router.get("", response_model=AttendanceExceptionListResponse)
async def list_exceptions_endpoint(
    status_filter: Optional[ExceptionStatus] = Query(None, alias="status"),
    employee_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    """List exceptions in the caller's tenant. Employees only see their own."""
    if not context.has_any_role(*MANAGER_ROLES):
        employee_id = context.user_id
    rows = list_exceptions(db, context.tenant_id, exception_status=status_filter, employee_id=employee_id)
    return AttendanceExceptionListResponse(data=[AttendanceExceptionOut.model_validate(r) for r in rows])


@router.get("/{exception_id}", response_model=AttendanceExceptionOut)
async def get_exception_endpoint(
    exception_id: str,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    exception = get_exception(db, context.tenant_id, exception_id)
    if not context.has_any_role(*MANAGER_ROLES) and exception.employee_id != context.user_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Exception not found")
    return AttendanceExceptionOut.model_validate(exception)


@router.put("/{exception_id}/resolve", response_model=AttendanceExceptionOut)
async def resolve_exception_endpoint(
    exception_id: str,
    body: ExceptionResolveRequest,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(require_roles(*MANAGER_ROLES)),
):
    """
    Approve or reject a pending exception (Manager / Admin / TenantAdmin).
    409 if it was already resolved.
    """
    exception = resolve_exception(
        db,
        context.tenant_id,
        exception_id,
        ExceptionStatus(body.status),
        actor_id=context.user_id,
        notes=body.notes,
    )
    return AttendanceExceptionOut.model_validate(exception)
