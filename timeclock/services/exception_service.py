"""
Attendance exception service - persists derived exceptions and handles manager resolution
"""
import logging
from datetime import date
from typing import List, Optional

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from timeclock.models.attendance_exception import AttendanceException, ExceptionStatus
from timeclock.services.audit_service import log_audit
from timeclock.services.exception_generator import ExceptionThresholds, generate_exceptions
from timeclock.services.punch_store import list_punches_for_day
from timeclock.utils.datetime_utils import now_utc

_log = logging.getLogger(__name__)

MAX_EXCEPTION_LIST = 100


def replace_exceptions(
    db: Session,
    tenant_id: str,
    employee_id: str,
    work_date: date,
    shift,
    thresholds: ExceptionThresholds,
) -> List[AttendanceException]:
    """
    Recompute exceptions for one employee/day and make the stored set match.

    Pending rows that no longer apply are removed; resolved rows (approved/rejected)
    are left untouched. Flushes only; the caller commits.
    """
    punches = list_punches_for_day(db, employee_id, tenant_id, work_date, thresholds.tz, shift)
    drafts = generate_exceptions(employee_id, tenant_id, work_date, punches, shift, thresholds)
    draft_ids = {d.id for d in drafts}

    existing = {
        row.id: row
        for row in db.query(AttendanceException).filter(
            AttendanceException.tenant_id == tenant_id,
            AttendanceException.employee_id == employee_id,
            AttendanceException.work_date == work_date,
        )
    }

    for row_id, row in existing.items():
        if row_id not in draft_ids and row.status == ExceptionStatus.PENDING:
            db.delete(row)

    result: List[AttendanceException] = []
    for d in drafts:
        row = existing.get(d.id)
        if row is None:
            row = AttendanceException(id=d.id, status=ExceptionStatus.PENDING)
            db.add(row)
        elif row.status != ExceptionStatus.PENDING:
            result.append(row)
            continue
        row.tenant_id = d.tenant_id
        row.employee_id = d.employee_id
        row.shift_id = d.shift_id
        row.work_date = d.work_date
        row.type = d.type
        row.severity = d.severity
        row.description = d.description
        row.minutes = d.minutes
        row.detected_at = d.detected_at
        result.append(row)

    db.flush()
    _log.debug(
        "exceptions recomputed: tenant=%s employee=%s date=%s types=%s",
        tenant_id, employee_id, work_date, [d.type.value for d in drafts],
    )
    return result


def list_exceptions(
    db: Session,
    tenant_id: str,
    exception_status: Optional[ExceptionStatus] = None,
    employee_id: Optional[str] = None,
) -> List[AttendanceException]:
    """Tenant-scoped exceptions, newest day first."""
    query = db.query(AttendanceException).filter(AttendanceException.tenant_id == tenant_id)
    if exception_status is not None:
        query = query.filter(AttendanceException.status == exception_status)
    if employee_id:
        query = query.filter(AttendanceException.employee_id == employee_id)
    return (
        query.order_by(AttendanceException.work_date.desc(), AttendanceException.type.asc())
        .limit(MAX_EXCEPTION_LIST)
        .all()
    )


def get_exception(db: Session, tenant_id: str, exception_id: str) -> AttendanceException:
    """
    Fetch one exception within the tenant

    Raises:
        HTTPException: 404 if missing or owned by another tenant
    """
    exception = db.query(AttendanceException).filter(AttendanceException.id == exception_id).first()
    if not exception or exception.tenant_id != tenant_id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Exception not found"
        )
    return exception


def resolve_exception(
    db: Session,
    tenant_id: str,
    exception_id: str,
    new_status: ExceptionStatus,
    actor_id: Optional[str],
    notes: Optional[str] = None,
) -> AttendanceException:
    """
    Approve or reject a pending exception

    Raises:
        HTTPException: 404 if not found, 400 if target status is pending, 409 if already resolved
    """
    if new_status == ExceptionStatus.PENDING:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Resolution status must be approved or rejected"
        )

    exception = get_exception(db, tenant_id, exception_id)
    if exception.status != ExceptionStatus.PENDING:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Exception already {exception.status.value}"
        )

    before = exception.status
    exception.status = new_status
    exception.resolved_at = now_utc()
    exception.resolved_by = actor_id
    exception.resolution_notes = notes
    db.commit()
    db.refresh(exception)

    log_audit(
        db=db,
        tenant_id=tenant_id,
        actor_id=actor_id,
        action=f"EXCEPTION_{new_status.value.upper()}",
        entity_type="attendance_exception",
        entity_id=exception.id,
        meta={
            "employee_id": exception.employee_id,
            "status": {"before": before, "after": new_status},
            "notes": notes,
        },
    )
    return exception
