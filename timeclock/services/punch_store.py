"""
Punch persistence: shift lookup, recent-punch lookup and punch creation.
Writers flush only; the caller owns the transaction.
"""
from datetime import date, datetime
from typing import List, Optional
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from timeclock.models.punch import Punch, PunchType
from timeclock.models.shift import Shift
from timeclock.utils.datetime_utils import ensure_utc, punch_window

MAX_PUNCH_LIST = 500


def get_shift(db: Session, shift_id: str) -> Optional[Shift]:
    """Shift by id, or None. Tenant ownership is checked by the caller."""
    return db.query(Shift).filter(Shift.id == shift_id).first()


def list_recent_punches(
    db: Session,
    employee_id: str,
    tenant_id: str,
    since: datetime,
    until: Optional[datetime] = None,
) -> List[Punch]:
    """
    Punches for one employee in [since, until], ascending by timestamp.

    Sequence validation depends on this ordering.
    """
    query = db.query(Punch).filter(
        Punch.tenant_id == tenant_id,
        Punch.employee_id == employee_id,
        Punch.timestamp >= ensure_utc(since),
    )
    if until is not None:
        query = query.filter(Punch.timestamp <= ensure_utc(until))
    return query.order_by(Punch.timestamp.asc(), Punch.created_at.asc()).all()


def list_punches_for_day(
    db: Session,
    employee_id: str,
    tenant_id: str,
    work_date: date,
    tz: ZoneInfo,
    shift: Optional[Shift] = None,
) -> List[Punch]:
    """Punches attributed to work_date (see punch_window), ascending."""
    window_start, window_end = punch_window(work_date, shift, tz)
    return (
        db.query(Punch)
        .filter(
            Punch.tenant_id == tenant_id,
            Punch.employee_id == employee_id,
            Punch.timestamp >= window_start,
            Punch.timestamp < window_end,
        )
        .order_by(Punch.timestamp.asc())
        .all()
    )


def list_punches(
    db: Session,
    tenant_id: str,
    employee_id: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> List[Punch]:
    """Tenant-scoped punch listing, ascending, capped at MAX_PUNCH_LIST rows."""
    query = db.query(Punch).filter(Punch.tenant_id == tenant_id)
    if employee_id:
        query = query.filter(Punch.employee_id == employee_id)
    if start is not None:
        query = query.filter(Punch.timestamp >= ensure_utc(start))
    if end is not None:
        query = query.filter(Punch.timestamp <= ensure_utc(end))
    return query.order_by(Punch.timestamp.asc()).limit(MAX_PUNCH_LIST).all()


def create_punch(
    db: Session,
    *,
    tenant_id: str,
    employee_id: str,
    punch_type: PunchType,
    timestamp: datetime,
    shift_id: Optional[str] = None,
    latitude: Optional[float] = None,
    longitude: Optional[float] = None,
    device_id: Optional[str] = None,
    is_manual: bool = False,
) -> Punch:
    """Insert a single punch row (flushed, not committed)."""
    punch = Punch(
        tenant_id=tenant_id,
        employee_id=employee_id,
        shift_id=shift_id,
        type=punch_type,
        timestamp=ensure_utc(timestamp),
        latitude=latitude,
        longitude=longitude,
        device_id=device_id,
        is_manual=is_manual,
    )
    db.add(punch)
    db.flush()
    return punch
