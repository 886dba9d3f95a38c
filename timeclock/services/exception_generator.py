"""
Exception generator - derives daily attendance exceptions from a punch set.

Pure function of (punches, shift, date): ids and detection times are derived from
the inputs, so re-running it on unchanged data yields an identical result set.
"""
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import List, Optional, Sequence
from zoneinfo import ZoneInfo

from timeclock.models.attendance_exception import ExceptionSeverity, ExceptionType
from timeclock.models.punch import PunchType
from timeclock.utils.datetime_utils import ensure_utc, shift_bounds

# Namespace for deterministic exception ids
EXCEPTION_ID_NAMESPACE = uuid.UUID("6f1c7a52-3a8e-4f0e-9c11-2b7d1e0a9f43")


@dataclass(frozen=True)
class ExceptionThresholds:
    late_arrival_minutes: int = 5
    early_departure_minutes: int = 5
    tz: ZoneInfo = field(default_factory=lambda: ZoneInfo("UTC"))

    @classmethod
    def from_settings(cls, settings) -> "ExceptionThresholds":
        return cls(
            late_arrival_minutes=settings.LATE_ARRIVAL_THRESHOLD_MINUTES,
            early_departure_minutes=settings.EARLY_DEPARTURE_THRESHOLD_MINUTES,
            tz=ZoneInfo(settings.BUSINESS_TZ),
        )


@dataclass(frozen=True)
class ExceptionDraft:
    """A derived exception, not yet persisted."""
    id: str
    tenant_id: str
    employee_id: str
    shift_id: Optional[str]
    work_date: date
    type: ExceptionType
    severity: ExceptionSeverity
    description: str
    detected_at: datetime
    minutes: Optional[int] = None


def exception_id(tenant_id: str, employee_id: str, work_date: date, exception_type: ExceptionType) -> str:
    name = f"{tenant_id}:{employee_id}:{work_date.isoformat()}:{exception_type.value}"
    return str(uuid.uuid5(EXCEPTION_ID_NAMESPACE, name))


def _severity_for_minutes(minutes: int) -> ExceptionSeverity:
    if minutes >= 60:
        return ExceptionSeverity.HIGH
    if minutes >= 15:
        return ExceptionSeverity.MEDIUM
    return ExceptionSeverity.LOW


def _whole_minutes(delta: timedelta) -> int:
    return int(round(delta.total_seconds() / 60))


def generate_exceptions(
    employee_id: str,
    tenant_id: str,
    work_date: date,
    punches: Sequence,
    shift,
    thresholds: Optional[ExceptionThresholds] = None,
) -> List[ExceptionDraft]:
    """
    Derive attendance exceptions for one employee on one day.

    Args:
        employee_id: Employee the punches belong to
        tenant_id: Tenant scope
        work_date: Day the shift occurrence starts on (business timezone)
        punches: Punches inside punch_window(work_date) (any order); objects exposing `type` and `timestamp`
        shift: Scheduled shift (object with `id`, `start_time`, `end_time`), or None
        thresholds: Late / early thresholds and business timezone

    Returns:
        Exceptions sorted by type. No shift means nothing was expected, so nothing is flagged.
    """
    thresholds = thresholds or ExceptionThresholds()
    if shift is None:
        return []

    shift_id = getattr(shift, "id", None)
    shift_start, shift_end = shift_bounds(work_date, shift, thresholds.tz)

    def draft(exception_type, severity, description, detected_at, minutes=None):
        return ExceptionDraft(
            id=exception_id(tenant_id, employee_id, work_date, exception_type),
            tenant_id=tenant_id,
            employee_id=employee_id,
            shift_id=shift_id,
            work_date=work_date,
            type=exception_type,
            severity=severity,
            description=description,
            detected_at=detected_at,
            minutes=minutes,
        )

    if not punches:
        return [draft(ExceptionType.ABSENCE, ExceptionSeverity.HIGH, "Employee did not punch in", shift_start)]

    ins = sorted(ensure_utc(p.timestamp) for p in punches if PunchType(p.type) == PunchType.IN)
    outs = sorted(ensure_utc(p.timestamp) for p in punches if PunchType(p.type) == PunchType.OUT)

    exceptions: List[ExceptionDraft] = []

    if len(ins) > len(outs):
        exceptions.append(draft(
            ExceptionType.MISSED_CLOCK_OUT,
            ExceptionSeverity.MEDIUM,
            "Employee did not clock out",
            shift_end,
        ))

    if ins:
        first_in = ins[0]
        if first_in > shift_start + timedelta(minutes=thresholds.late_arrival_minutes):
            late = _whole_minutes(first_in - shift_start)
            exceptions.append(draft(
                ExceptionType.LATE_ARRIVAL,
                _severity_for_minutes(late),
                f"Employee clocked in {late} minutes late",
                first_in,
                minutes=late,
            ))

    if outs:
        last_out = outs[-1]
        if last_out < shift_end - timedelta(minutes=thresholds.early_departure_minutes):
            early = _whole_minutes(shift_end - last_out)
            exceptions.append(draft(
                ExceptionType.EARLY_DEPARTURE,
                _severity_for_minutes(early),
                f"Employee clocked out {early} minutes early",
                last_out,
                minutes=early,
            ))

    exceptions.sort(key=lambda e: e.type.value)
    return exceptions
