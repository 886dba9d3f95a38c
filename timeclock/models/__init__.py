"""
Database models
"""
from timeclock.models.audit_log import AuditLog
from timeclock.models.punch import Punch, PunchType
from timeclock.models.shift import Shift
from timeclock.models.attendance_exception import (
    AttendanceException,
    ExceptionType,
    ExceptionSeverity,
    ExceptionStatus,
)
from timeclock.models.idempotency_record import IdempotencyRecord, IdempotencyState

__all__ = [
    "AuditLog",
    "Punch",
    "PunchType",
    "Shift",
    "AttendanceException",
    "ExceptionType",
    "ExceptionSeverity",
    "ExceptionStatus",
    "IdempotencyRecord",
    "IdempotencyState",
]
