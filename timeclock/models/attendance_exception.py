"""
Attendance exception model: anomalies derived from the punch stream
"""
import enum
from sqlalchemy import Column, Date, DateTime, Integer, String, Text, Enum as SQLEnum
from sqlalchemy.sql import func
from timeclock.db.base import Base


class ExceptionType(str, enum.Enum):
    ABSENCE = "absence"
    LATE_ARRIVAL = "late_arrival"
    EARLY_DEPARTURE = "early_departure"
    MISSED_CLOCK_OUT = "missed_clock_out"


class ExceptionSeverity(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ExceptionStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


def _values(enum_cls):
    return [m.value for m in enum_cls]


class AttendanceException(Base):
    __tablename__ = "attendance_exceptions"

    id = Column(String(36), primary_key=True)  # Deterministic: uuid5(tenant, employee, date, type)
    tenant_id = Column(String, nullable=False, index=True)
    employee_id = Column(String, nullable=False, index=True)
    shift_id = Column(String(36), nullable=True)
    work_date = Column(Date, nullable=False, index=True)
    type = Column(SQLEnum(ExceptionType, values_callable=_values, native_enum=False, length=32), nullable=False)
    severity = Column(SQLEnum(ExceptionSeverity, values_callable=_values, native_enum=False, length=16), nullable=False)
    status = Column(
        SQLEnum(ExceptionStatus, values_callable=_values, native_enum=False, length=16),
        nullable=False,
        default=ExceptionStatus.PENDING,
    )
    description = Column(Text, nullable=False)
    minutes = Column(Integer, nullable=True)  # Lateness / earliness magnitude
    detected_at = Column(DateTime(timezone=True), nullable=False)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
    resolved_by = Column(String, nullable=True)
    resolution_notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.current_timestamp(), nullable=False)
