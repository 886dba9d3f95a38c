"""
Punch model: a single immutable clock event
"""
import enum
import uuid
from sqlalchemy import Boolean, Column, DateTime, Float, Index, String, Enum as SQLEnum
from sqlalchemy.sql import func
from timeclock.db.base import Base


class PunchType(str, enum.Enum):
    IN = "in"
    OUT = "out"
    BREAK_START = "break_start"
    BREAK_END = "break_end"


def _new_id() -> str:
    return str(uuid.uuid4())


class Punch(Base):
    __tablename__ = "punches"

    id = Column(String(36), primary_key=True, default=_new_id)
    tenant_id = Column(String, nullable=False, index=True)
    employee_id = Column(String, nullable=False, index=True)
    shift_id = Column(String(36), nullable=True)  # Shift the punch was made against, if any
    type = Column(
        SQLEnum(PunchType, values_callable=lambda e: [m.value for m in e], native_enum=False, length=16),
        nullable=False,
    )
    timestamp = Column(DateTime(timezone=True), nullable=False)  # UTC
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    device_id = Column(String, nullable=True)
    is_manual = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.current_timestamp(), nullable=False)

    __table_args__ = (
        Index("ix_punches_tenant_employee_timestamp", "tenant_id", "employee_id", "timestamp"),
    )
