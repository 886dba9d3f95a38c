"""
Attendance exception schemas
"""
from datetime import date, datetime
from typing import List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, field_serializer

from timeclock.models.attendance_exception import ExceptionSeverity, ExceptionStatus, ExceptionType
from timeclock.utils.datetime_utils import iso_8601_utc


class AttendanceExceptionOut(BaseModel):
    id: str
    tenant_id: str
    employee_id: str
    shift_id: Optional[str] = None
    work_date: date
    type: ExceptionType
    severity: ExceptionSeverity
    status: ExceptionStatus
    description: str
    minutes: Optional[int] = None
    detected_at: datetime
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None
    resolution_notes: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

    @field_serializer("detected_at", "resolved_at", when_used="always")
    def _ser_datetime(self, dt: Optional[datetime]) -> Optional[str]:
        return iso_8601_utc(dt)


class AttendanceExceptionListResponse(BaseModel):
    data: List[AttendanceExceptionOut]


class ExceptionResolveRequest(BaseModel):
    status: Literal["approved", "rejected"]
    notes: Optional[str] = Field(None, max_length=2000)


class GenerateExceptionsRequest(BaseModel):
    """Recompute one employee's exceptions for a day against a shift"""
    employee_id: str = Field(..., min_length=1)
    work_date: date
    shift_id: str = Field(..., min_length=1)
