"""
Punch schemas
"""
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_serializer

from timeclock.models.punch import PunchType
from timeclock.utils.datetime_utils import iso_8601_utc


class PunchCreateRequest(BaseModel):
    """Schema for a punch submission. Server time is used unless a manager records a manual punch."""
    employee_id: str = Field(..., min_length=1)
    type: PunchType
    shift_id: Optional[str] = None
    latitude: Optional[float] = Field(None, ge=-90, le=90, description="GPS latitude")
    longitude: Optional[float] = Field(None, ge=-180, le=180, description="GPS longitude")
    device_id: Optional[str] = None
    is_manual: bool = Field(default=False, description="Manual entry on behalf of the employee")
    timestamp: Optional[datetime] = Field(None, description="Punch time; only honoured for manual punches")


class PunchOut(BaseModel):
    """Created / listed punch. Datetimes are ISO-8601 UTC (Z)."""
    id: str
    tenant_id: str
    employee_id: str
    shift_id: Optional[str] = None
    type: PunchType
    timestamp: datetime
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    device_id: Optional[str] = None
    is_manual: bool

    model_config = ConfigDict(from_attributes=True)

    @field_serializer("timestamp", when_used="always")
    def _ser_datetime(self, dt: datetime) -> str:
        return iso_8601_utc(dt)


class PunchValidationErrorOut(BaseModel):
    code: str
    message: str


class PunchRejectedResponse(BaseModel):
    """400 body: every rule the punch violated"""
    message: str
    errors: List[PunchValidationErrorOut]


class PunchListResponse(BaseModel):
    data: List[PunchOut]
