"""
Shift model (read-only input to punch validation and exception generation)
"""
from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.sql import func
from timeclock.db.base import Base


class Shift(Base):
    __tablename__ = "shifts"

    id = Column(String(36), primary_key=True)
    tenant_id = Column(String, nullable=False, index=True)
    schedule_id = Column(String, nullable=False, index=True)
    day_of_week = Column(Integer, nullable=False)  # 0 = Sunday .. 6 = Saturday
    start_time = Column(String(5), nullable=False)  # "HH:MM"
    end_time = Column(String(5), nullable=False)  # "HH:MM"
    break_minutes = Column(Integer, nullable=False, default=0)  # Cap on cumulative break time
    created_at = Column(DateTime(timezone=True), server_default=func.current_timestamp(), nullable=False)
