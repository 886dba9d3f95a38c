"""
Audit log model
"""
from sqlalchemy import Column, Integer, String, DateTime, JSON
from timeclock.db.base import Base


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(String, nullable=False, index=True)
    actor_id = Column(String, nullable=True)  # User performing the action, if known
    action = Column(String, nullable=False)  # e.g., "PUNCH_CREATED", "EXCEPTION_APPROVED"
    entity_type = Column(String, nullable=False)  # e.g., "punch", "attendance_exception"
    entity_id = Column(String, nullable=True)
    meta_json = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
