"""
Idempotency record model: one row per (tenant, endpoint, key)
"""
import enum
from sqlalchemy import Column, DateTime, Integer, String, Text, UniqueConstraint, Enum as SQLEnum
from timeclock.db.base import Base


class IdempotencyState(str, enum.Enum):
    PENDING = "pending"  # Intent row: a caller holds the lease and is running the work
    COMPLETED = "completed"  # Terminal response stored; replay only


class IdempotencyRecord(Base):
    __tablename__ = "idempotency_records"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(String, nullable=False, index=True)
    endpoint = Column(String, nullable=False)
    idempotency_key = Column(String, nullable=False, index=True)
    state = Column(
        SQLEnum(IdempotencyState, values_callable=lambda e: [m.value for m in e], native_enum=False, length=16),
        nullable=False,
        default=IdempotencyState.PENDING,
    )
    owner_token = Column(String(36), nullable=False)  # Identifies the lease holder
    status_code = Column(Integer, nullable=True)
    response_body = Column(Text, nullable=True)  # JSON text, replayed verbatim
    created_at = Column(DateTime(timezone=True), nullable=False)
    lease_expires_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)

    __table_args__ = (
        UniqueConstraint("tenant_id", "endpoint", "idempotency_key", name="uq_idempotency_tenant_endpoint_key"),
    )
