"""
Audit logging service
"""
import logging
from typing import Optional, Dict, Any
from sqlalchemy.orm import Session
from timeclock.models.audit_log import AuditLog
from timeclock.utils.datetime_utils import now_utc
from timeclock.utils.json_serializer import sanitize_for_json

_log = logging.getLogger(__name__)


def log_audit(
    db: Session,
    tenant_id: str,
    action: str,
    entity_type: str,
    entity_id: Optional[str] = None,
    actor_id: Optional[str] = None,
    meta: Optional[Dict[str, Any]] = None
) -> AuditLog:
    """
    Create an audit log entry

    Args:
        db: Database session
        tenant_id: Tenant the entity belongs to
        action: Action type (e.g., "PUNCH_CREATED", "EXCEPTION_APPROVED")
        entity_type: Type of entity (e.g., "punch", "attendance_exception")
        entity_id: ID of the affected entity (optional)
        actor_id: ID of the user performing the action (optional)
        meta: Additional metadata as dictionary (optional)

    Returns:
        Created AuditLog instance
    """
    safe_meta = sanitize_for_json(meta) if meta is not None else None

    # Explicitly set created_at to avoid SQLite issues with server_default
    audit_log = AuditLog(
        tenant_id=tenant_id,
        actor_id=actor_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        meta_json=safe_meta,
        created_at=now_utc()
    )
    db.add(audit_log)
    db.commit()
    db.refresh(audit_log)
    return audit_log


def record_audit_best_effort(db: Session, **kwargs) -> Optional[AuditLog]:
    """
    Fire-and-forget variant of log_audit for paths where auditing must not fail the operation.
    Failures are logged and the session is rolled back; returns None in that case.
    """
    try:
        return log_audit(db, **kwargs)
    except Exception:
        db.rollback()
        _log.exception(
            "audit log write failed: action=%s entity_type=%s entity_id=%s",
            kwargs.get("action"), kwargs.get("entity_type"), kwargs.get("entity_id"),
        )
        return None
