"""
Punch submission pipeline: idempotency -> lookups -> validation -> persistence -> audit.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import FrozenSet, List, Optional

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from timeclock.models.punch import Punch, PunchType
from timeclock.schemas.punch import PunchOut
from timeclock.services.audit_service import record_audit_best_effort
from timeclock.services.exception_generator import ExceptionThresholds
from timeclock.services.exception_service import replace_exceptions
from timeclock.services.idempotency import IdempotencyCoordinator, IdempotentResponse
from timeclock.services.punch_store import create_punch, get_shift, list_recent_punches
from timeclock.services.punch_validator import (
    PunchContext,
    PunchErrorCode,
    PunchRules,
    PunchValidationError,
    TIME_WINDOW_CODES,
    validate,
)
from timeclock.utils.datetime_utils import ensure_utc, now_utc, work_date_for

_log = logging.getLogger(__name__)

PUNCH_ENDPOINT = "POST /punches"

ALWAYS_HARD_FAIL: FrozenSet[str] = frozenset({
    PunchErrorCode.INVALID_FIRST_PUNCH.value,
    PunchErrorCode.INVALID_PUNCH_SEQUENCE.value,
    PunchErrorCode.DUPLICATE_PUNCH.value,
    PunchErrorCode.BREAK_LIMIT_EXCEEDED.value,
})


@dataclass(frozen=True)
class PunchSubmission:
    """One clock event as received from the caller."""
    tenant_id: str
    employee_id: str
    punch_type: PunchType
    timestamp: datetime = field(default_factory=now_utc)
    shift_id: Optional[str] = None
    idempotency_key: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    device_id: Optional[str] = None
    is_manual: bool = False
    actor_id: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "punch_type", PunchType(self.punch_type))
        object.__setattr__(self, "timestamp", ensure_utc(self.timestamp))


def serialize_punch(punch: Punch) -> dict:
    return PunchOut.model_validate(punch).model_dump(mode="json")


class PunchSubmissionPipeline:
    """
    Orchestrates a punch submission inside the idempotency coordinator.

    Rejections (validation errors) are terminal 400 responses and are cached for the
    key like successes. Lookups and writes that raise leave the key retryable.
    """

    def __init__(
        self,
        db: Session,
        coordinator: IdempotencyCoordinator,
        punch_rules: Optional[PunchRules] = None,
        thresholds: Optional[ExceptionThresholds] = None,
        time_window_hard_fail: bool = True,
        lookback: timedelta = timedelta(hours=24),
    ):
        self.db = db
        self.coordinator = coordinator
        self.punch_rules = punch_rules or PunchRules()
        self.thresholds = thresholds or ExceptionThresholds()
        self.lookback = lookback
        self.hard_fail_codes = (ALWAYS_HARD_FAIL | TIME_WINDOW_CODES) if time_window_hard_fail else ALWAYS_HARD_FAIL

    @classmethod
    def from_settings(cls, db: Session, coordinator: IdempotencyCoordinator, settings) -> "PunchSubmissionPipeline":
        return cls(
            db,
            coordinator,
            punch_rules=PunchRules.from_settings(settings),
            thresholds=ExceptionThresholds.from_settings(settings),
            time_window_hard_fail=settings.TIME_WINDOW_HARD_FAIL,
            lookback=timedelta(hours=settings.RECENT_PUNCH_LOOKBACK_HOURS),
        )

    def submit_punch(self, submission: PunchSubmission) -> IdempotentResponse:
        """
        Submit a punch exactly once per idempotency key.

        Returns:
            201 with the created punch, or 400 with every violated rule

        Raises:
            HTTPException: 404 unknown shift, 403 shift of another tenant, 409 key in progress
        """
        return self.coordinator.submit(
            submission.tenant_id,
            PUNCH_ENDPOINT,
            submission.idempotency_key,
            lambda: self._process(submission),
        )

    def _load_shift(self, submission: PunchSubmission):
        if not submission.shift_id:
            return None
        shift = get_shift(self.db, submission.shift_id)
        if shift is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Shift not found"
            )
        if shift.tenant_id != submission.tenant_id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Shift does not belong to your tenant"
            )
        return shift

    def _process(self, submission: PunchSubmission) -> IdempotentResponse:
        shift = self._load_shift(submission)
        recent = list_recent_punches(
            self.db,
            submission.employee_id,
            submission.tenant_id,
            since=submission.timestamp - self.lookback,
            until=submission.timestamp,
        )

        errors = validate(
            PunchContext(
                employee_id=submission.employee_id,
                tenant_id=submission.tenant_id,
                punch_type=submission.punch_type,
                timestamp=submission.timestamp,
                recent_punches=recent,
                shift=shift,
            ),
            self.punch_rules,
        )

        if any(e.code in self.hard_fail_codes for e in errors):
            _log.info(
                "punch rejected: tenant=%s employee=%s type=%s codes=%s",
                submission.tenant_id, submission.employee_id,
                submission.punch_type.value, [e.code for e in errors],
            )
            return IdempotentResponse(
                status_code=status.HTTP_400_BAD_REQUEST,
                body={
                    "message": "Punch validation failed",
                    "errors": [e.to_dict() for e in errors],
                },
            )

        punch = create_punch(
            self.db,
            tenant_id=submission.tenant_id,
            employee_id=submission.employee_id,
            punch_type=submission.punch_type,
            timestamp=submission.timestamp,
            shift_id=submission.shift_id,
            latitude=submission.latitude,
            longitude=submission.longitude,
            device_id=submission.device_id,
            is_manual=submission.is_manual,
        )

        # A clock-out closes the day: refresh its derived exceptions in the same transaction
        if punch.type == PunchType.OUT and shift is not None:
            replace_exceptions(
                self.db,
                submission.tenant_id,
                submission.employee_id,
                work_date_for(submission.timestamp, shift, self.thresholds.tz),
                shift,
                self.thresholds,
            )

        self.db.commit()
        self.db.refresh(punch)
        body = serialize_punch(punch)

        record_audit_best_effort(
            self.db,
            tenant_id=submission.tenant_id,
            actor_id=submission.actor_id,
            action="PUNCH_CREATED",
            entity_type="punch",
            entity_id=punch.id,
            meta={
                "employee_id": submission.employee_id,
                "type": submission.punch_type,
                "timestamp": submission.timestamp,
                "shift_id": submission.shift_id,
                "is_manual": submission.is_manual,
                "device_id": submission.device_id,
            },
        )

        warnings: List[PunchValidationError] = [e for e in errors if e.code not in self.hard_fail_codes]
        if warnings:
            body["warnings"] = [w.to_dict() for w in warnings]
        return IdempotentResponse(status_code=status.HTTP_201_CREATED, body=body)
