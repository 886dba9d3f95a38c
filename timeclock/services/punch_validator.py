"""
Punch validation rules - pure, stateless rule engine.

Given a candidate punch and the employee's recent history, returns every rule the
punch violates (not fail-fast). Violations are data; the caller decides which
codes reject the punch. No I/O and no shared state: safe to call concurrently.
"""
import enum
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, FrozenSet, List, Optional, Sequence, Tuple
from zoneinfo import ZoneInfo

from timeclock.models.punch import PunchType
from timeclock.utils.datetime_utils import ensure_utc, is_overnight, local_date, parse_hhmm, shift_bounds


class PunchErrorCode(str, enum.Enum):
    INVALID_FIRST_PUNCH = "INVALID_FIRST_PUNCH"
    INVALID_PUNCH_SEQUENCE = "INVALID_PUNCH_SEQUENCE"
    TOO_EARLY = "TOO_EARLY"
    TOO_LATE = "TOO_LATE"
    DUPLICATE_PUNCH = "DUPLICATE_PUNCH"
    BREAK_LIMIT_EXCEEDED = "BREAK_LIMIT_EXCEEDED"


TIME_WINDOW_CODES: FrozenSet[str] = frozenset({PunchErrorCode.TOO_EARLY.value, PunchErrorCode.TOO_LATE.value})

# Allowed successor types for the most recent prior punch
VALID_TRANSITIONS: Dict[PunchType, Tuple[PunchType, ...]] = {
    PunchType.IN: (PunchType.BREAK_START, PunchType.OUT),
    PunchType.OUT: (PunchType.IN,),
    PunchType.BREAK_START: (PunchType.BREAK_END,),
    PunchType.BREAK_END: (PunchType.BREAK_START, PunchType.OUT),
}


@dataclass(frozen=True)
class PunchValidationError:
    """A violated rule. Returned as data, never raised."""
    code: str
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {"code": self.code, "message": self.message}


@dataclass(frozen=True)
class PunchRules:
    """Tunable thresholds for validation."""
    grace_minutes: int = 15
    duplicate_window_seconds: int = 5
    tz: ZoneInfo = field(default_factory=lambda: ZoneInfo("UTC"))

    @classmethod
    def from_settings(cls, settings) -> "PunchRules":
        return cls(
            grace_minutes=settings.PUNCH_GRACE_MINUTES,
            duplicate_window_seconds=settings.DUPLICATE_PUNCH_WINDOW_SECONDS,
            tz=ZoneInfo(settings.BUSINESS_TZ),
        )


@dataclass(frozen=True)
class PunchContext:
    """
    Everything the rules need, injected as plain values.

    recent_punches: prior punches, ascending by timestamp. Any object exposing
    `type` and `timestamp` works (ORM rows or plain records). shift: any object
    exposing `start_time`, `end_time` ("HH:MM") and `break_minutes`.
    """
    employee_id: str
    tenant_id: str
    punch_type: PunchType
    timestamp: datetime
    recent_punches: Sequence = ()
    shift: Optional[object] = None


@dataclass(frozen=True)
class _PriorPunch:
    type: PunchType
    timestamp: datetime


def _normalize(punches: Sequence) -> List[_PriorPunch]:
    prior = [_PriorPunch(PunchType(p.type), ensure_utc(p.timestamp)) for p in punches]
    # Stable sort keeps caller order for identical timestamps
    prior.sort(key=lambda p: p.timestamp)
    return prior


Rule = Callable[[PunchType, datetime, List[_PriorPunch], Optional[object], PunchRules], Optional[PunchValidationError]]


def check_first_punch(
    punch_type: PunchType,
    timestamp: datetime,
    prior: List[_PriorPunch],
    shift: Optional[object],
    rules: PunchRules,
) -> Optional[PunchValidationError]:
    """With no history, only a clock in is accepted."""
    if prior or punch_type == PunchType.IN:
        return None
    return PunchValidationError(
        code=PunchErrorCode.INVALID_FIRST_PUNCH.value,
        message="First punch must be clock in",
    )


def check_sequence(
    punch_type: PunchType,
    timestamp: datetime,
    prior: List[_PriorPunch],
    shift: Optional[object],
    rules: PunchRules,
) -> Optional[PunchValidationError]:
    if not prior:
        return None
    last = prior[-1].type
    allowed = VALID_TRANSITIONS[last]
    if punch_type in allowed:
        return None
    expected = " or ".join(t.value for t in allowed)
    return PunchValidationError(
        code=PunchErrorCode.INVALID_PUNCH_SEQUENCE.value,
        message=f'Cannot punch "{punch_type.value}" after "{last.value}". Expected: {expected}',
    )


def check_time_window(
    punch_type: PunchType,
    timestamp: datetime,
    prior: List[_PriorPunch],
    shift: Optional[object],
    rules: PunchRules,
) -> Optional[PunchValidationError]:
    """
    Clock in no earlier than start - grace; clock out no later than end + grace.
    Breaks are not constrained.
    """
    if shift is None or punch_type not in (PunchType.IN, PunchType.OUT):
        return None
    grace = timedelta(minutes=rules.grace_minutes)
    day = local_date(timestamp, rules.tz)

    if punch_type == PunchType.IN:
        start, _ = shift_bounds(day, shift, rules.tz)
        earliest_in = start - grace
        if timestamp < earliest_in:
            return PunchValidationError(
                code=PunchErrorCode.TOO_EARLY.value,
                message=f"Cannot clock in before {earliest_in.astimezone(rules.tz):%H:%M}",
            )
        return None

    # An overnight shift clocked out after midnight belongs to the previous day's occurrence
    local = timestamp.astimezone(rules.tz)
    if is_overnight(shift) and (local.hour, local.minute) < parse_hhmm(shift.start_time):
        day = day - timedelta(days=1)
    _, end = shift_bounds(day, shift, rules.tz)
    if timestamp > end + grace:
        return PunchValidationError(
            code=PunchErrorCode.TOO_LATE.value,
            message=f"Punch recorded after shift ended at {end.astimezone(rules.tz):%H:%M}",
        )
    return None


def check_duplicate(
    punch_type: PunchType,
    timestamp: datetime,
    prior: List[_PriorPunch],
    shift: Optional[object],
    rules: PunchRules,
) -> Optional[PunchValidationError]:
    window = timedelta(seconds=rules.duplicate_window_seconds)
    for p in prior:
        if p.type == punch_type and abs(timestamp - p.timestamp) < window:
            return PunchValidationError(
                code=PunchErrorCode.DUPLICATE_PUNCH.value,
                message=f"Duplicate punch detected within {rules.duplicate_window_seconds} seconds",
            )
    return None


def current_cycle(prior: Sequence) -> Sequence:
    """Punches from the most recent clock in onwards; the whole history if there is none."""
    for i in range(len(prior) - 1, -1, -1):
        if prior[i].type == PunchType.IN:
            return prior[i:]
    return prior


def total_break_time(prior: Sequence) -> timedelta:
    """Sum of completed breaks; break punches are paired chronologically (0 with 1, 2 with 3, ...)."""
    breaks = [p for p in prior if p.type in (PunchType.BREAK_START, PunchType.BREAK_END)]
    total = timedelta(0)
    for i in range(0, len(breaks) - 1, 2):
        total += breaks[i + 1].timestamp - breaks[i].timestamp
    return total


def check_break_limit(
    punch_type: PunchType,
    timestamp: datetime,
    prior: List[_PriorPunch],
    shift: Optional[object],
    rules: PunchRules,
) -> Optional[PunchValidationError]:
    """Only breaks taken since the current clock in count against the shift allowance."""
    if shift is None or punch_type != PunchType.BREAK_START:
        return None
    allowed = timedelta(minutes=shift.break_minutes or 0)
    if total_break_time(current_cycle(prior)) >= allowed:
        return PunchValidationError(
            code=PunchErrorCode.BREAK_LIMIT_EXCEEDED.value,
            message=f"Break limit of {shift.break_minutes} minutes already reached today",
        )
    return None


DEFAULT_RULES: Tuple[Rule, ...] = (
    check_first_punch,
    check_sequence,
    check_time_window,
    check_duplicate,
    check_break_limit,
)


def validate(context: PunchContext, rules: Optional[PunchRules] = None) -> List[PunchValidationError]:
    """
    Validate a candidate punch against every rule.

    Args:
        context: Candidate punch plus history and optional shift
        rules: Thresholds (defaults: 15 min grace, 5 s duplicate window, UTC)

    Returns:
        All violations, in rule order. Empty list means the punch is valid.
    """
    rules = rules or PunchRules()
    punch_type = PunchType(context.punch_type)
    timestamp = ensure_utc(context.timestamp)
    prior = _normalize(context.recent_punches)

    errors: List[PunchValidationError] = []
    for rule in DEFAULT_RULES:
        error = rule(punch_type, timestamp, prior, context.shift, rules)
        if error is not None:
            errors.append(error)
    return errors
