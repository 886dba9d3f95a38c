"""
Timezone-aware datetime helpers.
- Store and compute in UTC.
- Shift boundaries ("HH:MM") are wall-clock times in the business timezone and are
  resolved to UTC instants on a given calendar date.
"""
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Tuple
from zoneinfo import ZoneInfo

UTC = timezone.utc


def now_utc() -> datetime:
    """Current time in UTC (timezone-aware). Use for punch timestamps, created_at, etc."""
    return datetime.now(UTC)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """If dt is naive, treat as UTC and return timezone-aware UTC. If already aware, convert to UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    else:
        dt = dt.astimezone(UTC)
    return dt


def parse_hhmm(value: str) -> Tuple[int, int]:
    """Parse "HH:MM" into (hour, minute). Raises ValueError on malformed input."""
    try:
        hour_s, minute_s = value.split(":")
        hour, minute = int(hour_s), int(minute_s)
    except (AttributeError, ValueError):
        raise ValueError(f"Invalid time '{value}', expected HH:MM")
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ValueError(f"Invalid time '{value}', expected HH:MM")
    return hour, minute


def local_date(dt: datetime, tz: ZoneInfo) -> date:
    """Calendar date of dt in the given zone (naive datetimes treated as UTC)."""
    return ensure_utc(dt).astimezone(tz).date()


def at_wall_clock(day: date, hhmm: str, tz: ZoneInfo) -> datetime:
    """UTC instant of wall-clock time hhmm on day in the given zone."""
    hour, minute = parse_hhmm(hhmm)
    return datetime.combine(day, time(hour, minute), tzinfo=tz).astimezone(UTC)


def iso_8601_utc(dt: Optional[datetime]) -> Optional[str]:
    """ISO-8601 with Z for UTC. Used for every datetime in API responses."""
    if dt is None:
        return None
    utc = ensure_utc(dt)
    s = utc.isoformat()
    if s.endswith("+00:00"):
        s = s[:-6] + "Z"
    return s


def is_overnight(shift) -> bool:
    return parse_hhmm(shift.end_time) <= parse_hhmm(shift.start_time)


def shift_bounds(work_date: date, shift, tz: ZoneInfo) -> Tuple[datetime, datetime]:
    """UTC start/end of the shift occurrence starting on work_date; overnight shifts end the next day."""
    start = at_wall_clock(work_date, shift.start_time, tz)
    end = at_wall_clock(work_date, shift.end_time, tz)
    if end <= start:
        end += timedelta(days=1)
    return start, end


def punch_window(work_date: date, shift, tz: ZoneInfo) -> Tuple[datetime, datetime]:
    """
    Half-open UTC range of punches attributed to work_date.

    Day shifts use the local calendar day. Overnight shifts split the off-duty gap
    between consecutive occurrences in half, so a clock-out after midnight counts
    toward the shift that started the evening before.
    """
    if shift is None or not is_overnight(shift):
        day_start = at_wall_clock(work_date, "00:00", tz)
        return day_start, at_wall_clock(work_date + timedelta(days=1), "00:00", tz)
    start, end = shift_bounds(work_date, shift, tz)
    half_gap = (timedelta(days=1) - (end - start)) / 2
    return start - half_gap, end + half_gap


def work_date_for(timestamp: datetime, shift, tz: ZoneInfo) -> date:
    """Day whose punch window contains timestamp."""
    day = local_date(timestamp, tz)
    if shift is None or not is_overnight(shift):
        return day
    window_start, _ = punch_window(day, shift, tz)
    if ensure_utc(timestamp) < window_start:
        return day - timedelta(days=1)
    return day
