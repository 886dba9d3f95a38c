"""
Tests for deriving attendance exceptions from a day's punches
"""
from collections import namedtuple
from datetime import date, datetime, timedelta, timezone
from types import SimpleNamespace

from timeclock.models.attendance_exception import ExceptionSeverity, ExceptionType
from timeclock.models.punch import PunchType
from timeclock.services.exception_generator import (
    ExceptionThresholds,
    exception_id,
    generate_exceptions,
)

P = namedtuple("P", "type timestamp")

WORK_DATE = date(2026, 7, 6)
DAY = datetime(2026, 7, 6, tzinfo=timezone.utc)
SHIFT = SimpleNamespace(id="shift-1", start_time="09:00", end_time="17:00", break_minutes=60)


def at(hour, minute=0, day=DAY):
    return day + timedelta(hours=hour, minutes=minute)


def generate(punches, shift=SHIFT, employee_id="emp-1", thresholds=None):
    return generate_exceptions(employee_id, "tenant-a", WORK_DATE, punches, shift, thresholds)


def test_no_shift_means_no_exceptions():
    assert generate([], shift=None) == []
    assert generate([P(PunchType.IN, at(11))], shift=None) == []


def test_no_punches_is_absence():
    result = generate([])
    assert len(result) == 1
    absence = result[0]
    assert absence.type == ExceptionType.ABSENCE
    assert absence.severity == ExceptionSeverity.HIGH
    assert absence.detected_at == at(9)
    assert absence.shift_id == "shift-1"
    assert absence.id == exception_id("tenant-a", "emp-1", WORK_DATE, ExceptionType.ABSENCE)


def test_on_time_day_has_no_exceptions():
    assert generate([P(PunchType.IN, at(9, 3)), P(PunchType.OUT, at(17))]) == []


def test_late_arrival_severity_scales_with_minutes():
    cases = [(10, ExceptionSeverity.LOW), (20, ExceptionSeverity.MEDIUM), (90, ExceptionSeverity.HIGH)]
    for minutes_late, severity in cases:
        result = generate([P(PunchType.IN, at(9, minutes_late)), P(PunchType.OUT, at(17))])
        assert [e.type for e in result] == [ExceptionType.LATE_ARRIVAL]
        assert result[0].minutes == minutes_late
        assert result[0].severity == severity
        assert result[0].detected_at == at(9, minutes_late)


def test_late_arrival_threshold_is_configurable():
    punches = [P(PunchType.IN, at(9, 10)), P(PunchType.OUT, at(17))]
    assert generate(punches, thresholds=ExceptionThresholds(late_arrival_minutes=15)) == []


def test_early_departure():
    result = generate([P(PunchType.IN, at(9)), P(PunchType.OUT, at(16))])
    assert [e.type for e in result] == [ExceptionType.EARLY_DEPARTURE]
    assert result[0].minutes == 60
    assert result[0].severity == ExceptionSeverity.HIGH
    assert result[0].description == "Employee clocked out 60 minutes early"


def test_missing_clock_out():
    result = generate([P(PunchType.IN, at(9))])
    assert [e.type for e in result] == [ExceptionType.MISSED_CLOCK_OUT]
    assert result[0].detected_at == at(17)


def test_results_are_sorted_by_type():
    result = generate([P(PunchType.OUT, at(16, 30)), P(PunchType.IN, at(9, 30))])
    assert [e.type for e in result] == [ExceptionType.EARLY_DEPARTURE, ExceptionType.LATE_ARRIVAL]


def test_uses_first_in_and_last_out():
    punches = [
        P(PunchType.IN, at(9)),
        P(PunchType.OUT, at(12)),
        P(PunchType.IN, at(13)),
        P(PunchType.OUT, at(17)),
    ]
    assert generate(punches) == []


def test_generation_is_deterministic():
    punches = [P(PunchType.IN, at(9, 30)), P(PunchType.OUT, at(16))]
    assert generate(punches) == generate(list(reversed(punches)))


def test_ids_are_scoped_to_employee():
    first = generate([], employee_id="emp-1")[0]
    second = generate([], employee_id="emp-2")[0]
    assert first.id != second.id


def test_overnight_shift():
    shift = SimpleNamespace(id="shift-night", start_time="22:00", end_time="06:00", break_minutes=30)
    next_day = DAY + timedelta(days=1)
    assert generate([P(PunchType.IN, at(22)), P(PunchType.OUT, at(6, day=next_day))], shift=shift) == []
    result = generate([P(PunchType.IN, at(22)), P(PunchType.OUT, at(5, day=next_day))], shift=shift)
    assert [e.type for e in result] == [ExceptionType.EARLY_DEPARTURE]
    assert result[0].minutes == 60
