"""
Tests for the punch submission pipeline (idempotency + validation + persistence)
"""
import threading
from datetime import datetime, timedelta, timezone

import pytest
from fastapi import HTTPException
from sqlalchemy.exc import OperationalError

from conftest import EMPLOYEE_ID, TENANT_ID
from timeclock.models import AttendanceException, AuditLog, IdempotencyRecord, Punch, PunchType
from timeclock.models.attendance_exception import ExceptionStatus, ExceptionType
from timeclock.models.idempotency_record import IdempotencyState
from timeclock.services import audit_service, punch_pipeline
from timeclock.services.punch_pipeline import PunchSubmission, PunchSubmissionPipeline

DAY = datetime(2026, 7, 6, tzinfo=timezone.utc)


def at(hour, minute=0, second=0, day=DAY):
    return day + timedelta(hours=hour, minutes=minute, seconds=second)


def submission(punch_type, timestamp, key=None, employee_id=EMPLOYEE_ID, shift_id=None, **kwargs):
    return PunchSubmission(
        tenant_id=TENANT_ID,
        employee_id=employee_id,
        punch_type=punch_type,
        timestamp=timestamp,
        shift_id=shift_id,
        idempotency_key=key,
        **kwargs
    )


@pytest.fixture
def pipeline(db, coordinator):
    return PunchSubmissionPipeline(db, coordinator)


def test_valid_punch_is_created(pipeline, db):
    response = pipeline.submit_punch(submission(PunchType.IN, at(9), device_id="kiosk-1", latitude=12.5, longitude=77.1))

    assert response.status_code == 201
    body = response.body
    assert body["employee_id"] == EMPLOYEE_ID
    assert body["tenant_id"] == TENANT_ID
    assert body["type"] == "in"
    assert body["timestamp"] == "2026-07-06T09:00:00Z"
    assert body["device_id"] == "kiosk-1"
    assert body["is_manual"] is False
    assert "warnings" not in body

    punch = db.query(Punch).one()
    assert punch.id == body["id"]
    audit = db.query(AuditLog).one()
    assert audit.action == "PUNCH_CREATED"
    assert audit.entity_id == punch.id


def test_rejected_punch_returns_all_errors_and_persists_nothing(pipeline, db):
    pipeline.submit_punch(submission(PunchType.IN, at(9)))
    response = pipeline.submit_punch(submission(PunchType.IN, at(9, 0, 2)))

    assert response.status_code == 400
    assert response.body["message"] == "Punch validation failed"
    assert [e["code"] for e in response.body["errors"]] == ["INVALID_PUNCH_SEQUENCE", "DUPLICATE_PUNCH"]
    assert db.query(Punch).count() == 1


def test_same_key_twice_creates_one_punch(pipeline, db):
    first = pipeline.submit_punch(submission(PunchType.IN, at(9), key="abc"))
    second = pipeline.submit_punch(submission(PunchType.IN, at(9), key="abc"))

    assert first.status_code == second.status_code == 201
    assert second.body == first.body
    assert second.replayed is True
    assert db.query(Punch).count() == 1


def test_concurrent_submissions_with_same_key_create_one_punch(session_factory, coordinator, db):
    barrier = threading.Barrier(3)
    responses = []
    errors = []

    def submit():
        session = session_factory()
        try:
            barrier.wait()
            responses.append(
                PunchSubmissionPipeline(session, coordinator).submit_punch(
                    submission(PunchType.IN, at(9), key="same-key")
                )
            )
        except Exception as exc:  # surfaced through the assertion below
            errors.append(exc)
        finally:
            session.close()

    threads = [threading.Thread(target=submit) for _ in range(3)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert [r.status_code for r in responses] == [201, 201, 201]
    assert len({r.body["id"] for r in responses}) == 1
    assert db.query(Punch).count() == 1


def test_concurrent_submissions_with_distinct_keys_are_independent(session_factory, coordinator, db):
    barrier = threading.Barrier(2)
    responses = []

    def submit(employee_id, key):
        session = session_factory()
        try:
            barrier.wait()
            responses.append(
                PunchSubmissionPipeline(session, coordinator).submit_punch(
                    submission(PunchType.IN, at(9), key=key, employee_id=employee_id)
                )
            )
        finally:
            session.close()

    threads = [
        threading.Thread(target=submit, args=("emp-1", "key-1")),
        threading.Thread(target=submit, args=("emp-2", "key-2")),
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(r.status_code for r in responses) == [201, 201]
    assert db.query(Punch).count() == 2


def test_without_key_each_submission_is_processed(pipeline, db):
    pipeline.submit_punch(submission(PunchType.IN, at(9)))
    pipeline.submit_punch(submission(PunchType.OUT, at(12)))
    assert db.query(Punch).count() == 2
    assert db.query(IdempotencyRecord).count() == 0


def test_rejection_is_replayed_for_its_key(pipeline, db):
    rejected = pipeline.submit_punch(submission(PunchType.OUT, at(9), key="out-first"))
    assert rejected.status_code == 400

    pipeline.submit_punch(submission(PunchType.IN, at(9, 1), key="in"))

    # The retry would now be valid, but the key already has a terminal answer
    replay = pipeline.submit_punch(submission(PunchType.OUT, at(9), key="out-first"))
    assert replay.status_code == 400
    assert replay.body == rejected.body
    assert db.query(Punch).count() == 1


def test_transient_failure_leaves_key_retryable(pipeline, db, monkeypatch):
    real_lookup = punch_pipeline.list_recent_punches
    calls = {"n": 0}

    def flaky_lookup(*args, **kwargs):
        calls["n"] += 1
        if calls["n"] == 1:
            raise OperationalError("SELECT punches", {}, Exception("database is locked"))
        return real_lookup(*args, **kwargs)

    monkeypatch.setattr(punch_pipeline, "list_recent_punches", flaky_lookup)

    with pytest.raises(OperationalError):
        pipeline.submit_punch(submission(PunchType.IN, at(9), key="retry-me"))
    assert db.query(IdempotencyRecord).count() == 0

    response = pipeline.submit_punch(submission(PunchType.IN, at(9), key="retry-me"))
    assert response.status_code == 201
    assert db.query(Punch).count() == 1


def test_unknown_shift_is_not_found_and_not_cached(pipeline, db):
    with pytest.raises(HTTPException) as exc_info:
        pipeline.submit_punch(submission(PunchType.IN, at(9), key="k", shift_id="missing"))
    assert exc_info.value.status_code == 404
    assert db.query(IdempotencyRecord).count() == 0


def test_shift_of_another_tenant_is_forbidden(pipeline, foreign_shift):
    with pytest.raises(HTTPException) as exc_info:
        pipeline.submit_punch(submission(PunchType.IN, at(9), shift_id=foreign_shift.id))
    assert exc_info.value.status_code == 403


def test_time_window_violation_rejects_by_default(pipeline, day_shift, db):
    response = pipeline.submit_punch(submission(PunchType.IN, at(8), shift_id=day_shift.id))
    assert response.status_code == 400
    assert [e["code"] for e in response.body["errors"]] == ["TOO_EARLY"]
    assert db.query(Punch).count() == 0


def test_time_window_violation_is_a_warning_in_advisory_mode(db, coordinator, day_shift):
    pipeline = PunchSubmissionPipeline(db, coordinator, time_window_hard_fail=False)
    response = pipeline.submit_punch(submission(PunchType.IN, at(8), shift_id=day_shift.id))
    assert response.status_code == 201
    assert [w["code"] for w in response.body["warnings"]] == ["TOO_EARLY"]
    assert db.query(Punch).count() == 1


def test_clock_out_records_exceptions_for_the_day(pipeline, day_shift, db):
    pipeline.submit_punch(submission(PunchType.IN, at(9, 30), shift_id=day_shift.id))
    assert db.query(AttendanceException).count() == 0

    pipeline.submit_punch(submission(PunchType.OUT, at(16), shift_id=day_shift.id))
    rows = db.query(AttendanceException).order_by(AttendanceException.type).all()
    assert [r.type for r in rows] == [ExceptionType.EARLY_DEPARTURE, ExceptionType.LATE_ARRIVAL]
    assert all(r.status == ExceptionStatus.PENDING for r in rows)
    assert {r.minutes for r in rows} == {30, 60}


def test_breaks_from_previous_day_do_not_count_against_today(pipeline, day_shift, db):
    next_day = DAY + timedelta(days=1)
    for punch_type, ts in [
        (PunchType.IN, at(9)),
        (PunchType.BREAK_START, at(12)),
        (PunchType.BREAK_END, at(13)),
        (PunchType.OUT, at(17)),
        (PunchType.IN, at(9, day=next_day)),
    ]:
        assert pipeline.submit_punch(submission(punch_type, ts, shift_id=day_shift.id)).status_code == 201

    response = pipeline.submit_punch(submission(PunchType.BREAK_START, at(11, day=next_day), shift_id=day_shift.id))

    assert response.status_code == 201
    assert "warnings" not in response.body
    assert db.query(Punch).count() == 6


def test_audit_failure_does_not_fail_submission(pipeline, db, monkeypatch):
    def broken_log_audit(*args, **kwargs):
        raise OperationalError("INSERT INTO audit_logs", {}, Exception("disk I/O error"))

    monkeypatch.setattr(audit_service, "log_audit", broken_log_audit)

    response = pipeline.submit_punch(submission(PunchType.IN, at(9), key="audit-down"))

    assert response.status_code == 201
    punch = db.query(Punch).one()
    assert punch.id == response.body["id"]
    assert db.query(AuditLog).count() == 0
    record = db.query(IdempotencyRecord).one()
    assert record.state == IdempotencyState.COMPLETED
    assert record.status_code == 201


def test_submission_coerces_type_and_timezone():
    sub = PunchSubmission(
        tenant_id=TENANT_ID,
        employee_id=EMPLOYEE_ID,
        punch_type="break_start",
        timestamp=datetime(2026, 7, 6, 12, 0),
    )
    assert sub.punch_type == PunchType.BREAK_START
    assert sub.timestamp.tzinfo is not None
