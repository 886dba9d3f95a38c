"""
Tests for attendance exception endpoints
"""
from datetime import datetime, timezone

import pytest
from fastapi import status
from sqlalchemy.orm import Session

from conftest import EMPLOYEE_ID, MANAGER_ID, OTHER_TENANT_ID, TENANT_ID, auth_headers, manager_headers
from timeclock.models import AttendanceException, AuditLog, Punch, PunchType
from timeclock.models.attendance_exception import ExceptionStatus

WORK_DATE = "2026-07-06"


def generate(client, shift_id, employee_id=EMPLOYEE_ID, headers=None):
    return client.post(
        "/api/v1/exceptions/generate",
        json={"employee_id": employee_id, "work_date": WORK_DATE, "shift_id": shift_id},
        headers=headers or manager_headers(),
    )


@pytest.fixture
def absence(client, day_shift):
    """A pending absence for EMPLOYEE_ID on WORK_DATE"""
    response = generate(client, day_shift.id)
    assert response.status_code == status.HTTP_200_OK
    return response.json()["data"][0]


def add_punch(db: Session, punch_type, hour, minute=0):
    db.add(Punch(
        tenant_id=TENANT_ID,
        employee_id=EMPLOYEE_ID,
        type=punch_type,
        timestamp=datetime(2026, 7, 6, hour, minute, tzinfo=timezone.utc),
        is_manual=True,
    ))
    db.commit()


def test_generate_flags_absence(absence, day_shift):
    assert absence["type"] == "absence"
    assert absence["severity"] == "high"
    assert absence["status"] == "pending"
    assert absence["work_date"] == WORK_DATE
    assert absence["shift_id"] == day_shift.id
    assert absence["detected_at"] == "2026-07-06T09:00:00Z"


def test_generate_is_idempotent(client, day_shift, absence, db):
    again = generate(client, day_shift.id).json()["data"]
    assert [e["id"] for e in again] == [absence["id"]]
    assert db.query(AttendanceException).count() == 1


def test_generate_removes_stale_pending_exceptions(client, db, day_shift, absence):
    add_punch(db, PunchType.IN, 9)
    add_punch(db, PunchType.OUT, 17)
    response = generate(client, day_shift.id)
    assert response.json()["data"] == []
    assert db.query(AttendanceException).count() == 0


def test_generate_keeps_resolved_exceptions(client, db, day_shift, absence):
    client.put(
        f"/api/v1/exceptions/{absence['id']}/resolve",
        json={"status": "approved", "notes": "Approved sick day"},
        headers=manager_headers(),
    )
    add_punch(db, PunchType.IN, 9)
    add_punch(db, PunchType.OUT, 17)
    generate(client, day_shift.id)

    row = db.query(AttendanceException).one()
    assert row.id == absence["id"]
    assert row.status == ExceptionStatus.APPROVED


def test_generate_requires_manager(client, day_shift):
    response = generate(client, day_shift.id, headers=auth_headers())
    assert response.status_code == status.HTTP_403_FORBIDDEN


def test_generate_rejects_foreign_shift(client, foreign_shift):
    response = generate(client, foreign_shift.id)
    assert response.status_code == status.HTTP_403_FORBIDDEN


def test_list_and_filter(client, absence):
    response = client.get("/api/v1/exceptions?status=pending", headers=manager_headers())
    assert [e["id"] for e in response.json()["data"]] == [absence["id"]]

    response = client.get("/api/v1/exceptions?status=approved", headers=manager_headers())
    assert response.json()["data"] == []

    response = client.get("/api/v1/exceptions", headers=manager_headers(tenant_id=OTHER_TENANT_ID))
    assert response.json()["data"] == []


def test_employee_sees_only_own_exceptions(client, day_shift, absence):
    generate(client, day_shift.id, employee_id="emp-2")

    response = client.get("/api/v1/exceptions", headers=auth_headers())
    assert [e["employee_id"] for e in response.json()["data"]] == [EMPLOYEE_ID]

    other = client.get("/api/v1/exceptions?employee_id=emp-2", headers=manager_headers()).json()["data"][0]
    response = client.get(f"/api/v1/exceptions/{other['id']}", headers=auth_headers())
    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_get_exception(client, absence):
    response = client.get(f"/api/v1/exceptions/{absence['id']}", headers=auth_headers())
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["id"] == absence["id"]


def test_get_exception_of_other_tenant_is_not_found(client, absence):
    response = client.get(
        f"/api/v1/exceptions/{absence['id']}",
        headers=manager_headers(tenant_id=OTHER_TENANT_ID),
    )
    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_resolve_exception(client, db, absence):
    response = client.put(
        f"/api/v1/exceptions/{absence['id']}/resolve",
        json={"status": "rejected", "notes": "No leave on file"},
        headers=manager_headers(),
    )
    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["status"] == "rejected"
    assert data["resolved_by"] == MANAGER_ID
    assert data["resolution_notes"] == "No leave on file"
    assert data["resolved_at"].endswith("Z")

    audit = db.query(AuditLog).filter(AuditLog.action == "EXCEPTION_REJECTED").one()
    assert audit.entity_id == absence["id"]
    assert audit.meta_json["status"] == {"before": "pending", "after": "rejected"}


def test_resolve_twice_conflicts(client, absence):
    url = f"/api/v1/exceptions/{absence['id']}/resolve"
    client.put(url, json={"status": "approved"}, headers=manager_headers())
    response = client.put(url, json={"status": "rejected"}, headers=manager_headers())
    assert response.status_code == status.HTTP_409_CONFLICT


def test_resolve_requires_manager(client, absence):
    response = client.put(
        f"/api/v1/exceptions/{absence['id']}/resolve",
        json={"status": "approved"},
        headers=auth_headers(),
    )
    assert response.status_code == status.HTTP_403_FORBIDDEN


def test_resolve_to_pending_is_invalid(client, absence):
    response = client.put(
        f"/api/v1/exceptions/{absence['id']}/resolve",
        json={"status": "pending"},
        headers=manager_headers(),
    )
    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
