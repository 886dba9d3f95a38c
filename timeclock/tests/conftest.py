"""
Pytest configuration and fixtures
"""
import os

# Settings require these; set before any timeclock import
os.environ.setdefault("DATABASE_URL", "sqlite:///./timeclock_test.db")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-for-timeclock-tests-0123456789")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from timeclock.main import app  # noqa: E402
from timeclock.db.base import Base  # noqa: E402
from timeclock.core.deps import get_db  # noqa: E402
from timeclock.core.security import create_access_token  # noqa: E402
from timeclock.services.idempotency import IdempotencyCoordinator, SqlIdempotencyStore  # noqa: E402

# Import all models to ensure they're registered with Base.metadata
from timeclock.models import (  # noqa: E402,F401
    AttendanceException,
    AuditLog,
    IdempotencyRecord,
    Punch,
    Shift,
)

TENANT_ID = "tenant-a"
OTHER_TENANT_ID = "tenant-b"
EMPLOYEE_ID = "emp-1"
MANAGER_ID = "mgr-1"


@pytest.fixture(scope="function")
def engine(tmp_path):
    """
    File-backed SQLite per test.

    Idempotency records are written from their own sessions (and from several threads
    in the concurrency tests), so every session needs its own connection to one database.
    """
    engine = create_engine(
        f"sqlite:///{tmp_path / 'timeclock.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db(session_factory):
    """Create a fresh database session for each test"""
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(scope="function")
def coordinator(session_factory):
    return IdempotencyCoordinator(
        SqlIdempotencyStore(session_factory),
        wait_seconds=5.0,
        poll_interval=0.01,
    )


@pytest.fixture(scope="function")
def client(db, coordinator):
    """Test client fixture with database and idempotency coordinator overrides"""
    def override_get_db():
        try:
            yield db
        finally:
            pass

    original_coordinator = app.state.idempotency
    app.dependency_overrides[get_db] = override_get_db
    app.state.idempotency = coordinator
    yield TestClient(app)
    app.dependency_overrides.clear()
    app.state.idempotency = original_coordinator


def auth_headers(user_id=EMPLOYEE_ID, tenant_id=TENANT_ID, roles=("Employee",), idempotency_key=None):
    """Bearer headers for a caller; pass tenant_id=None to omit the tenant claim"""
    claims = {"sub": user_id, "roles": list(roles)}
    if tenant_id is not None:
        claims["tenant_id"] = tenant_id
    headers = {"Authorization": f"Bearer {create_access_token(claims)}"}
    if idempotency_key is not None:
        headers["Idempotency-Key"] = idempotency_key
    return headers


def manager_headers(**kwargs):
    kwargs.setdefault("user_id", MANAGER_ID)
    kwargs.setdefault("roles", ("Manager",))
    return auth_headers(**kwargs)


@pytest.fixture
def day_shift(db):
    """09:00-17:00 shift with a 60 minute break allowance"""
    shift = Shift(
        id="shift-day",
        tenant_id=TENANT_ID,
        schedule_id="sched-1",
        day_of_week=1,
        start_time="09:00",
        end_time="17:00",
        break_minutes=60,
    )
    db.add(shift)
    db.commit()
    db.refresh(shift)
    return shift


@pytest.fixture
def foreign_shift(db):
    shift = Shift(
        id="shift-foreign",
        tenant_id=OTHER_TENANT_ID,
        schedule_id="sched-9",
        day_of_week=1,
        start_time="09:00",
        end_time="17:00",
        break_minutes=30,
    )
    db.add(shift)
    db.commit()
    db.refresh(shift)
    return shift
