"""
Idempotency coordination: at most one execution of a side-effecting operation per
(tenant, endpoint, client-supplied key).

Two layers guard a key:
- an in-process mutex per key, so concurrent callers in one worker queue up instead
  of polling the database;
- a database intent row (state=pending, unique on tenant/endpoint/key) claimed with an
  atomic insert, so callers in other worker processes agree on a single owner.

Losers wait for the owner's terminal response and replay it. Waiting is bounded; a
pending row whose lease expired (owner crashed) is taken over. If the work raises,
the intent row is removed and the key stays retryable.
"""
import json
import logging
import threading
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterator, Optional

from fastapi import HTTPException, status
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from timeclock.models.idempotency_record import IdempotencyRecord, IdempotencyState
from timeclock.utils.datetime_utils import ensure_utc, now_utc
from timeclock.utils.json_serializer import sanitize_for_json

_log = logging.getLogger(__name__)


class IdempotencyInProgressError(HTTPException):
    """Another request with the same key is still running and did not finish in time."""

    def __init__(self, key: str):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"A request with Idempotency-Key '{key}' is still being processed; retry later",
        )


@dataclass(frozen=True)
class IdempotencyScope:
    tenant_id: str
    endpoint: str
    key: str


@dataclass(frozen=True)
class IdempotentResponse:
    """Terminal result of an idempotent operation. body must be JSON-serializable."""
    status_code: int
    body: Any
    replayed: bool = False


@dataclass(frozen=True)
class StoredRecord:
    state: IdempotencyState
    owner_token: str
    status_code: Optional[int]
    response_body: Optional[str]
    lease_expires_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now

    def lease_expired(self, now: datetime) -> bool:
        return self.state == IdempotencyState.PENDING and self.lease_expires_at <= now


class SqlIdempotencyStore:
    """
    IdempotencyRecord persistence. Each call runs in its own short session so records
    commit independently of the caller's unit of work.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    @staticmethod
    def _match(db: Session, scope: IdempotencyScope):
        return db.query(IdempotencyRecord).filter(
            IdempotencyRecord.tenant_id == scope.tenant_id,
            IdempotencyRecord.endpoint == scope.endpoint,
            IdempotencyRecord.idempotency_key == scope.key,
        )

    def get(self, scope: IdempotencyScope) -> Optional[StoredRecord]:
        db = self._session_factory()
        try:
            row = self._match(db, scope).first()
            if row is None:
                return None
            return StoredRecord(
                state=IdempotencyState(row.state),
                owner_token=row.owner_token,
                status_code=row.status_code,
                response_body=row.response_body,
                lease_expires_at=ensure_utc(row.lease_expires_at),
                expires_at=ensure_utc(row.expires_at),
            )
        finally:
            db.close()

    def try_claim(
        self,
        scope: IdempotencyScope,
        owner_token: str,
        now: datetime,
        lease: timedelta,
        ttl: timedelta,
    ) -> bool:
        """Insert the pending intent row. False if another caller already holds the key."""
        db = self._session_factory()
        try:
            db.add(IdempotencyRecord(
                tenant_id=scope.tenant_id,
                endpoint=scope.endpoint,
                idempotency_key=scope.key,
                state=IdempotencyState.PENDING,
                owner_token=owner_token,
                created_at=now,
                lease_expires_at=now + lease,
                expires_at=now + ttl,
            ))
            db.commit()
            return True
        except IntegrityError:
            db.rollback()
            return False
        finally:
            db.close()

    def complete(
        self,
        scope: IdempotencyScope,
        owner_token: str,
        response: IdempotentResponse,
        now: datetime,
        ttl: timedelta,
    ) -> bool:
        """Store the terminal response on our intent row. False if the lease was lost meanwhile."""
        db = self._session_factory()
        try:
            updated = self._match(db, scope).filter(
                IdempotencyRecord.owner_token == owner_token,
                IdempotencyRecord.state == IdempotencyState.PENDING,
            ).update(
                {
                    IdempotencyRecord.state: IdempotencyState.COMPLETED,
                    IdempotencyRecord.status_code: response.status_code,
                    IdempotencyRecord.response_body: json.dumps(sanitize_for_json(response.body)),
                    IdempotencyRecord.expires_at: now + ttl,
                },
                synchronize_session=False,
            )
            db.commit()
            return updated == 1
        finally:
            db.close()

    def release(self, scope: IdempotencyScope, owner_token: str) -> None:
        """Drop our pending intent row so the key can be retried."""
        db = self._session_factory()
        try:
            self._match(db, scope).filter(
                IdempotencyRecord.owner_token == owner_token,
                IdempotencyRecord.state == IdempotencyState.PENDING,
            ).delete(synchronize_session=False)
            db.commit()
        finally:
            db.close()

    def delete_stale(self, scope: IdempotencyScope, now: datetime) -> int:
        """Remove this key's row if it expired or its pending lease lapsed."""
        db = self._session_factory()
        try:
            deleted = self._match(db, scope).filter(
                or_(
                    IdempotencyRecord.expires_at <= now,
                    (IdempotencyRecord.state == IdempotencyState.PENDING)
                    & (IdempotencyRecord.lease_expires_at <= now),
                )
            ).delete(synchronize_session=False)
            db.commit()
            return deleted
        finally:
            db.close()

    def cleanup_expired(self, now: datetime) -> int:
        """Delete every expired record across tenants."""
        db = self._session_factory()
        try:
            deleted = db.query(IdempotencyRecord).filter(
                IdempotencyRecord.expires_at <= now
            ).delete(synchronize_session=False)
            db.commit()
            return deleted
        finally:
            db.close()


class _LockEntry:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = threading.Lock()
        self.users = 0


class KeyedLocks:
    """Per-key mutexes. An entry exists only while some caller holds or waits on it."""

    def __init__(self):
        self._guard = threading.Lock()
        self._entries: Dict[IdempotencyScope, _LockEntry] = {}

    @contextmanager
    def hold(self, scope: IdempotencyScope, timeout: float) -> Iterator[None]:
        with self._guard:
            entry = self._entries.get(scope)
            if entry is None:
                entry = self._entries[scope] = _LockEntry()
            entry.users += 1

        acquired = entry.lock.acquire(timeout=max(timeout, 0))
        try:
            if not acquired:
                raise IdempotencyInProgressError(scope.key)
            yield
        finally:
            if acquired:
                entry.lock.release()
            with self._guard:
                entry.users -= 1
                if entry.users == 0:
                    del self._entries[scope]

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)


class IdempotencyCoordinator:
    """
    Guarantees at-most-one execution of `work` per (tenant, endpoint, key).

    Terminal responses (any status code returned by `work`) are stored and replayed
    verbatim. Exceptions raised by `work` are never stored.
    """

    def __init__(
        self,
        store: SqlIdempotencyStore,
        ttl: timedelta = timedelta(hours=24),
        lease: timedelta = timedelta(seconds=30),
        wait_seconds: float = 10.0,
        poll_interval: float = 0.05,
    ):
        self._store = store
        self._ttl = ttl
        self._lease = lease
        self._wait_seconds = wait_seconds
        self._poll_interval = poll_interval
        self._locks = KeyedLocks()

    @classmethod
    def from_settings(cls, session_factory: Callable[[], Session], settings) -> "IdempotencyCoordinator":
        return cls(
            SqlIdempotencyStore(session_factory),
            ttl=timedelta(hours=settings.IDEMPOTENCY_TTL_HOURS),
            lease=timedelta(seconds=settings.IDEMPOTENCY_LEASE_SECONDS),
            wait_seconds=settings.IDEMPOTENCY_WAIT_SECONDS,
            poll_interval=settings.IDEMPOTENCY_POLL_INTERVAL_MS / 1000.0,
        )

    def submit(
        self,
        tenant_id: str,
        endpoint: str,
        key: Optional[str],
        work: Callable[[], IdempotentResponse],
    ) -> IdempotentResponse:
        """
        Run `work` at most once for the key and return its terminal response.

        Args:
            tenant_id: Tenant scope of the key
            endpoint: Logical endpoint, e.g. "POST /punches"
            key: Client-supplied idempotency key; None or blank disables deduplication
            work: The side-effecting operation

        Raises:
            IdempotencyInProgressError: another caller holds the key past the wait bound
            Exception: anything raised by `work` (no record is kept)
        """
        key = (key or "").strip() or None
        if key is None:
            return work()

        scope = IdempotencyScope(tenant_id, endpoint, key)
        deadline = time.monotonic() + self._wait_seconds
        with self._locks.hold(scope, timeout=self._wait_seconds):
            owner_token = str(uuid.uuid4())
            replay = self._claim_or_replay(scope, owner_token, deadline)
            if replay is not None:
                return replay

            try:
                response = work()
            except Exception:
                self._release(scope, owner_token)
                raise

            if not self._store.complete(scope, owner_token, response, now_utc(), self._ttl):
                _log.warning(
                    "idempotency lease lost before completion: tenant=%s endpoint=%s key=%s",
                    tenant_id, endpoint, key,
                )
            return response

    def _claim_or_replay(
        self,
        scope: IdempotencyScope,
        owner_token: str,
        deadline: float,
    ) -> Optional[IdempotentResponse]:
        """Either claim the key (returns None) or return the stored response to replay."""
        while True:
            now = now_utc()
            record = self._store.get(scope)

            if record is not None and (record.is_expired(now) or record.lease_expired(now)):
                if record.state == IdempotencyState.PENDING:
                    _log.warning(
                        "taking over stale idempotency lease: tenant=%s endpoint=%s key=%s",
                        scope.tenant_id, scope.endpoint, scope.key,
                    )
                self._store.delete_stale(scope, now)
                record = None

            if record is None:
                if self._store.try_claim(scope, owner_token, now, self._lease, self._ttl):
                    return None
            elif record.state == IdempotencyState.COMPLETED:
                _log.info(
                    "replaying idempotent response: tenant=%s endpoint=%s key=%s status=%s",
                    scope.tenant_id, scope.endpoint, scope.key, record.status_code,
                )
                return IdempotentResponse(
                    status_code=record.status_code,
                    body=json.loads(record.response_body),
                    replayed=True,
                )

            if time.monotonic() >= deadline:
                raise IdempotencyInProgressError(scope.key)
            time.sleep(self._poll_interval)

    def _release(self, scope: IdempotencyScope, owner_token: str) -> None:
        try:
            self._store.release(scope, owner_token)
        except SQLAlchemyError:
            # The lease expiry frees the key; the work error is what the caller needs to see
            _log.exception(
                "failed to release idempotency key: tenant=%s endpoint=%s key=%s",
                scope.tenant_id, scope.endpoint, scope.key,
            )

    def cleanup_expired(self) -> int:
        """Delete expired records; returns how many were removed."""
        deleted = self._store.cleanup_expired(now_utc())
        _log.info("idempotency cleanup removed %s expired records", deleted)
        return deleted
