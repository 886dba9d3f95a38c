#!/usr/bin/env python3
"""
Delete expired idempotency records (completed responses past their TTL and
abandoned pending keys). Uses the same DATABASE_URL as the app.
Run from project root: python scripts/cleanup_idempotency_records.py
Schedule it (cron / k8s CronJob) at least once per IDEMPOTENCY_TTL_HOURS.
"""
import logging
import os
import sys

# Ensure timeclock is importable when run from the repo root
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from timeclock.core.config import settings  # noqa: E402
from timeclock.core.logging import setup_logging  # noqa: E402
from timeclock.db.session import SessionLocal  # noqa: E402
from timeclock.services.idempotency import IdempotencyCoordinator  # noqa: E402

_log = logging.getLogger("cleanup_idempotency_records")


def main() -> int:
    setup_logging()
    coordinator = IdempotencyCoordinator.from_settings(SessionLocal, settings)
    deleted = coordinator.cleanup_expired()
    _log.info("Done: %s expired idempotency records removed", deleted)
    return 0


if __name__ == "__main__":
    sys.exit(main())
