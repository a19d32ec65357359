from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from loguru import logger
from sqlalchemy.engine import Engine

from taskpulse.config import settings
from taskpulse.core.clock import as_utc, utc_now
from taskpulse.db import session as db_session
from taskpulse.db.repositories import reminders_repo
from taskpulse.db.session import SessionFactory, get_session


@dataclass(frozen=True, slots=True)
class CleanupStats:
    purged: int
    optimized: bool


def _optimize(bind: Engine) -> bool:
    if bind.dialect.name != "sqlite":
        return False
    # VACUUM cannot run inside a transaction.
    with bind.connect().execution_options(isolation_level="AUTOCOMMIT") as conn:
        conn.exec_driver_sql("VACUUM")
        conn.exec_driver_sql("ANALYZE")
    return True


def run_cleanup(
    now: Optional[datetime] = None,
    *,
    session_factory: SessionFactory = get_session,
    retention_days: Optional[int] = None,
    bind: Optional[Engine] = None,
    optimize: bool = True,
) -> CleanupStats:
    now = as_utc(now or utc_now())
    days = settings.reminder_retention_days if retention_days is None else retention_days
    cutoff = now - timedelta(days=max(1, int(days)))

    logger.info("cleanup start cutoff={}", cutoff.isoformat())
    with session_factory() as session:
        purged = reminders_repo.purge_older_than(session, cutoff)

    optimized = _optimize(bind or db_session.engine) if optimize else False
    logger.info("cleanup done purged={} optimized={}", purged, optimized)
    return CleanupStats(purged=purged, optimized=optimized)
