from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, tzinfo
from typing import Iterable, Optional
from zoneinfo import ZoneInfo

from loguru import logger
from sqlalchemy.orm import Session

from taskpulse.config import settings
from taskpulse.core.clock import as_utc, day_bounds, utc_now
from taskpulse.db.repositories import settings_repo, tasks_repo, users_repo
from taskpulse.db.session import SessionFactory, get_session
from taskpulse.errors import RecipientUnreachable
from taskpulse.notify import messages
from taskpulse.notify.telegram_notifier import Action, Notifier

DIGEST_MORNING = "morning"
DIGEST_EVENING = "evening"
DIGEST_KINDS = (DIGEST_MORNING, DIGEST_EVENING)


@dataclass(slots=True)
class DigestStats:
    kind: str
    sent: int = 0
    skipped: int = 0
    failed: int = 0


def _morning_payload(
    session: Session, user_id: int, now: datetime, tz: tzinfo, cap: int
) -> tuple[str, list[Action]]:
    _, day_end = day_bounds(now, tz)
    today = tasks_repo.get_user_due_between(session, user_id, now, day_end)
    overdue = tasks_repo.get_user_overdue(session, user_id, before=now)
    return messages.morning_digest(today, overdue, now=now, tz=tz, cap=cap)


def _evening_payload(
    session: Session, user_id: int, now: datetime, tz: tzinfo, cap: int
) -> tuple[str, list[Action]]:
    day_start, day_end = day_bounds(now, tz)
    tomorrow_start, tomorrow_end = day_bounds(day_end, tz)
    completed = tasks_repo.get_user_completed_between(session, user_id, day_start, day_end)
    tomorrow = tasks_repo.get_user_due_between(session, user_id, tomorrow_start, tomorrow_end)
    stats = tasks_repo.get_user_day_stats(session, user_id, day_start=day_start, day_end=day_end, now=now)
    return messages.evening_digest(completed, tomorrow, stats, cap=cap), []


async def run_digest(
    kind: str,
    now: Optional[datetime] = None,
    *,
    notifier: Notifier,
    session_factory: SessionFactory = get_session,
    tz: Optional[tzinfo] = None,
    roles: Optional[Iterable[str]] = None,
    morning_hour: Optional[int] = None,
    item_cap: Optional[int] = None,
) -> DigestStats:
    """Send the morning or evening digest to every owner and admin.

    Read-only towards tasks and the reminder ledger. A user with the digest
    switched off gets nothing; the morning digest also goes only to users whose
    digest hour is the morning trigger hour.
    """
    if kind not in DIGEST_KINDS:
        raise ValueError(f"Unknown digest kind: {kind}")
    now = as_utc(now or utc_now())
    tz = tz or ZoneInfo(settings.timezone)
    roles = list(roles) if roles is not None else list(settings.digest_roles)
    morning_hour = settings.digest_morning_hour if morning_hour is None else morning_hour
    cap = settings.digest_item_cap if item_cap is None else item_cap
    stats = DigestStats(kind=kind)

    logger.info("digest start kind={} now={}", kind, now.isoformat())
    with session_factory() as session:
        user_ids = [int(user.telegram_id) for user in users_repo.list_users(session, roles=roles)]

    for user_id in user_ids:
        try:
            with session_factory() as session:
                prefs = settings_repo.get_or_default(session, user_id)
                if not prefs.digest_enabled or (kind == DIGEST_MORNING and prefs.digest_hour != morning_hour):
                    stats.skipped += 1
                    continue
                if kind == DIGEST_MORNING:
                    text, actions = _morning_payload(session, user_id, now, tz, cap)
                else:
                    text, actions = _evening_payload(session, user_id, now, tz, cap)
            await notifier.send(user_id, text, actions or None)
        except RecipientUnreachable as exc:
            stats.failed += 1
            logger.warning("digest recipient unreachable kind={} user_id={} err={}", kind, user_id, exc)
            continue
        except Exception:
            stats.failed += 1
            logger.exception("digest failed kind={} user_id={}", kind, user_id)
            continue
        stats.sent += 1
        logger.info("digest sent kind={} user_id={}", kind, user_id)

    logger.info("digest done kind={} sent={} skipped={} failed={}", kind, stats.sent, stats.skipped, stats.failed)
    return stats
