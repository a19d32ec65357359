"""Deadline sweep.

One run walks the reminder windows from the tightest to the widest lead time
and then the overdue tasks. The reminder ledger is the only memory between
runs: a (task, recipient, window) row with ``sent_at`` set is never sent
again, and an overdue reminder is repeated once the recipient's last one is
older than ``overdue_repeat``.

Windows missed while the process was down are not replayed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, tzinfo
from typing import Optional, Sequence
from zoneinfo import ZoneInfo

from loguru import logger
from sqlalchemy.orm import Session

from taskpulse.config import settings
from taskpulse.core.clock import as_utc, utc_now
from taskpulse.db.models import WINDOW_OVERDUE, Task
from taskpulse.db.repositories import reminders_repo, settings_repo, tasks_repo
from taskpulse.db.session import SessionFactory, get_session
from taskpulse.errors import AppError, RecipientUnreachable
from taskpulse.notify import messages
from taskpulse.notify.telegram_notifier import Action, Notifier


@dataclass(frozen=True, slots=True)
class ReminderWindow:
    label: str
    lead: timedelta


DEFAULT_WINDOWS: tuple[ReminderWindow, ...] = (
    ReminderWindow("2h", timedelta(hours=2)),
    ReminderWindow("6h", timedelta(hours=6)),
    ReminderWindow("24h", timedelta(hours=24)),
)


@dataclass(slots=True)
class SweepStats:
    sent: dict[str, int] = field(default_factory=dict)
    skipped: int = 0
    failed: int = 0
    unreachable: int = 0

    def bump(self, label: str) -> None:
        self.sent[label] = self.sent.get(label, 0) + 1

    @property
    def total_sent(self) -> int:
        return sum(self.sent.values())


def resolve_recipients(session: Session, task: Task) -> list[int]:
    candidates = [int(task.created_by)]
    if task.assigned_to is not None and int(task.assigned_to) not in candidates:
        candidates.append(int(task.assigned_to))
    return [
        user_id
        for user_id in candidates
        if settings_repo.get_or_default(session, user_id).notifications_enabled
    ]


async def _deliver(
    notifier: Notifier,
    session_factory: SessionFactory,
    task: Task,
    recipient_id: int,
    window: str,
    text: str,
    actions: list[Action],
    now: datetime,
    stats: SweepStats,
) -> None:
    try:
        await notifier.send(recipient_id, text, actions)
    except RecipientUnreachable as exc:
        stats.unreachable += 1
        logger.warning(
            "reminder recipient unreachable task_id={} user_id={} window={} err={}",
            task.id,
            recipient_id,
            window,
            exc,
        )
        return
    except Exception:
        stats.failed += 1
        logger.exception("reminder send failed task_id={} user_id={} window={}", task.id, recipient_id, window)
        return

    try:
        with session_factory() as session:
            reminders_repo.mark_sent(session, task.id, recipient_id, window, sent_at=now)
    except AppError:
        stats.failed += 1
        logger.exception("reminder ledger update failed task_id={} user_id={} window={}", task.id, recipient_id, window)
        return
    stats.bump(window)
    logger.info("reminder sent task_id={} card_id={} user_id={} window={}", task.id, task.card_id, recipient_id, window)


def _window_recipients(session_factory: SessionFactory, task: Task, label: str) -> list[int]:
    with session_factory() as session:
        already = reminders_repo.sent_recipients(session, task.id, label)
        return [r for r in resolve_recipients(session, task) if r not in already]


def _overdue_recipients(session_factory: SessionFactory, task: Task, now: datetime, overdue_repeat: timedelta) -> list[int]:
    with session_factory() as session:
        recipients = []
        for recipient_id in resolve_recipients(session, task):
            last = reminders_repo.last_sent(session, task.id, WINDOW_OVERDUE, user_id=recipient_id)
            if last is None or now - last > overdue_repeat:
                recipients.append(recipient_id)
        return recipients


async def _sweep_windows(
    now: datetime,
    notifier: Notifier,
    session_factory: SessionFactory,
    windows: Sequence[ReminderWindow],
    tz: tzinfo,
    stats: SweepStats,
) -> None:
    claimed: set[int] = set()
    for window in sorted(windows, key=lambda w: w.lead):
        with session_factory() as session:
            due = tasks_repo.get_upcoming_deadlines(session, now=now, hours_ahead=window.lead)

        for task in due:
            if task.id in claimed:
                continue
            # A task belongs to the tightest window it falls into.
            claimed.add(task.id)
            try:
                recipients = _window_recipients(session_factory, task, window.label)
            except AppError:
                stats.failed += 1
                logger.exception("reminder recipients lookup failed task_id={} window={}", task.id, window.label)
                continue
            if not recipients:
                stats.skipped += 1
                continue

            text, actions = messages.window_reminder(task, window.label, tz)
            for recipient_id in recipients:
                await _deliver(notifier, session_factory, task, recipient_id, window.label, text, actions, now, stats)


async def _sweep_overdue(
    now: datetime,
    notifier: Notifier,
    session_factory: SessionFactory,
    overdue_repeat: timedelta,
    tz: tzinfo,
    stats: SweepStats,
) -> None:
    with session_factory() as session:
        overdue = tasks_repo.get_overdue_tasks(session, now=now)

    for task in overdue:
        try:
            recipients = _overdue_recipients(session_factory, task, now, overdue_repeat)
        except AppError:
            stats.failed += 1
            logger.exception("overdue recipients lookup failed task_id={}", task.id)
            continue
        if not recipients:
            stats.skipped += 1
            continue

        text, actions = messages.overdue_reminder(task, now, tz)
        for recipient_id in recipients:
            await _deliver(notifier, session_factory, task, recipient_id, WINDOW_OVERDUE, text, actions, now, stats)


async def run_sweep(
    now: Optional[datetime] = None,
    *,
    notifier: Notifier,
    session_factory: SessionFactory = get_session,
    windows: Sequence[ReminderWindow] = DEFAULT_WINDOWS,
    overdue_repeat: Optional[timedelta] = None,
    tz: Optional[tzinfo] = None,
) -> SweepStats:
    now = as_utc(now or utc_now())
    tz = tz or ZoneInfo(settings.timezone)
    if overdue_repeat is None:
        overdue_repeat = timedelta(hours=settings.overdue_repeat_hours)
    stats = SweepStats()

    logger.info("reminders sweep start now={}", now.isoformat())
    await _sweep_windows(now, notifier, session_factory, windows, tz, stats)
    await _sweep_overdue(now, notifier, session_factory, overdue_repeat, tz, stats)
    logger.info(
        "reminders sweep done sent={} skipped={} failed={} unreachable={}",
        stats.sent,
        stats.skipped,
        stats.failed,
        stats.unreachable,
    )
    return stats
