from __future__ import annotations

from datetime import datetime

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from taskpulse.core.clock import as_utc
from taskpulse.db.models import REMINDER_TYPES, Reminder


def _check_type(window: str) -> None:
    if window not in REMINDER_TYPES:
        raise ValueError(f"Unknown reminder window: {window}")


def was_sent(session: Session, task_id: int, user_id: int, window: str) -> bool:
    row = session.scalar(
        select(Reminder.id).where(
            Reminder.task_id == task_id,
            Reminder.user_id == user_id,
            Reminder.type == window,
            Reminder.sent_at.is_not(None),
        )
    )
    return row is not None


def sent_recipients(session: Session, task_id: int, window: str) -> set[int]:
    rows = session.scalars(
        select(Reminder.user_id).where(
            Reminder.task_id == task_id,
            Reminder.type == window,
            Reminder.sent_at.is_not(None),
        )
    ).all()
    return {int(r) for r in rows}


def mark_sent(session: Session, task_id: int, user_id: int, window: str, *, sent_at: datetime) -> Reminder:
    _check_type(window)
    row = session.scalar(
        select(Reminder).where(
            Reminder.task_id == task_id,
            Reminder.user_id == user_id,
            Reminder.type == window,
        )
    )
    if row is None:
        row = Reminder(task_id=task_id, user_id=user_id, type=window)
        session.add(row)
    row.sent_at = as_utc(sent_at)
    session.flush()
    return row


def last_sent(session: Session, task_id: int, window: str, *, user_id: int | None = None) -> datetime | None:
    stmt = select(func.max(Reminder.sent_at)).where(Reminder.task_id == task_id, Reminder.type == window)
    if user_id is not None:
        stmt = stmt.where(Reminder.user_id == user_id)
    value = session.scalar(stmt)
    if value is None:
        return None
    if isinstance(value, str):
        # func.max() on SQLite loses the column type.
        value = datetime.fromisoformat(value)
    return as_utc(value)


def purge_older_than(session: Session, cutoff: datetime) -> int:
    result = session.execute(delete(Reminder).where(Reminder.sent_at < as_utc(cutoff)))
    return int(getattr(result, "rowcount", 0) or 0)
