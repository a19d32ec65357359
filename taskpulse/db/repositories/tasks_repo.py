from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from loguru import logger
from sqlalchemy import and_, case, func, or_, select
from sqlalchemy.orm import Session

from taskpulse.core.clock import as_utc, utc_now
from taskpulse.db.models import STATUS_DONE, STATUS_IN_PROGRESS, STATUS_TODO, TASK_STATUSES, Task

_UPDATABLE_FIELDS = {"title", "description", "priority", "category", "status", "assigned_to", "due_date"}


@dataclass(frozen=True, slots=True)
class DayStats:
    completed: int
    in_progress: int
    overdue: int


def _involves(user_id: int):
    return or_(Task.assigned_to == user_id, Task.created_by == user_id)


def create_task(
    session: Session,
    *,
    card_id: str,
    title: str,
    created_by: int,
    chat_id: int,
    description: str | None = None,
    priority: str = "medium",
    category: str = "other",
    status: str = STATUS_TODO,
    assigned_to: int | None = None,
    due_date: datetime | None = None,
) -> Task:
    if status not in TASK_STATUSES:
        raise ValueError(f"Unknown task status: {status}")
    task = Task(
        card_id=card_id,
        title=title,
        description=description,
        priority=priority,
        category=category,
        status=status,
        created_by=created_by,
        assigned_to=assigned_to,
        chat_id=chat_id,
        due_date=as_utc(due_date) if due_date is not None else None,
    )
    session.add(task)
    session.flush()
    logger.info("task created id={} card_id={} chat_id={}", task.id, card_id, chat_id)
    return task


def get_by_card_id(session: Session, card_id: str) -> Task | None:
    return session.scalar(select(Task).where(Task.card_id == card_id))


def update_task(session: Session, card_id: str, *, now: datetime | None = None, **fields: Any) -> Task | None:
    unknown = set(fields) - _UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Unsupported task fields: {sorted(unknown)}")
    task = get_by_card_id(session, card_id)
    if task is None:
        return None
    if "status" in fields and fields["status"] not in TASK_STATUSES:
        raise ValueError(f"Unknown task status: {fields['status']}")
    if fields.get("due_date") is not None:
        fields["due_date"] = as_utc(fields["due_date"])
    for name, value in fields.items():
        setattr(task, name, value)
    task.updated_at = as_utc(now or utc_now())
    session.flush()
    logger.info("task updated card_id={} fields={}", card_id, sorted(fields))
    return task


def get_upcoming_deadlines(session: Session, *, now: datetime, hours_ahead: float | timedelta) -> list[Task]:
    lead = hours_ahead if isinstance(hours_ahead, timedelta) else timedelta(hours=hours_ahead)
    start = as_utc(now)
    end = start + lead
    return list(
        session.scalars(
            select(Task)
            .where(
                Task.due_date.is_not(None),
                Task.due_date >= start,
                Task.due_date <= end,
                Task.status != STATUS_DONE,
            )
            .order_by(Task.due_date.asc())
        ).all()
    )


def get_overdue_tasks(session: Session, *, now: datetime) -> list[Task]:
    return list(
        session.scalars(
            select(Task)
            .where(
                Task.due_date.is_not(None),
                Task.due_date < as_utc(now),
                Task.status != STATUS_DONE,
            )
            .order_by(Task.due_date.desc())
        ).all()
    )


def get_user_tasks(session: Session, user_id: int, *, status: str | None = None) -> list[Task]:
    stmt = select(Task).where(Task.assigned_to == user_id)
    if status is not None:
        stmt = stmt.where(Task.status == status)
    return list(session.scalars(stmt.order_by(Task.due_date.asc(), Task.created_at.desc())).all())


def get_user_due_between(session: Session, user_id: int, start: datetime, end: datetime) -> list[Task]:
    return list(
        session.scalars(
            select(Task)
            .where(
                _involves(user_id),
                Task.due_date >= as_utc(start),
                Task.due_date < as_utc(end),
                Task.status != STATUS_DONE,
            )
            .order_by(Task.due_date.asc())
        ).all()
    )


def get_user_overdue(session: Session, user_id: int, *, before: datetime) -> list[Task]:
    return list(
        session.scalars(
            select(Task)
            .where(
                _involves(user_id),
                Task.due_date < as_utc(before),
                Task.status != STATUS_DONE,
            )
            .order_by(Task.due_date.desc())
        ).all()
    )


def get_user_completed_between(session: Session, user_id: int, start: datetime, end: datetime) -> list[Task]:
    return list(
        session.scalars(
            select(Task)
            .where(
                _involves(user_id),
                Task.status == STATUS_DONE,
                Task.updated_at >= as_utc(start),
                Task.updated_at < as_utc(end),
            )
            .order_by(Task.updated_at.asc())
        ).all()
    )


def get_user_day_stats(
    session: Session,
    user_id: int,
    *,
    day_start: datetime,
    day_end: datetime,
    now: datetime,
) -> DayStats:
    completed = func.count(
        case(
            (
                and_(
                    Task.status == STATUS_DONE,
                    Task.updated_at >= as_utc(day_start),
                    Task.updated_at < as_utc(day_end),
                ),
                1,
            )
        )
    )
    in_progress = func.count(case((Task.status == STATUS_IN_PROGRESS, 1)))
    overdue = func.count(case((and_(Task.due_date < as_utc(now), Task.status != STATUS_DONE), 1)))
    row = session.execute(select(completed, in_progress, overdue).where(_involves(user_id))).one()
    return DayStats(completed=int(row[0] or 0), in_progress=int(row[1] or 0), overdue=int(row[2] or 0))
