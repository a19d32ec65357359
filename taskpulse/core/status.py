from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional
from zoneinfo import ZoneInfo

from loguru import logger
from sqlalchemy.orm import Session

from taskpulse.board.lists import resolve_list_for_status
from taskpulse.board.planka_client import ActivitySink, AssignableBoard, Board
from taskpulse.config import settings
from taskpulse.core.clock import format_local, utc_now
from taskpulse.db.models import (
    STATUS_DONE,
    STATUS_IN_PROGRESS,
    STATUS_IN_REVIEW,
    STATUS_TODO,
    Task,
    User,
)
from taskpulse.db.repositories import tasks_repo, users_repo
from taskpulse.db.session import SessionFactory
from taskpulse.errors import AppError, InvalidStatusTransition, NotFound

ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    STATUS_TODO: frozenset({STATUS_IN_PROGRESS, STATUS_DONE}),
    STATUS_IN_PROGRESS: frozenset({STATUS_TODO, STATUS_IN_REVIEW, STATUS_DONE}),
    STATUS_IN_REVIEW: frozenset({STATUS_IN_PROGRESS, STATUS_DONE}),
    STATUS_DONE: frozenset({STATUS_TODO, STATUS_IN_PROGRESS}),
}

STATUS_TITLES = {
    STATUS_TODO: "К выполнению",
    STATUS_IN_PROGRESS: "В работе",
    STATUS_IN_REVIEW: "На проверке",
    STATUS_DONE: "Выполнено",
}


@dataclass(frozen=True, slots=True)
class TransitionResult:
    task: Task
    previous_status: str
    changed: bool


@dataclass(frozen=True, slots=True)
class AssignResult:
    task: Task
    assignee: Optional[User]
    previous_assignee_id: Optional[int]
    transition: Optional[TransitionResult] = None


@dataclass(slots=True)
class BulkResult:
    updated: list[str] = field(default_factory=list)
    failed: list[tuple[str, str]] = field(default_factory=list)


def validate_transition(current: str, target: str) -> None:
    if target not in ALLOWED_TRANSITIONS.get(current, frozenset()):
        raise InvalidStatusTransition(current, target)


def _status_comment(previous: str, target: str, actor: Optional[User], actor_id: int, now: datetime) -> str:
    name = users_repo.display_name(actor) if actor is not None else str(actor_id)
    tz = ZoneInfo(settings.timezone)
    return (
        f"📊 Статус изменён: {STATUS_TITLES[previous]} → {STATUS_TITLES[target]}\n"
        f"👤 {name}\n"
        f"🕐 {format_local(now, tz, '%d.%m.%Y %H:%M:%S')}"
    )


def _post_comment(activity: ActivitySink, session: Session, task: Task, previous: str, actor_id: int, now: datetime) -> None:
    try:
        actor = users_repo.get_user(session, actor_id)
        activity.add_comment(task.card_id, _status_comment(previous, task.status, actor, actor_id, now))
    except Exception:
        logger.exception("status comment failed card_id={}", task.card_id)


def transition_status(
    session: Session,
    card_id: str,
    target: str,
    actor_id: int,
    *,
    board: Board,
    activity: Optional[ActivitySink] = None,
    board_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> TransitionResult:
    """Move a task to ``target`` status on the board and in the store.

    The board card is moved first; the local status is written only after the
    board accepted the move, so a BoardError leaves the task untouched. The
    audit comment is best-effort.
    """
    task = tasks_repo.get_by_card_id(session, card_id)
    if task is None:
        raise NotFound("Task not found", card_id=card_id)

    previous = task.status
    if target == previous:
        logger.info("status unchanged card_id={} status={}", card_id, target)
        return TransitionResult(task=task, previous_status=previous, changed=False)

    validate_transition(previous, target)

    lists = board.get_board_lists(board_id)
    target_list = resolve_list_for_status(lists, target)
    board.update_card(card_id, list_id=target_list.id)

    now = now or utc_now()
    task = tasks_repo.update_task(session, card_id, status=target, now=now)
    logger.info(
        "status changed card_id={} from={} to={} actor_id={} list={}",
        card_id,
        previous,
        target,
        actor_id,
        target_list.name,
    )

    if activity is not None:
        _post_comment(activity, session, task, previous, actor_id, now)
    return TransitionResult(task=task, previous_status=previous, changed=True)


def assign_task(
    session: Session,
    card_id: str,
    assignee_id: Optional[int],
    actor_id: int,
    *,
    board: AssignableBoard,
    activity: Optional[ActivitySink] = None,
    board_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> AssignResult:
    """Set or clear the assignee of a task.

    A task sitting in todo is moved to in_progress through transition_status,
    so the move obeys the same adjacency table as any other transition.
    """
    task = tasks_repo.get_by_card_id(session, card_id)
    if task is None:
        raise NotFound("Task not found", card_id=card_id)
    previous_assignee_id = task.assigned_to
    now = now or utc_now()

    if assignee_id is None:
        task = tasks_repo.update_task(session, card_id, assigned_to=None, now=now)
        logger.info("assignee removed card_id={} actor_id={}", card_id, actor_id)
        return AssignResult(task=task, assignee=None, previous_assignee_id=previous_assignee_id)

    assignee = users_repo.get_user(session, assignee_id)
    if assignee is None:
        raise NotFound("Assignee not found", assignee_id=assignee_id)

    if assignee.planka_user_id:
        board.add_card_member(card_id, assignee.planka_user_id)

    task = tasks_repo.update_task(session, card_id, assigned_to=assignee_id, now=now)

    transition = None
    if task.status == STATUS_TODO:
        transition = transition_status(
            session,
            card_id,
            STATUS_IN_PROGRESS,
            actor_id,
            board=board,
            activity=activity,
            board_id=board_id,
            now=now,
        )
        task = transition.task

    logger.info(
        "task assigned card_id={} assignee_id={} previous_assignee_id={} actor_id={}",
        card_id,
        assignee_id,
        previous_assignee_id,
        actor_id,
    )
    return AssignResult(
        task=task,
        assignee=assignee,
        previous_assignee_id=previous_assignee_id,
        transition=transition,
    )


def bulk_transition(
    session_factory: SessionFactory,
    card_ids: Iterable[str],
    target: str,
    actor_id: int,
    *,
    board: Board,
    activity: Optional[ActivitySink] = None,
    board_id: Optional[str] = None,
) -> BulkResult:
    result = BulkResult()
    for card_id in card_ids:
        try:
            with session_factory() as session:
                transition_status(
                    session,
                    card_id,
                    target,
                    actor_id,
                    board=board,
                    activity=activity,
                    board_id=board_id,
                )
            result.updated.append(card_id)
        except AppError as exc:
            logger.warning("bulk transition failed card_id={} code={} err={}", card_id, exc.code, exc)
            result.failed.append((card_id, exc.code))
    logger.info(
        "bulk transition done target={} updated={} failed={}",
        target,
        len(result.updated),
        len(result.failed),
    )
    return result


def reassign_user_tasks(
    session_factory: SessionFactory,
    from_user_id: int,
    to_user_id: Optional[int],
    actor_id: int,
    *,
    board: AssignableBoard,
    activity: Optional[ActivitySink] = None,
    board_id: Optional[str] = None,
) -> BulkResult:
    """Hand every open task of one user over to another, or unassign them.

    Each task goes through assign_task in its own session, so one failure
    leaves the rest of the batch alone.
    """
    with session_factory() as session:
        card_ids = [
            task.card_id
            for task in tasks_repo.get_user_tasks(session, from_user_id)
            if task.status != STATUS_DONE
        ]

    result = BulkResult()
    for card_id in card_ids:
        try:
            with session_factory() as session:
                assign_task(
                    session,
                    card_id,
                    to_user_id,
                    actor_id,
                    board=board,
                    activity=activity,
                    board_id=board_id,
                )
            result.updated.append(card_id)
        except AppError as exc:
            logger.warning("reassign failed card_id={} code={} err={}", card_id, exc.code, exc)
            result.failed.append((card_id, exc.code))
    logger.info(
        "reassign done from_user_id={} to_user_id={} reassigned={} failed={}",
        from_user_id,
        to_user_id,
        len(result.updated),
        len(result.failed),
    )
    return result
