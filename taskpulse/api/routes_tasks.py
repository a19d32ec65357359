from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from taskpulse.api.deps import get_board, get_session_factory, http_error
from taskpulse.core.status import assign_task, transition_status
from taskpulse.db.models import Task
from taskpulse.db.session import SessionFactory
from taskpulse.errors import AppError

router = APIRouter(prefix="/tasks")


class StatusChange(BaseModel):
    status: str
    actor_id: int


class Assignment(BaseModel):
    assignee_id: Optional[int] = None
    actor_id: int


def _task_payload(task: Task) -> dict:
    return {
        "card_id": task.card_id,
        "title": task.title,
        "status": task.status,
        "assigned_to": task.assigned_to,
        "due_date": task.due_date.isoformat() if task.due_date else None,
    }


@router.post("/{card_id}/status")
def change_status(
    card_id: str,
    body: StatusChange,
    board=Depends(get_board),
    session_factory: SessionFactory = Depends(get_session_factory),
) -> dict:
    try:
        with session_factory() as session:
            result = transition_status(session, card_id, body.status, body.actor_id, board=board, activity=board)
            payload = _task_payload(result.task)
    except AppError as exc:
        raise http_error(exc) from exc
    return {"task": payload, "previous_status": result.previous_status, "changed": result.changed}


@router.post("/{card_id}/assign")
def change_assignee(
    card_id: str,
    body: Assignment,
    board=Depends(get_board),
    session_factory: SessionFactory = Depends(get_session_factory),
) -> dict:
    try:
        with session_factory() as session:
            result = assign_task(session, card_id, body.assignee_id, body.actor_id, board=board, activity=board)
            payload = _task_payload(result.task)
    except AppError as exc:
        raise http_error(exc) from exc
    return {
        "task": payload,
        "previous_assignee_id": result.previous_assignee_id,
        "status_changed": bool(result.transition and result.transition.changed),
    }
