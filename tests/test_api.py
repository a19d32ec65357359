import asyncio
from datetime import timedelta

import pytest
from fastapi import HTTPException

from taskpulse.api import routes_health, routes_jobs, routes_tasks
from taskpulse.api.app import app
from taskpulse.errors import BoardError
from taskpulse.jobs.scheduler import Interval, Job, JobScheduler


async def _noop():
    return {"sent": 0}


def _scheduler() -> JobScheduler:
    return JobScheduler([Job("reminders", Interval(timedelta(minutes=5)), _noop)])


def test_routes_registered() -> None:
    paths = set(app.openapi()["paths"])
    assert {"/health", "/jobs", "/jobs/{name}/restart", "/jobs/{name}/run", "/tasks/{card_id}/status"} <= paths


def test_health_ok(session_factory) -> None:
    assert routes_health.health(session_factory=session_factory) == {"ok": True, "db": True}


def test_list_jobs_before_start() -> None:
    payload = routes_jobs.list_jobs(scheduler=_scheduler())
    assert payload == {"jobs": {"reminders": {"running": False, "last_result": None}}}


def test_run_and_restart_job() -> None:
    async def scenario():
        scheduler = _scheduler()
        ran = await routes_jobs.run_job("reminders", scheduler=scheduler)
        restarted = routes_jobs.restart_job("reminders", scheduler=scheduler)
        listed = routes_jobs.list_jobs(scheduler=scheduler)
        scheduler.stop()
        return ran, restarted, listed

    ran, restarted, listed = asyncio.run(scenario())
    assert ran["ok"] is True
    assert ran["result"]["value"] == "{'sent': 0}"
    assert restarted == {"ok": True, "name": "reminders", "running": True}
    assert listed["jobs"]["reminders"]["running"] is True
    assert listed["jobs"]["reminders"]["last_result"]["ok"] is True


def test_unknown_job_is_404() -> None:
    with pytest.raises(HTTPException) as exc_info:
        routes_jobs.restart_job("missing", scheduler=_scheduler())
    assert exc_info.value.status_code == 404
    with pytest.raises(HTTPException) as exc_info:
        asyncio.run(routes_jobs.run_job("missing", scheduler=_scheduler()))
    assert exc_info.value.status_code == 404


def test_change_status(session_factory, add_task, board) -> None:
    task = add_task(status="todo")
    payload = routes_tasks.change_status(
        task.card_id,
        routes_tasks.StatusChange(status="done", actor_id=200),
        board=board,
        session_factory=session_factory,
    )
    assert payload["task"]["status"] == "done"
    assert payload["previous_status"] == "todo"
    assert payload["changed"] is True


@pytest.mark.parametrize(
    "card_id,status,update_error,expected",
    [
        ("missing", "done", None, 404),
        (None, "in_review", None, 409),
        (None, "done", BoardError("down", status_code=503, retryable=True), 502),
    ],
)
def test_change_status_error_mapping(card_id, status, update_error, expected, session_factory, add_task, board) -> None:
    task = add_task(status="todo")
    board.update_error = update_error
    with pytest.raises(HTTPException) as exc_info:
        routes_tasks.change_status(
            card_id or task.card_id,
            routes_tasks.StatusChange(status=status, actor_id=200),
            board=board,
            session_factory=session_factory,
        )
    assert exc_info.value.status_code == expected
    assert exc_info.value.detail["message"].startswith("❌")


def test_assign_route_auto_transitions(session_factory, add_task, add_user, board) -> None:
    add_user(100)
    task = add_task(status="todo")
    payload = routes_tasks.change_assignee(
        task.card_id,
        routes_tasks.Assignment(assignee_id=100, actor_id=200),
        board=board,
        session_factory=session_factory,
    )
    assert payload["task"]["assigned_to"] == 100
    assert payload["task"]["status"] == "in_progress"
    assert payload["status_changed"] is True
