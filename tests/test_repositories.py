from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from taskpulse.db.models import Reminder
from taskpulse.db.repositories import reminders_repo, settings_repo, tasks_repo
from taskpulse.db.repositories.settings_repo import DigestSettings

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def test_settings_defaults_synthesized(session_factory) -> None:
    with session_factory() as session:
        assert settings_repo.get_or_default(session, 555) == DigestSettings(user_id=555)
        assert settings_repo.get_settings(session, 555) is None


def test_settings_upsert_keeps_single_row(session_factory) -> None:
    with session_factory() as session:
        settings_repo.upsert_settings(session, 7, digest_enabled=False)
    with session_factory() as session:
        settings_repo.upsert_settings(session, 7, digest_hour=8)
    with session_factory() as session:
        prefs = settings_repo.get_or_default(session, 7)
    assert prefs == DigestSettings(user_id=7, digest_enabled=False, digest_hour=8, notifications_enabled=True)


def test_settings_hour_validated(session_factory) -> None:
    with pytest.raises(ValueError):
        with session_factory() as session:
            settings_repo.upsert_settings(session, 7, digest_hour=24)


def test_mark_sent_is_an_upsert(session_factory, add_task) -> None:
    task = add_task(due_date=NOW)
    with session_factory() as session:
        reminders_repo.mark_sent(session, task.id, 100, "overdue", sent_at=NOW)
    with session_factory() as session:
        reminders_repo.mark_sent(session, task.id, 100, "overdue", sent_at=NOW + timedelta(days=1))
    with session_factory() as session:
        count = session.scalar(select(func.count()).select_from(Reminder))
        last = reminders_repo.last_sent(session, task.id, "overdue", user_id=100)
        assert reminders_repo.was_sent(session, task.id, 100, "overdue") is True
        assert reminders_repo.was_sent(session, task.id, 200, "overdue") is False
    assert count == 1
    assert last == NOW + timedelta(days=1)


def test_mark_sent_rejects_unknown_window(session_factory, add_task) -> None:
    task = add_task(due_date=NOW)
    with pytest.raises(ValueError):
        with session_factory() as session:
            reminders_repo.mark_sent(session, task.id, 100, "1h", sent_at=NOW)


def test_upcoming_and_overdue_queries(session_factory, add_task) -> None:
    soon = add_task(due_date=NOW + timedelta(hours=3))
    later = add_task(due_date=NOW + timedelta(hours=30))
    late = add_task(due_date=NOW - timedelta(hours=1))
    add_task(status="done", due_date=NOW + timedelta(hours=1))
    add_task(due_date=None)
    with session_factory() as session:
        upcoming = tasks_repo.get_upcoming_deadlines(session, now=NOW, hours_ahead=24)
        wide = tasks_repo.get_upcoming_deadlines(session, now=NOW, hours_ahead=timedelta(days=2))
        overdue = tasks_repo.get_overdue_tasks(session, now=NOW)
    assert [t.card_id for t in upcoming] == [soon.card_id]
    assert [t.card_id for t in wide] == [soon.card_id, later.card_id]
    assert [t.card_id for t in overdue] == [late.card_id]


def test_user_tasks_filter(session_factory, add_task) -> None:
    mine = add_task(assigned_to=100, status="in_progress")
    add_task(assigned_to=100, status="todo")
    add_task(assigned_to=300)
    with session_factory() as session:
        assert len(tasks_repo.get_user_tasks(session, 100)) == 2
        assert [t.card_id for t in tasks_repo.get_user_tasks(session, 100, status="in_progress")] == [mine.card_id]


def test_update_task_rejects_unknown_fields(session_factory, add_task) -> None:
    task = add_task()
    with pytest.raises(ValueError):
        with session_factory() as session:
            tasks_repo.update_task(session, task.card_id, chat_id=1)
    with session_factory() as session:
        assert tasks_repo.update_task(session, "missing", title="x") is None


def test_create_task_rejects_unknown_status(session_factory) -> None:
    with pytest.raises(ValueError):
        with session_factory() as session:
            tasks_repo.create_task(session, card_id="c", title="t", created_by=1, chat_id=1, status="archived")
