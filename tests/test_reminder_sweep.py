from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from taskpulse.db.models import Reminder
from taskpulse.db.repositories import reminders_repo, settings_repo, tasks_repo
from taskpulse.errors import NotificationError, RecipientUnreachable, StoreError
from taskpulse.jobs.reminders import resolve_recipients, run_sweep

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)
UTC = timezone.utc

ASSIGNEE = 100
CREATOR = 200


def _sweep(now, notifier, session_factory):
    return asyncio.run(run_sweep(now, notifier=notifier, session_factory=session_factory, tz=UTC))


def _ledger(session_factory) -> list[tuple[int, int, str]]:
    with session_factory() as session:
        rows = session.scalars(select(Reminder).where(Reminder.sent_at.is_not(None))).all()
        return sorted((r.task_id, r.user_id, r.type) for r in rows)


def test_task_due_in_five_hours_gets_six_hour_window(session_factory, add_task, notifier) -> None:
    task = add_task(created_by=CREATOR, assigned_to=ASSIGNEE, due_date=NOW + timedelta(hours=5))
    stats = _sweep(NOW, notifier, session_factory)
    assert sorted(notifier.recipients()) == [ASSIGNEE, CREATOR]
    assert all("6 часов" in text for _, text, _ in notifier.sent)
    assert stats.sent == {"6h": 2}
    assert _ledger(session_factory) == [(task.id, ASSIGNEE, "6h"), (task.id, CREATOR, "6h")]


def test_window_sent_once_across_runs(session_factory, add_task, notifier) -> None:
    add_task(created_by=CREATOR, assigned_to=ASSIGNEE, due_date=NOW + timedelta(hours=5))
    _sweep(NOW, notifier, session_factory)
    assert len(notifier.sent) == 2

    restarted = type(notifier)()
    _sweep(NOW + timedelta(minutes=5), restarted, session_factory)
    _sweep(NOW + timedelta(minutes=30), restarted, session_factory)
    assert restarted.sent == []


def test_tighter_window_fires_later(session_factory, add_task, notifier) -> None:
    task = add_task(created_by=CREATOR, due_date=NOW + timedelta(hours=20))
    _sweep(NOW, notifier, session_factory)
    _sweep(NOW + timedelta(hours=15), notifier, session_factory)
    _sweep(NOW + timedelta(hours=19), notifier, session_factory)
    assert _ledger(session_factory) == [
        (task.id, CREATOR, "24h"),
        (task.id, CREATOR, "2h"),
        (task.id, CREATOR, "6h"),
    ]
    assert len(notifier.sent) == 3


def test_reminder_has_view_action(session_factory, add_task, notifier) -> None:
    task = add_task(created_by=CREATOR, due_date=NOW + timedelta(hours=1), title="Отчёт")
    _sweep(NOW, notifier, session_factory)
    (_, text, actions), = notifier.sent
    assert '"Отчёт"' in text
    assert "2 часа" in text
    assert [a.callback_data for a in actions] == [f"view_task_{task.card_id}"]


def test_task_without_due_date_never_notified(session_factory, add_task, notifier) -> None:
    add_task(created_by=CREATOR, assigned_to=ASSIGNEE, due_date=None)
    stats = _sweep(NOW, notifier, session_factory)
    assert notifier.sent == []
    assert stats.total_sent == 0


def test_done_tasks_are_skipped(session_factory, add_task, notifier) -> None:
    add_task(status="done", created_by=CREATOR, due_date=NOW + timedelta(hours=1))
    add_task(status="done", created_by=CREATOR, due_date=NOW - timedelta(days=1))
    _sweep(NOW, notifier, session_factory)
    assert notifier.sent == []


def test_creator_and_assignee_deduplicated(session_factory, add_task) -> None:
    task = add_task(created_by=CREATOR, assigned_to=CREATOR, due_date=NOW)
    with session_factory() as session:
        assert resolve_recipients(session, task) == [CREATOR]


def test_muted_recipient_excluded(session_factory, add_task, notifier) -> None:
    add_task(created_by=CREATOR, assigned_to=ASSIGNEE, due_date=NOW + timedelta(hours=3))
    with session_factory() as session:
        settings_repo.upsert_settings(session, ASSIGNEE, notifications_enabled=False)
    _sweep(NOW, notifier, session_factory)
    assert notifier.recipients() == [CREATOR]


def test_failed_recipient_does_not_block_others(session_factory, add_task, notifier) -> None:
    task = add_task(created_by=CREATOR, assigned_to=ASSIGNEE, due_date=NOW + timedelta(hours=5))
    other = add_task(created_by=CREATOR, due_date=NOW + timedelta(hours=4))
    notifier.failures[ASSIGNEE] = NotificationError("telegram timeout")
    stats = _sweep(NOW, notifier, session_factory)
    assert sorted(notifier.recipients()) == [CREATOR, CREATOR]
    assert stats.failed == 1
    assert _ledger(session_factory) == sorted([(task.id, CREATOR, "6h"), (other.id, CREATOR, "6h")])

    notifier.failures.clear()
    _sweep(NOW + timedelta(minutes=5), notifier, session_factory)
    assert notifier.recipients()[-1] == ASSIGNEE
    assert (task.id, ASSIGNEE, "6h") in _ledger(session_factory)


def test_unreachable_recipient_counted(session_factory, add_task, notifier) -> None:
    add_task(created_by=CREATOR, assigned_to=ASSIGNEE, due_date=NOW + timedelta(hours=5))
    notifier.failures[ASSIGNEE] = RecipientUnreachable("bot was blocked by the user")
    stats = _sweep(NOW, notifier, session_factory)
    assert stats.unreachable == 1
    assert notifier.recipients() == [CREATOR]


def test_overdue_notified_then_throttled(session_factory, add_task, notifier) -> None:
    task = add_task(created_by=CREATOR, assigned_to=ASSIGNEE, due_date=NOW - timedelta(days=2))
    _sweep(NOW, notifier, session_factory)
    assert sorted(notifier.recipients()) == [ASSIGNEE, CREATOR]
    assert _ledger(session_factory) == [(task.id, ASSIGNEE, "overdue"), (task.id, CREATOR, "overdue")]
    _, text, actions = notifier.sent[0]
    assert "Просрочено на 2 дн." in text
    assert f"status_{task.card_id}_done" in [a.callback_data for a in actions]

    _sweep(NOW + timedelta(hours=1), notifier, session_factory)
    assert len(notifier.sent) == 2


@pytest.mark.parametrize("gap_hours,expected", [(23, 0), (25, 2)])
def test_overdue_repeats_once_per_day(gap_hours, expected, session_factory, add_task, notifier) -> None:
    add_task(created_by=CREATOR, assigned_to=ASSIGNEE, due_date=NOW - timedelta(hours=3))
    _sweep(NOW, notifier, session_factory)
    first = len(notifier.sent)
    _sweep(NOW + timedelta(hours=gap_hours), notifier, session_factory)
    assert len(notifier.sent) - first == expected


def test_sweep_never_changes_status(session_factory, add_task, notifier) -> None:
    task = add_task(status="in_progress", created_by=CREATOR, due_date=NOW - timedelta(days=5))
    _sweep(NOW, notifier, session_factory)
    with session_factory() as session:
        assert tasks_repo.get_by_card_id(session, task.card_id).status == "in_progress"


def test_store_failure_at_start_aborts_run(notifier) -> None:
    def broken_factory():
        raise StoreError("database is locked")

    with pytest.raises(StoreError):
        _sweep(NOW, notifier, broken_factory)
    assert notifier.sent == []


def test_store_failure_on_one_task_does_not_stop_others(session_factory, add_task, notifier, monkeypatch) -> None:
    broken = add_task(created_by=CREATOR, due_date=NOW + timedelta(hours=1))
    healthy = add_task(created_by=300, due_date=NOW + timedelta(hours=1, minutes=30))
    late = add_task(created_by=400, due_date=NOW - timedelta(days=1))
    original = reminders_repo.sent_recipients

    def flaky(session, task_id, window):
        if task_id == broken.id:
            raise StoreError("disk I/O error")
        return original(session, task_id, window)

    monkeypatch.setattr(reminders_repo, "sent_recipients", flaky)
    stats = _sweep(NOW, notifier, session_factory)
    assert sorted(notifier.recipients()) == [300, 400]
    assert stats.failed == 1
    assert _ledger(session_factory) == sorted([(healthy.id, 300, "2h"), (late.id, 400, "overdue")])


def test_failed_overdue_send_retried_next_sweep(session_factory, add_task, notifier) -> None:
    task = add_task(created_by=CREATOR, assigned_to=ASSIGNEE, due_date=NOW - timedelta(days=1))
    notifier.failures[ASSIGNEE] = NotificationError("telegram timeout")
    stats = _sweep(NOW, notifier, session_factory)
    assert stats.failed == 1
    assert notifier.recipients() == [CREATOR]
    assert _ledger(session_factory) == [(task.id, CREATOR, "overdue")]

    notifier.failures.clear()
    _sweep(NOW + timedelta(minutes=5), notifier, session_factory)
    assert notifier.recipients() == [CREATOR, ASSIGNEE]
    assert _ledger(session_factory) == [(task.id, ASSIGNEE, "overdue"), (task.id, CREATOR, "overdue")]
