from __future__ import annotations

from datetime import datetime, tzinfo
from typing import Sequence

from taskpulse.core.clock import as_utc, format_local
from taskpulse.db.models import STATUS_IN_PROGRESS, STATUS_IN_REVIEW, Task
from taskpulse.db.repositories.tasks_repo import DayStats
from taskpulse.notify.telegram_notifier import Action

BTN_VIEW_TASK = "👁 Открыть задачу"
BTN_MOVE_TO_DONE = "✅ Выполнено"
BTN_MY_TASKS = "📋 Мои задачи"
BTN_STATS = "📊 Статистика"

_WINDOW_TEXT = {
    "24h": "⏰ До дедлайна осталось 24 часа!",
    "6h": "⏰ До дедлайна осталось 6 часов!",
    "2h": "⏰ До дедлайна осталось 2 часа!",
}

_STATUS_EMOJI = {
    STATUS_IN_PROGRESS: "⚡",
    STATUS_IN_REVIEW: "👀",
}

_PRIORITY_EMOJI = {
    "low": "🟢",
    "medium": "🟡",
    "high": "🟠",
    "critical": "🔴",
}

_DESCRIPTION_PREVIEW = 100


def _view_action(task: Task) -> Action:
    return Action(BTN_VIEW_TASK, f"view_task_{task.card_id}")


def _excess_line(total: int, cap: int, prefix: str = "   ") -> list[str]:
    if total <= cap:
        return []
    return [f"{prefix}… и ещё {total - cap} задач"]


def window_reminder(task: Task, label: str, tz: tzinfo) -> tuple[str, list[Action]]:
    lines = ["🔔 Напоминание о задаче", "", f'📋 "{task.title}"', _WINDOW_TEXT.get(label, f"⏰ Окно {label}")]
    if task.description:
        lines.append("")
        lines.append(f"📝 {task.description[:_DESCRIPTION_PREVIEW]}")
    if task.due_date is not None:
        lines.append(f"📅 {format_local(task.due_date, tz)}")
    return "\n".join(lines), [_view_action(task)]


def overdue_reminder(task: Task, now: datetime, tz: tzinfo) -> tuple[str, list[Action]]:
    lines = ["🔴 ВНИМАНИЕ!", "", f'🔴 "{task.title}"', "❌ Срок выполнения истёк!"]
    if task.due_date is not None:
        days = (as_utc(now) - as_utc(task.due_date)).days
        lines.append("")
        lines.append(f"⏰ Просрочено на {days} дн. (срок: {format_local(task.due_date, tz)})")
    actions = [_view_action(task), Action(BTN_MOVE_TO_DONE, f"status_{task.card_id}_done")]
    return "\n".join(lines), actions


def morning_digest(
    today: Sequence[Task],
    overdue: Sequence[Task],
    *,
    now: datetime,
    tz: tzinfo,
    cap: int,
) -> tuple[str, list[Action]]:
    lines = ["☀️ Доброе утро! Ваши задачи на сегодня:", ""]
    if today:
        lines.append(f"📋 Задач на сегодня: {len(today)}")
        lines.append("")
        for task in today[:cap]:
            lines.append(f"{_STATUS_EMOJI.get(task.status, '📋')} {task.title}")
            if task.due_date is not None:
                lines.append(f"   ⏰ {format_local(task.due_date, tz, '%H:%M')}")
        lines.extend(_excess_line(len(today), cap))
    else:
        lines.append("✅ На сегодня задач нет")

    if overdue:
        lines.append("")
        lines.append(f"🔴 Просрочено: {len(overdue)}")
        if len(overdue) <= cap:
            for task in overdue:
                days = (as_utc(now) - as_utc(task.due_date)).days if task.due_date is not None else 0
                lines.append(f"🔴 {task.title} ({days} дн.)")

    actions = [Action(BTN_MY_TASKS, "my_tasks"), Action(BTN_STATS, "stats")]
    return "\n".join(lines), actions


def evening_digest(
    completed: Sequence[Task],
    tomorrow: Sequence[Task],
    stats: DayStats,
    *,
    cap: int,
) -> str:
    lines = ["🌙 Добрый вечер! Итоги дня:", ""]
    if completed:
        lines.append(f"✅ Выполнено сегодня: {len(completed)}")
        lines.append("")

    if tomorrow:
        lines.append("📅 Задачи на завтра:")
        for task in tomorrow[:cap]:
            emoji = _PRIORITY_EMOJI.get(task.priority, "")
            lines.append(f"• {task.title} {emoji}".rstrip())
        lines.extend(_excess_line(len(tomorrow), cap, prefix="• "))
    else:
        lines.append("✨ На завтра задач пока нет")

    lines.append("")
    lines.append("📊 Итоги дня:")
    lines.append(f"• Выполнено: {stats.completed}")
    lines.append(f"• В работе: {stats.in_progress}")
    if stats.overdue > 0:
        lines.append(f"• Просрочено: {stats.overdue}")
    return "\n".join(lines)
