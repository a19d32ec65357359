from __future__ import annotations

import asyncio
from datetime import timedelta

from taskpulse.config import settings
from taskpulse.db.session import SessionFactory, get_session
from taskpulse.jobs.cleanup import run_cleanup
from taskpulse.jobs.digest import DIGEST_EVENING, DIGEST_MORNING, run_digest
from taskpulse.jobs.reminders import run_sweep
from taskpulse.jobs.scheduler import DailyAt, Interval, Job
from taskpulse.notify.telegram_notifier import Notifier

JOB_REMINDERS = "reminders"
JOB_MORNING_DIGEST = "morning_digest"
JOB_EVENING_DIGEST = "evening_digest"
JOB_CLEANUP = "cleanup"


def build_jobs(notifier: Notifier, *, session_factory: SessionFactory = get_session) -> list[Job]:
    async def reminders():
        return await run_sweep(notifier=notifier, session_factory=session_factory)

    async def morning_digest():
        return await run_digest(DIGEST_MORNING, notifier=notifier, session_factory=session_factory)

    async def evening_digest():
        return await run_digest(DIGEST_EVENING, notifier=notifier, session_factory=session_factory)

    async def cleanup():
        return await asyncio.to_thread(run_cleanup, session_factory=session_factory)

    return [
        Job(JOB_REMINDERS, Interval(timedelta(minutes=max(1, settings.reminders_interval_min))), reminders),
        Job(JOB_MORNING_DIGEST, DailyAt(settings.digest_morning_hour), morning_digest),
        Job(JOB_EVENING_DIGEST, DailyAt(settings.digest_evening_hour), evening_digest),
        Job(JOB_CLEANUP, DailyAt(settings.cleanup_hour), cleanup),
    ]
