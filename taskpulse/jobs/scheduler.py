"""Named periodic jobs on top of asyncio.

Each job gets its own timer loop. A firing that lands while the previous run of
the same job is still going is skipped with a warning, so a job never overlaps
itself. Different jobs run independently of each other. Every run goes through
``_run``, which turns an exception into a failed ``JobResult`` and keeps the
loop alive.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta, tzinfo
from typing import Any, Awaitable, Callable, Iterable, Optional, Union
from zoneinfo import ZoneInfo

from loguru import logger

from taskpulse.config import settings
from taskpulse.core.clock import as_utc, utc_now


@dataclass(frozen=True, slots=True)
class Interval:
    every: timedelta

    def __post_init__(self) -> None:
        if self.every <= timedelta(0):
            raise ValueError("Interval must be positive")

    def next_after(self, moment: datetime, tz: tzinfo) -> datetime:
        return as_utc(moment) + self.every


@dataclass(frozen=True, slots=True)
class DailyAt:
    hour: int
    minute: int = 0

    def __post_init__(self) -> None:
        if not 0 <= self.hour <= 23 or not 0 <= self.minute <= 59:
            raise ValueError(f"Invalid time of day {self.hour}:{self.minute}")

    def next_after(self, moment: datetime, tz: tzinfo) -> datetime:
        local = as_utc(moment).astimezone(tz)
        at = time(self.hour, self.minute)
        candidate = datetime.combine(local.date(), at, tzinfo=tz)
        if candidate <= local:
            candidate = datetime.combine(local.date() + timedelta(days=1), at, tzinfo=tz)
        return as_utc(candidate)


Trigger = Union[Interval, DailyAt]
JobCallback = Callable[[], Awaitable[Any]]


@dataclass(frozen=True, slots=True)
class Job:
    name: str
    trigger: Trigger
    callback: JobCallback


@dataclass(frozen=True, slots=True)
class JobResult:
    name: str
    started_at: datetime
    finished_at: datetime
    ok: bool
    skipped: bool = False
    value: Any = None
    error: Optional[str] = None


@dataclass(slots=True)
class _JobState:
    job: Job
    loop_task: Optional[asyncio.Task] = None
    runs: set[asyncio.Task] = field(default_factory=set)
    last_fire: Optional[datetime] = None

    @property
    def running(self) -> bool:
        return self.loop_task is not None and not self.loop_task.done()


class JobScheduler:
    def __init__(
        self,
        jobs: Iterable[Job],
        *,
        tz: Optional[tzinfo] = None,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._jobs: dict[str, Job] = {}
        for job in jobs:
            if job.name in self._jobs:
                raise ValueError(f"Duplicate job name: {job.name}")
            self._jobs[job.name] = job
        self._tz = tz or ZoneInfo(settings.timezone)
        self._clock = clock
        self._sleep = sleep
        self._states: dict[str, _JobState] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._results: dict[str, JobResult] = {}

    @property
    def job_names(self) -> list[str]:
        return list(self._jobs)

    def start(self) -> None:
        for name in self._jobs:
            self._start_job(name)
        logger.info("scheduler started jobs={}", sorted(self._states))

    def stop(self) -> None:
        for name in list(self._states):
            self._stop_job(name)
        logger.info("scheduler stopped")

    def restart(self, name: str) -> bool:
        if name not in self._jobs:
            logger.warning("scheduler restart unknown job name={}", name)
            return False
        self._stop_job(name)
        self._start_job(name)
        logger.info("job restarted name={}", name)
        return True

    def status(self) -> dict[str, bool]:
        return {name: state.running for name, state in self._states.items()}

    def last_results(self) -> dict[str, JobResult]:
        return dict(self._results)

    async def run_now(self, name: str) -> Optional[JobResult]:
        job = self._jobs.get(name)
        if job is None:
            return None
        return await self._run(job)

    def _lock(self, name: str) -> asyncio.Lock:
        lock = self._locks.get(name)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[name] = lock
        return lock

    def _start_job(self, name: str) -> None:
        state = self._states.get(name)
        if state is not None and state.running:
            return
        state = _JobState(job=self._jobs[name])
        state.loop_task = asyncio.get_running_loop().create_task(self._loop(state), name=f"job:{name}")
        self._states[name] = state

    def _stop_job(self, name: str) -> None:
        state = self._states.pop(name, None)
        if state is None:
            return
        # In-flight runs are left to finish; the per-job lock keeps a new loop from overlapping them.
        if state.loop_task is not None:
            state.loop_task.cancel()

    async def _loop(self, state: _JobState) -> None:
        job = state.job
        while True:
            now = self._clock()
            base = now if state.last_fire is None else max(now, state.last_fire)
            fire_at = job.trigger.next_after(base, self._tz)
            delay = (fire_at - as_utc(now)).total_seconds()
            logger.debug("job scheduled name={} fire_at={} delay={}s", job.name, fire_at.isoformat(), round(delay, 3))
            if delay > 0:
                await self._sleep(delay)
            state.last_fire = fire_at
            run = asyncio.get_running_loop().create_task(self._run(job), name=f"job-run:{job.name}")
            state.runs.add(run)
            run.add_done_callback(state.runs.discard)

    async def _run(self, job: Job) -> JobResult:
        lock = self._lock(job.name)
        if lock.locked():
            now = self._clock()
            logger.warning("job skipped name={} reason=previous run still active", job.name)
            result = JobResult(name=job.name, started_at=now, finished_at=now, ok=True, skipped=True)
            self._results[job.name] = result
            return result

        async with lock:
            started = self._clock()
            logger.info("job start name={}", job.name)
            try:
                value = await job.callback()
            except Exception as exc:
                logger.exception("job failed name={}", job.name)
                result = JobResult(
                    name=job.name,
                    started_at=started,
                    finished_at=self._clock(),
                    ok=False,
                    error=f"{type(exc).__name__}: {str(exc)[:300]}",
                )
            else:
                result = JobResult(name=job.name, started_at=started, finished_at=self._clock(), ok=True, value=value)
                logger.info("job done name={} result={}", job.name, value)
            self._results[job.name] = result
            return result
