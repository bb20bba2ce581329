"""Alarm clock abstraction — wall-clock time plus one-shot cancellable alarms.

The engine never sleeps or arms timers itself; it asks an :class:`AlarmClock`
for the current time and to call it back at a given instant. Production uses
:class:`SchedulerAlarmClock`, one APScheduler date job per alarm; tests
substitute a manual clock so time can be advanced deterministically.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Protocol

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger

if TYPE_CHECKING:
    from apscheduler.job import Job

logger = logging.getLogger(__name__)


class Alarm(Protocol):
    """Handle for a pending alarm."""

    def cancel(self) -> None: ...


class AlarmClock(Protocol):
    def now(self) -> datetime:
        """Current time as a timezone-aware datetime."""
        ...

    def call_at(self, when: datetime, callback: Callable[[], None]) -> Alarm:
        """Invoke *callback* (on the event loop thread) at *when*."""
        ...

    def shutdown(self) -> None:
        """Release the timer machinery. Pending alarms are dropped."""
        ...


async def _fire(callback: Callable[[], None]) -> None:
    # A coroutine job runs on the event loop; a plain function would be
    # handed to a worker thread by the asyncio executor.
    callback()


class SchedulerAlarm:
    """A one-shot APScheduler job standing in for an alarm."""

    def __init__(self, job: Job) -> None:
        self._job = job

    @property
    def job_id(self) -> str:
        return self._job.id

    def cancel(self) -> None:
        try:
            self._job.remove()
        except JobLookupError:
            logger.debug("Alarm job %s already fired or removed", self._job.id)


class SchedulerAlarmClock:
    """Alarm clock backed by an APScheduler ``AsyncIOScheduler``.

    The scheduler is started lazily on the first alarm, from inside the
    running event loop, and stopped by :meth:`shutdown`.

    Args:
        scheduler: Scheduler to add jobs to (a fresh UTC one by default).
    """

    def __init__(self, scheduler: AsyncIOScheduler | None = None) -> None:
        self._scheduler = scheduler or AsyncIOScheduler(timezone="UTC")

    @property
    def scheduler(self) -> AsyncIOScheduler:
        return self._scheduler

    def now(self) -> datetime:
        return datetime.now(UTC)

    def call_at(self, when: datetime, callback: Callable[[], None]) -> SchedulerAlarm:
        if not self._scheduler.running:
            self._scheduler.start()
            logger.info("Alarm scheduler started")
        job = self._scheduler.add_job(
            _fire,
            trigger=DateTrigger(run_date=when, timezone="UTC"),
            args=[callback],
            misfire_grace_time=None,
        )
        return SchedulerAlarm(job)

    def shutdown(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Alarm scheduler stopped")
