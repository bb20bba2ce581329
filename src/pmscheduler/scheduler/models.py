"""Scheduler data model — cadences, task definitions, results, status snapshots."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from functools import cached_property
from typing import Any

from apscheduler.triggers.cron import CronTrigger

from pmscheduler.scheduler.errors import ConfigurationError


_CRON_WEEKDAYS = ("sun", "mon", "tue", "wed", "thu", "fri", "sat", "sun")


def _cron_day_of_week(field: str) -> str:
    """Translate a crontab day-of-week field (0 or 7 = Sunday) to weekday names.

    APScheduler numbers weekdays from Monday = 0, so numeric values are
    expanded into explicit names. Named fields pass through unchanged.
    """
    parts = [part.partition("/") for part in field.split(",")]
    if not any(
        any(ch.isdigit() for ch in base) or (base == "*" and step_text)
        for base, _, step_text in parts
    ):
        return field

    days: list[str] = []
    for base, _, step_text in parts:
        step = int(step_text) if step_text else 1
        if base == "*":
            start, end = 0, 6
        elif "-" in base:
            start_text, end_text = base.split("-", 1)
            start, end = int(start_text), int(end_text)
        else:
            start = int(base)
            end = 7 if step_text else start
        if not (0 <= start <= 7 and 0 <= end <= 7 and start <= end):
            msg = f"Invalid day-of-week field: {field!r}"
            raise ValueError(msg)
        for day in range(start, end + 1, step):
            name = _CRON_WEEKDAYS[day]
            if name not in days:
                days.append(name)
    return ",".join(days)


def _crontab_trigger(expression: str, timezone: str) -> CronTrigger:
    """Build a CronTrigger from a standard 5-field crontab expression."""
    values = expression.split()
    if len(values) != 5:
        msg = f"Wrong number of fields; got {len(values)}, expected 5"
        raise ValueError(msg)
    minute, hour, day, month, day_of_week = values
    return CronTrigger(
        minute=minute,
        hour=hour,
        day=day,
        month=month,
        day_of_week=_cron_day_of_week(day_of_week),
        timezone=timezone,
    )


class Phase(StrEnum):
    STOPPED = "stopped"
    RUNNING = "running"


class TaskOutcome(StrEnum):
    SUCCESS = "success"
    FAILURE = "failure"
    NEVER_RUN = "never-run"


class TriggerSource(StrEnum):
    CADENCE = "cadence"
    MANUAL = "manual"


class RunOutcome(StrEnum):
    """What happened to a trigger: a new run began, or it was dropped."""

    STARTED = "started"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class TaskResult:
    """Result returned by a task callback.

    Attributes:
        ok: ``True`` for success, ``False`` for failure.
        detail: Optional diagnostic text (summary on success, reason on failure).
    """

    ok: bool
    detail: str | None = None

    @classmethod
    def success(cls, detail: str | None = None) -> TaskResult:
        return cls(ok=True, detail=detail)

    @classmethod
    def failure(cls, detail: str) -> TaskResult:
        return cls(ok=False, detail=detail)


TaskCallback = Callable[[], Awaitable[TaskResult | None]]


@dataclass(frozen=True)
class Cadence:
    """When a task fires automatically: a fixed interval or a crontab expression.

    Exactly one of *interval* and *cron* must be given. Cron expressions are
    evaluated in *timezone*; all datetimes handed in and out are timezone-aware.
    """

    interval: timedelta | None = None
    cron: str | None = None
    timezone: str = "UTC"

    def __post_init__(self) -> None:
        if (self.interval is None) == (self.cron is None):
            msg = "Cadence needs exactly one of interval or cron"
            raise ConfigurationError(msg)
        if self.interval is not None and self.interval <= timedelta(0):
            msg = f"Cadence interval must be positive, got {self.interval}"
            raise ConfigurationError(msg)
        if self.cron is not None:
            # Parse eagerly so a bad expression fails at registration time.
            _ = self._trigger

    @classmethod
    def every(cls, **kwargs: float) -> Cadence:
        """Fixed interval cadence, e.g. ``Cadence.every(hours=1)``."""
        return cls(interval=timedelta(**kwargs))

    @classmethod
    def crontab(cls, expression: str, timezone: str = "UTC") -> Cadence:
        """Cron cadence from a standard 5-field crontab expression."""
        return cls(cron=expression, timezone=timezone)

    @cached_property
    def _trigger(self) -> CronTrigger:
        try:
            return _crontab_trigger(self.cron, self.timezone)
        except (ValueError, KeyError) as exc:
            msg = f"Invalid cron cadence {self.cron!r} ({self.timezone}): {exc}"
            raise ConfigurationError(msg) from exc

    def next_fire(self, after: datetime) -> datetime | None:
        """Return the first fire time strictly after *after* (UTC), or None."""
        if self.interval is not None:
            return after + self.interval
        fire = self._trigger.get_next_fire_time(after, after)
        return fire.astimezone(UTC) if fire is not None else None

    def to_dict(self) -> dict[str, Any]:
        if self.interval is not None:
            return {"type": "interval", "seconds": self.interval.total_seconds()}
        return {"type": "cron", "expression": self.cron, "timezone": self.timezone}

    def __str__(self) -> str:
        if self.interval is not None:
            return f"every {self.interval}"
        return f"cron '{self.cron}' ({self.timezone})"


@dataclass(frozen=True)
class TaskDefinition:
    """A compiled-in automation task.

    Attributes:
        id: Unique, stable identifier (e.g. ``"daily-overdue-check"``).
        cadence: When the task fires automatically.
        callback: No-argument coroutine function doing the work.
        name: Human-readable label (defaults to the id).
        enabled: Disabled tasks are never armed but can still be run manually.
    """

    id: str
    cadence: Cadence
    callback: TaskCallback = field(repr=False)
    name: str = ""
    enabled: bool = True

    def __post_init__(self) -> None:
        if not isinstance(self.id, str) or not self.id.strip():
            msg = f"Task id must be a non-empty string, got {self.id!r}"
            raise ConfigurationError(msg)
        if not isinstance(self.cadence, Cadence):
            msg = f"Task '{self.id}' has no valid cadence"
            raise ConfigurationError(msg)
        if not callable(self.callback):
            msg = f"Task '{self.id}' callback is not callable"
            raise ConfigurationError(msg)
        if not self.name:
            object.__setattr__(self, "name", self.id)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


@dataclass(frozen=True)
class TaskStatus:
    """Point-in-time copy of one task's runtime state plus its definition."""

    id: str
    name: str
    cadence: Cadence
    enabled: bool
    is_running: bool
    last_run_started_at: datetime | None
    last_run_finished_at: datetime | None
    last_run_outcome: TaskOutcome
    last_error: str | None
    last_detail: str | None
    next_fire_at: datetime | None
    last_trigger: TriggerSource | None
    run_count: int
    skip_count: int
    last_skipped_at: datetime | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "cadence": self.cadence.to_dict(),
            "enabled": self.enabled,
            "is_running": self.is_running,
            "last_run_started_at": _iso(self.last_run_started_at),
            "last_run_finished_at": _iso(self.last_run_finished_at),
            "last_run_outcome": self.last_run_outcome.value,
            "last_error": self.last_error,
            "last_detail": self.last_detail,
            "next_fire_at": _iso(self.next_fire_at),
            "last_trigger": self.last_trigger.value if self.last_trigger else None,
            "run_count": self.run_count,
            "skip_count": self.skip_count,
            "last_skipped_at": _iso(self.last_skipped_at),
        }


@dataclass(frozen=True)
class SchedulerStatus:
    phase: Phase
    tasks: tuple[TaskStatus, ...]

    def task(self, task_id: str) -> TaskStatus:
        """Return the status entry for *task_id* (KeyError if absent)."""
        for status in self.tasks:
            if status.id == task_id:
                return status
        raise KeyError(task_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "phase": self.phase.value,
            "tasks": [status.to_dict() for status in self.tasks],
        }
