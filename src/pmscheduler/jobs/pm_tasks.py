"""Built-in PM automation tasks and the default task registry."""

from __future__ import annotations

import logging
import zoneinfo
from collections import defaultdict
from collections.abc import Callable, Iterable
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from pmscheduler.scheduler.errors import ConfigurationError
from pmscheduler.scheduler.models import Cadence, TaskDefinition, TaskResult
from pmscheduler.scheduler.registry import TaskRegistry

if TYPE_CHECKING:
    from pmscheduler.jobs.store import PMStore

logger = logging.getLogger(__name__)

UNHEALTHY_THRESHOLD = 50
PLANNING_REMINDER_LIMIT = 100
MEETING_LOOKAHEAD = timedelta(hours=1)
REVIEW_WINDOW = timedelta(days=7)


def _utc_now() -> datetime:
    return datetime.now(UTC)


class PMAutomation:
    """Bodies of the PM automation tasks.

    Each method is a no-argument coroutine returning a :class:`TaskResult`
    with a one-line summary; database errors propagate and are recorded by
    the scheduler as failures.

    Args:
        store: Product database access.
        timezone: IANA timezone that defines "today" for the users.
        now: Time source (the scheduler's clock in production).
    """

    def __init__(
        self,
        store: PMStore,
        timezone: str = "UTC",
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._timezone = timezone
        try:
            self._tz = zoneinfo.ZoneInfo(timezone)
        except (zoneinfo.ZoneInfoNotFoundError, ValueError) as exc:
            msg = f"Unknown scheduler timezone: {timezone}"
            raise ConfigurationError(msg) from exc
        self._now = now or _utc_now

    def _start_of_today(self) -> datetime:
        local = self._now().astimezone(self._tz)
        midnight = local.replace(hour=0, minute=0, second=0, microsecond=0)
        return midnight.astimezone(UTC)

    # -- Task bodies -----------------------------------------------------------

    async def check_overdue_actions(self) -> TaskResult:
        """Find active actions scheduled before today, grouped by owner."""
        overdue = await self._store.list_overdue_actions(self._start_of_today())
        if not overdue:
            logger.info("No overdue actions found")
            return TaskResult.success("No overdue actions")

        by_user: dict[str, int] = defaultdict(int)
        for action in overdue:
            by_user[action.created_by_id] += 1
        for user_id, count in by_user.items():
            logger.info("User %s has %d overdue action(s)", user_id, count)
        return TaskResult.success(
            f"{len(overdue)} overdue action(s) across {len(by_user)} user(s)"
        )

    async def send_daily_planning_reminder(self) -> TaskResult:
        """Find users who have not planned today yet."""
        today = self._now().astimezone(self._tz).date()
        users = await self._store.list_users_without_plan(
            today, limit=PLANNING_REMINDER_LIMIT
        )
        logger.info("%d user(s) need a daily planning reminder", len(users))
        return TaskResult.success(f"{len(users)} user(s) need a daily planning reminder")

    async def prepare_weekly_review(self) -> TaskResult:
        now = self._now()
        week_start = now - REVIEW_WINDOW
        completed = await self._store.count_completed_actions(week_start, now)
        updated = await self._store.count_updated_projects(week_start, now)
        summary = f"{completed} action(s) completed, {updated} project(s) updated"
        logger.info("Weekly summary: %s", summary)
        return TaskResult.success(summary)

    async def check_project_health(self) -> TaskResult:
        projects = await self._store.list_active_projects()
        unhealthy = [p for p in projects if p.effective_score < UNHEALTHY_THRESHOLD]
        if not unhealthy:
            logger.info("All projects healthy")
            return TaskResult.success("All projects healthy")

        logger.info("%d project(s) need attention:", len(unhealthy))
        for project in unhealthy:
            logger.info("  - %s (health: %s)", project.name, project.health_score)
        names = ", ".join(p.name for p in unhealthy)
        return TaskResult.success(f"{len(unhealthy)} project(s) need attention: {names}")

    async def check_upcoming_meetings(self) -> TaskResult:
        now = self._now()
        meetings = await self._store.list_meetings_between(now, now + MEETING_LOOKAHEAD)
        if meetings:
            logger.info("%d meeting(s) in the next hour", len(meetings))
        return TaskResult.success(f"{len(meetings)} meeting(s) in the next hour")

    # -- Registration ----------------------------------------------------------

    def definitions(self, disabled: Iterable[str] = ()) -> list[TaskDefinition]:
        """The default PM task set, cron cadences in the configured timezone."""
        disabled = set(disabled)
        entries = [
            (
                "daily-overdue-check",
                "Daily Overdue Actions Check",
                "0 9 * * *",
                self.check_overdue_actions,
            ),
            (
                "daily-planning-reminder",
                "Daily Planning Reminder",
                "0 8 * * 1-5",
                self.send_daily_planning_reminder,
            ),
            (
                "weekly-review-prep",
                "Weekly Review Preparation",
                "0 14 * * 5",
                self.prepare_weekly_review,
            ),
            (
                "project-health-check",
                "Project Health Check",
                "0 10 * * 1",
                self.check_project_health,
            ),
            (
                "meeting-prep-reminder",
                "Meeting Preparation Reminder",
                "*/30 * * * *",
                self.check_upcoming_meetings,
            ),
        ]
        return [
            TaskDefinition(
                id=task_id,
                name=name,
                cadence=Cadence.crontab(cron, timezone=self._timezone),
                callback=callback,
                enabled=task_id not in disabled,
            )
            for task_id, name, cron, callback in entries
        ]


def build_default_registry(
    automation: PMAutomation, disabled: Iterable[str] = ()
) -> TaskRegistry:
    """Build the registry of built-in PM tasks."""
    disabled = set(disabled)
    registry = TaskRegistry(automation.definitions(disabled))
    unknown = disabled - set(registry.ids)
    if unknown:
        logger.warning("Ignoring unknown disabled task id(s): %s", ", ".join(sorted(unknown)))
    return registry
