"""Per-task runtime bookkeeping, mutated only by the scheduler engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

from pmscheduler.scheduler.models import (
    TaskOutcome,
    TaskResult,
    TaskStatus,
    TriggerSource,
)

if TYPE_CHECKING:
    from pmscheduler.scheduler.clock import Alarm
    from pmscheduler.scheduler.models import TaskDefinition


@dataclass
class TaskRuntimeState:
    """Mutable runtime record for one task.

    ``is_running`` implies ``last_run_started_at`` is set and not older than
    ``last_run_finished_at``. The engine is the only writer; everything else
    reads :class:`TaskStatus` snapshots.
    """

    task_id: str
    is_running: bool = False
    last_run_started_at: datetime | None = None
    last_run_finished_at: datetime | None = None
    last_run_outcome: TaskOutcome = TaskOutcome.NEVER_RUN
    last_error: str | None = None
    last_detail: str | None = None
    next_fire_at: datetime | None = None
    timer_handle: Alarm | None = field(default=None, repr=False)
    last_trigger: TriggerSource | None = None
    run_count: int = 0
    skip_count: int = 0
    last_skipped_at: datetime | None = None

    def try_begin(self, now: datetime, source: TriggerSource) -> bool:
        """Test-and-set the running flag.

        Returns False (and records a skip) when a run is already in flight.
        """
        if self.is_running:
            self.skip_count += 1
            self.last_skipped_at = now
            return False
        self.is_running = True
        self.last_run_started_at = now
        self.last_trigger = source
        self.run_count += 1
        return True

    def finish(self, now: datetime, result: TaskResult) -> None:
        """Record the end of the in-flight run."""
        self.is_running = False
        self.last_run_finished_at = now
        self.last_detail = result.detail
        if result.ok:
            self.last_run_outcome = TaskOutcome.SUCCESS
            self.last_error = None
        else:
            self.last_run_outcome = TaskOutcome.FAILURE
            self.last_error = result.detail or "Task reported failure"

    def disarm(self) -> None:
        """Cancel the pending alarm, if any, and clear the next fire time."""
        if self.timer_handle is not None:
            self.timer_handle.cancel()
            self.timer_handle = None
        self.next_fire_at = None

    def snapshot(self, definition: TaskDefinition) -> TaskStatus:
        return TaskStatus(
            id=definition.id,
            name=definition.name,
            cadence=definition.cadence,
            enabled=definition.enabled,
            is_running=self.is_running,
            last_run_started_at=self.last_run_started_at,
            last_run_finished_at=self.last_run_finished_at,
            last_run_outcome=self.last_run_outcome,
            last_error=self.last_error,
            last_detail=self.last_detail,
            next_fire_at=self.next_fire_at,
            last_trigger=self.last_trigger,
            run_count=self.run_count,
            skip_count=self.skip_count,
            last_skipped_at=self.last_skipped_at,
        )
