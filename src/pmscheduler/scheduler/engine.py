"""SchedulerEngine — lifecycle, per-task alarms, and exclusive task execution."""

from __future__ import annotations

import asyncio
import functools
import logging
from typing import TYPE_CHECKING

from pmscheduler.scheduler.clock import SchedulerAlarmClock
from pmscheduler.scheduler.errors import TaskExecutionFailure
from pmscheduler.scheduler.models import (
    Phase,
    RunOutcome,
    SchedulerStatus,
    TaskResult,
    TriggerSource,
)
from pmscheduler.scheduler.state import TaskRuntimeState

if TYPE_CHECKING:
    from datetime import datetime

    from pmscheduler.scheduler.clock import AlarmClock
    from pmscheduler.scheduler.models import TaskDefinition
    from pmscheduler.scheduler.registry import TaskRegistry

logger = logging.getLogger(__name__)


class SchedulerEngine:
    """Drives the registered PM tasks on their cadences.

    One alarm is armed per enabled task while the engine is running. Every
    trigger, automatic or manual, goes through the same test-and-set on the
    task's runtime state: if the task is already running the trigger is
    skipped, never queued. Task bodies run as separate asyncio tasks, so
    ``start``, ``stop``, ``run_task`` and ``get_status`` never wait on them.

    There is no timeout for a callback that never returns; such a task stays
    ``is_running`` and every later trigger for it is skipped.

    Args:
        registry: The static task catalog.
        clock: Time source and alarm capability (defaults to APScheduler).
    """

    def __init__(self, registry: TaskRegistry, clock: AlarmClock | None = None) -> None:
        self._registry = registry
        self._clock = clock or SchedulerAlarmClock()
        self._phase = Phase.STOPPED
        self._states: dict[str, TaskRuntimeState] = {}
        # Bumped on every start/stop; alarms from an older period are ignored.
        self._generation = 0
        self._inflight: set[asyncio.Task[None]] = set()

    @property
    def phase(self) -> Phase:
        return self._phase

    @property
    def running(self) -> bool:
        return self._phase is Phase.RUNNING

    @property
    def registry(self) -> TaskRegistry:
        return self._registry

    # -- Lifecycle -------------------------------------------------------------

    def start(self) -> None:
        """Arm an alarm for every enabled task. No-op when already running."""
        if self._phase is Phase.RUNNING:
            logger.info("Scheduler already running")
            return

        self._generation += 1
        now = self._clock.now()
        armed = 0
        for definition in self._registry:
            state = self._state(definition.id)
            state.disarm()
            if not definition.enabled:
                logger.info("Task disabled, not scheduling: %s", definition.id)
                continue
            if self._arm(definition, definition.cadence.next_fire(now)):
                armed += 1
                logger.info(
                    "Scheduled task: %s (%s) next=%s",
                    definition.name,
                    definition.cadence,
                    state.next_fire_at.isoformat(),
                )

        self._phase = Phase.RUNNING
        logger.info("Scheduler started with %d task(s)", armed)

    def stop(self) -> None:
        """Cancel all alarms. In-flight runs are left to finish."""
        if self._phase is Phase.STOPPED:
            logger.info("Scheduler not running")
            return

        self._generation += 1
        for state in self._states.values():
            state.disarm()
        self._phase = Phase.STOPPED
        in_flight = [s.task_id for s in self._states.values() if s.is_running]
        if in_flight:
            logger.info("Scheduler stopped (still finishing: %s)", ", ".join(in_flight))
        else:
            logger.info("Scheduler stopped")

    async def join(self) -> None:
        """Wait until no task run is in flight.

        Cancelling the wait (e.g. a ``wait_for`` timeout) leaves the runs
        themselves untouched.
        """
        while self._inflight:
            await asyncio.wait(set(self._inflight))

    async def shutdown(self, wait: bool = True) -> None:
        """Stop the scheduler, optionally wait for in-flight runs, release the clock."""
        self.stop()
        if wait:
            await self.join()
        self._clock.shutdown()

    # -- Control ---------------------------------------------------------------

    def run_task(self, task_id: str) -> RunOutcome:
        """Trigger *task_id* now, in either phase.

        Raises :class:`UnknownTaskError` for an unregistered id. The automatic
        alarm for the task is left untouched.
        """
        definition = self._registry.get(task_id)
        logger.info("Manual run requested: %s (%s)", definition.name, task_id)
        return self._trigger(definition, TriggerSource.MANUAL)

    def get_status(self) -> SchedulerStatus:
        """Snapshot of every task's runtime state. Never waits on running tasks."""
        tasks = []
        for definition in self._registry:
            state = self._states.get(definition.id) or TaskRuntimeState(definition.id)
            tasks.append(state.snapshot(definition))
        return SchedulerStatus(phase=self._phase, tasks=tuple(tasks))

    # -- Internal --------------------------------------------------------------

    def _state(self, task_id: str) -> TaskRuntimeState:
        state = self._states.get(task_id)
        if state is None:
            state = self._states[task_id] = TaskRuntimeState(task_id)
        return state

    def _arm(self, definition: TaskDefinition, fire_at: datetime | None) -> bool:
        """Set the task's single alarm at *fire_at*. Returns False if nothing was armed."""
        state = self._state(definition.id)
        state.disarm()

        now = self._clock.now()
        missed = 0
        while fire_at is not None and fire_at < now:
            fire_at = definition.cadence.next_fire(fire_at)
            missed += 1
        if missed:
            logger.warning("Task '%s' missed %d slot(s); coalesced", definition.id, missed)
        if fire_at is None:
            logger.warning("Task '%s' has no future fire time", definition.id)
            return False

        callback = functools.partial(self._on_alarm, definition.id, fire_at, self._generation)
        state.timer_handle = self._clock.call_at(fire_at, callback)
        state.next_fire_at = fire_at
        return True

    def _on_alarm(self, task_id: str, fire_at: datetime, generation: int) -> None:
        """Alarm callback: trigger the task, then re-arm from the fire time."""
        if generation != self._generation or self._phase is not Phase.RUNNING:
            logger.debug("Ignoring stale alarm for %s", task_id)
            return

        definition = self._registry.get(task_id)
        self._state(task_id).timer_handle = None
        self._trigger(definition, TriggerSource.CADENCE)
        self._arm(definition, definition.cadence.next_fire(fire_at))

    def _trigger(self, definition: TaskDefinition, source: TriggerSource) -> RunOutcome:
        loop = asyncio.get_running_loop()
        state = self._state(definition.id)

        # No await between the check and the set: atomic on the loop thread.
        if not state.try_begin(self._clock.now(), source):
            logger.info(
                "Skipping %s trigger for '%s': previous run still in progress",
                source,
                definition.id,
            )
            return RunOutcome.SKIPPED

        logger.info("Running task: %s (%s, trigger=%s)", definition.name, definition.id, source)
        task = loop.create_task(
            self._execute(definition, state), name=f"pm-task:{definition.id}"
        )
        self._inflight.add(task)
        task.add_done_callback(
            functools.partial(self._on_run_done, definition, state, state.run_count)
        )
        return RunOutcome.STARTED

    def _on_run_done(
        self,
        definition: TaskDefinition,
        state: TaskRuntimeState,
        run_number: int,
        task: asyncio.Task[None],
    ) -> None:
        self._inflight.discard(task)
        # Cancelled before its first step: _execute never reached its finally.
        if task.cancelled() and state.is_running and state.run_count == run_number:
            state.finish(self._clock.now(), TaskResult.failure("Task run was cancelled"))
            logger.warning(
                "Task run cancelled before it started: '%s' (%s)",
                definition.name,
                definition.id,
            )

    async def _execute(self, definition: TaskDefinition, state: TaskRuntimeState) -> None:
        result = TaskResult.failure("Task run was cancelled")
        try:
            result = _coerce_result(await definition.callback())
        except TaskExecutionFailure as exc:
            logger.warning("Task failed: '%s' (%s): %s", definition.name, definition.id, exc)
            result = TaskResult.failure(str(exc) or "Task execution failed")
        except Exception as exc:
            logger.exception("Task execution failed: '%s' (%s)", definition.name, definition.id)
            result = TaskResult.failure(f"Unhandled {type(exc).__name__}: {exc}")
        finally:
            state.finish(self._clock.now(), result)

        if result.ok:
            logger.info(
                "Completed task: '%s' (%s) %s",
                definition.name,
                definition.id,
                result.detail or "",
            )
        else:
            logger.warning(
                "Task reported failure: '%s' (%s): %s",
                definition.name,
                definition.id,
                state.last_error,
            )


def _coerce_result(value: object) -> TaskResult:
    """Normalise a callback's return value; ``None`` counts as success."""
    if value is None:
        return TaskResult.success()
    if isinstance(value, TaskResult):
        return value
    return TaskResult.failure(f"Task returned unexpected result: {type(value).__name__}")
