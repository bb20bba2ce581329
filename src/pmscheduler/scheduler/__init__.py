"""Automation scheduler — task registry, runtime state, and the engine."""

from pmscheduler.scheduler.clock import AlarmClock, SchedulerAlarmClock
from pmscheduler.scheduler.engine import SchedulerEngine
from pmscheduler.scheduler.errors import (
    ConfigurationError,
    SchedulerError,
    TaskExecutionFailure,
    UnknownTaskError,
)
from pmscheduler.scheduler.models import (
    Cadence,
    Phase,
    RunOutcome,
    SchedulerStatus,
    TaskDefinition,
    TaskOutcome,
    TaskResult,
    TaskStatus,
    TriggerSource,
)
from pmscheduler.scheduler.registry import TaskRegistry
from pmscheduler.scheduler.state import TaskRuntimeState

__all__ = [
    "AlarmClock",
    "Cadence",
    "ConfigurationError",
    "Phase",
    "RunOutcome",
    "SchedulerAlarmClock",
    "SchedulerEngine",
    "SchedulerError",
    "SchedulerStatus",
    "TaskDefinition",
    "TaskExecutionFailure",
    "TaskOutcome",
    "TaskRegistry",
    "TaskResult",
    "TaskRuntimeState",
    "TaskStatus",
    "TriggerSource",
    "UnknownTaskError",
]
