"""Scheduler exception hierarchy."""

from __future__ import annotations


class SchedulerError(Exception):
    """Base class for scheduler errors."""


class ConfigurationError(SchedulerError, ValueError):
    """Task registration is malformed (duplicate id, bad cadence).

    Raised while the registry is being built, before the scheduler can start.
    """


class UnknownTaskError(SchedulerError, KeyError):
    """A caller referenced a task id that is not registered."""

    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        super().__init__(task_id)

    def __str__(self) -> str:
        return f"Unknown task: {self.task_id}"


class TaskExecutionFailure(SchedulerError):
    """Raised by a task callback to fail with a specific diagnostic.

    The scheduler records the message as the task's ``last_error`` and never
    re-raises it.
    """
