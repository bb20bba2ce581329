"""Task definition registry — the static catalog of automation tasks."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator

from pmscheduler.scheduler.errors import ConfigurationError, UnknownTaskError
from pmscheduler.scheduler.models import TaskDefinition

logger = logging.getLogger(__name__)


class TaskRegistry:
    """Ordered, immutable collection of :class:`TaskDefinition`, keyed by id.

    Built once at startup. Duplicate ids raise :class:`ConfigurationError`
    so a misconfigured process refuses to start.
    """

    def __init__(self, definitions: Iterable[TaskDefinition]) -> None:
        by_id: dict[str, TaskDefinition] = {}
        for definition in definitions:
            if not isinstance(definition, TaskDefinition):
                msg = f"Expected TaskDefinition, got {type(definition).__name__}"
                raise ConfigurationError(msg)
            if definition.id in by_id:
                msg = f"Duplicate task id: {definition.id}"
                raise ConfigurationError(msg)
            by_id[definition.id] = definition
        self._definitions = by_id
        logger.debug("Registered %d task(s): %s", len(by_id), ", ".join(by_id))

    def get(self, task_id: str) -> TaskDefinition:
        """Look up a task by id. Raises :class:`UnknownTaskError` if absent."""
        try:
            return self._definitions[task_id]
        except KeyError:
            raise UnknownTaskError(task_id) from None

    @property
    def ids(self) -> list[str]:
        return list(self._definitions)

    def __iter__(self) -> Iterator[TaskDefinition]:
        return iter(tuple(self._definitions.values()))

    def __len__(self) -> int:
        return len(self._definitions)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._definitions
