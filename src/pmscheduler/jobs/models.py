"""Read models for the product tables the PM tasks inspect."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class OverdueAction:
    id: str
    name: str
    created_by_id: str
    project_id: str | None
    scheduled_start: str

    @classmethod
    def from_row(cls, row: tuple) -> OverdueAction:
        return cls(
            id=row[0],
            name=row[1],
            created_by_id=row[2],
            project_id=row[3],
            scheduled_start=row[4],
        )


@dataclass(frozen=True)
class ProjectHealth:
    """An active project and its health score (``None`` when never scored)."""

    id: str
    name: str
    health_score: int | None
    created_by_id: str

    @property
    def effective_score(self) -> int:
        return 100 if self.health_score is None else self.health_score

    @classmethod
    def from_row(cls, row: tuple) -> ProjectHealth:
        return cls(id=row[0], name=row[1], health_score=row[2], created_by_id=row[3])


@dataclass(frozen=True)
class UpcomingMeeting:
    id: str
    title: str
    date: str
    created_by_id: str
    project_id: str | None

    @classmethod
    def from_row(cls, row: tuple) -> UpcomingMeeting:
        return cls(
            id=row[0],
            title=row[1],
            date=row[2],
            created_by_id=row[3],
            project_id=row[4],
        )
