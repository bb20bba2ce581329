"""PMStore — aiosqlite queries over the product's actions, projects and plans.

All timestamps are stored as ISO 8601 strings in UTC, so range filters can
compare them as text. ``daily_plans.date`` is a plain ``YYYY-MM-DD`` date in
the scheduler's timezone.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import aiosqlite

from pmscheduler.config import settings
from pmscheduler.jobs.models import OverdueAction, ProjectHealth, UpcomingMeeting

if TYPE_CHECKING:
    from datetime import date, datetime
    from pathlib import Path

logger = logging.getLogger(__name__)

_CREATE_TABLES = """
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL DEFAULT '',
    email TEXT
);
CREATE TABLE IF NOT EXISTS projects (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'ACTIVE',
    health_score INTEGER,
    created_by_id TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS actions (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'ACTIVE',
    scheduled_start TEXT,
    completed_at TEXT,
    created_by_id TEXT NOT NULL,
    project_id TEXT
);
CREATE TABLE IF NOT EXISTS daily_plans (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    date TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS meetings (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    date TEXT NOT NULL,
    created_by_id TEXT NOT NULL,
    project_id TEXT
);
"""


class PMStore:
    """Read access to the product database for the PM automation tasks.

    Pass an explicit *db_path* for test isolation (e.g. ``tmp_path / "pm.db"``).
    The tables are created on first connect when missing, which keeps local
    development and tests working against an empty file.
    """

    def __init__(self, db_path: Path | None = None) -> None:
        self._db_path = db_path or settings.database_path
        self._initialised = False

    @property
    def db_path(self) -> Path:
        return self._db_path

    # -- Internal helpers ------------------------------------------------------

    async def _connect(self) -> aiosqlite.Connection:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        db = await aiosqlite.connect(str(self._db_path))
        if not self._initialised:
            await db.executescript(_CREATE_TABLES)
            await db.commit()
            self._initialised = True
        return db

    async def _fetchall(self, sql: str, params: tuple = ()) -> list[tuple]:
        db = await self._connect()
        try:
            cursor = await db.execute(sql, params)
            return list(await cursor.fetchall())
        finally:
            await db.close()

    async def _count(self, sql: str, params: tuple = ()) -> int:
        rows = await self._fetchall(sql, params)
        return int(rows[0][0]) if rows else 0

    # -- Queries ---------------------------------------------------------------

    async def list_overdue_actions(self, before: datetime) -> list[OverdueAction]:
        """Active actions whose scheduled start is earlier than *before*."""
        rows = await self._fetchall(
            """
            SELECT id, name, created_by_id, project_id, scheduled_start
            FROM actions
            WHERE status = 'ACTIVE'
              AND scheduled_start IS NOT NULL
              AND scheduled_start < ?
            ORDER BY created_by_id, scheduled_start
            """,
            (before.isoformat(),),
        )
        return [OverdueAction.from_row(row) for row in rows]

    async def list_users_without_plan(self, day: date, limit: int = 100) -> list[str]:
        """Ids of users with no daily plan for *day*."""
        rows = await self._fetchall(
            """
            SELECT id FROM users
            WHERE id NOT IN (SELECT user_id FROM daily_plans WHERE date = ?)
            ORDER BY id
            LIMIT ?
            """,
            (day.isoformat(), limit),
        )
        return [row[0] for row in rows]

    async def count_completed_actions(self, since: datetime, until: datetime) -> int:
        return await self._count(
            """
            SELECT COUNT(*) FROM actions
            WHERE status = 'COMPLETED' AND completed_at >= ? AND completed_at <= ?
            """,
            (since.isoformat(), until.isoformat()),
        )

    async def count_updated_projects(self, since: datetime, until: datetime) -> int:
        return await self._count(
            "SELECT COUNT(*) FROM projects WHERE updated_at >= ? AND updated_at <= ?",
            (since.isoformat(), until.isoformat()),
        )

    async def list_active_projects(self) -> list[ProjectHealth]:
        rows = await self._fetchall(
            """
            SELECT id, name, health_score, created_by_id
            FROM projects WHERE status = 'ACTIVE' ORDER BY name
            """
        )
        return [ProjectHealth.from_row(row) for row in rows]

    async def list_meetings_between(
        self, start: datetime, end: datetime
    ) -> list[UpcomingMeeting]:
        rows = await self._fetchall(
            """
            SELECT id, title, date, created_by_id, project_id
            FROM meetings WHERE date >= ? AND date <= ? ORDER BY date
            """,
            (start.isoformat(), end.isoformat()),
        )
        return [UpcomingMeeting.from_row(row) for row in rows]
