"""Tests for the built-in PM automation tasks."""

import logging
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import pytest

from pmscheduler.jobs.pm_tasks import PMAutomation, build_default_registry
from pmscheduler.jobs.store import PMStore
from pmscheduler.scheduler.engine import SchedulerEngine
from pmscheduler.scheduler.errors import ConfigurationError
from pmscheduler.scheduler.models import TaskOutcome
from tests.fakes import ManualClock

NOW = datetime(2025, 1, 6, 10, 0, tzinfo=UTC)

EXPECTED_TASKS = {
    "daily-overdue-check": "0 9 * * *",
    "daily-planning-reminder": "0 8 * * 1-5",
    "weekly-review-prep": "0 14 * * 5",
    "project-health-check": "0 10 * * 1",
    "meeting-prep-reminder": "*/30 * * * *",
}


@pytest.fixture
def automation(pm_store: PMStore) -> PMAutomation:
    return PMAutomation(pm_store, timezone="UTC", now=lambda: NOW)


async def _seed(store: PMStore, sql: str, rows: list[tuple]) -> None:
    db = await store._connect()
    try:
        await db.executemany(sql, rows)
        await db.commit()
    finally:
        await db.close()


# -- Registration --------------------------------------------------------------


def test_definitions_match_default_schedule(automation: PMAutomation) -> None:
    definitions = automation.definitions()
    assert {d.id: d.cadence.cron for d in definitions} == EXPECTED_TASKS
    assert all(d.enabled for d in definitions)
    assert all(d.cadence.timezone == "UTC" for d in definitions)
    assert definitions[0].name == "Daily Overdue Actions Check"


def test_disabled_tasks_are_marked(automation: PMAutomation) -> None:
    registry = build_default_registry(automation, disabled={"weekly-review-prep"})
    assert registry.get("weekly-review-prep").enabled is False
    assert registry.get("daily-overdue-check").enabled is True


def test_unknown_disabled_id_is_logged(
    automation: PMAutomation, caplog: pytest.LogCaptureFixture
) -> None:
    with caplog.at_level(logging.WARNING):
        registry = build_default_registry(automation, disabled={"no-such-task"})
    assert len(registry) == 5
    assert "no-such-task" in caplog.text


def test_unknown_timezone_is_configuration_error(pm_store: PMStore) -> None:
    with pytest.raises(ConfigurationError):
        PMAutomation(pm_store, timezone="Not/AZone")


# -- Task bodies ---------------------------------------------------------------


async def test_overdue_check_with_no_actions(automation: PMAutomation) -> None:
    result = await automation.check_overdue_actions()
    assert result.ok is True
    assert result.detail == "No overdue actions"


async def test_overdue_check_groups_by_user(
    automation: PMAutomation, pm_store: PMStore
) -> None:
    yesterday = (NOW - timedelta(days=1)).isoformat()
    await _seed(
        pm_store,
        "INSERT INTO actions (id, name, status, scheduled_start, created_by_id)"
        " VALUES (?, ?, ?, ?, ?)",
        [
            ("a1", "x", "ACTIVE", yesterday, "u1"),
            ("a2", "y", "ACTIVE", yesterday, "u1"),
            ("a3", "z", "ACTIVE", yesterday, "u2"),
            # Earlier today is not overdue yet.
            ("a4", "w", "ACTIVE", (NOW - timedelta(hours=1)).isoformat(), "u3"),
        ],
    )

    result = await automation.check_overdue_actions()

    assert result.detail == "3 overdue action(s) across 2 user(s)"


async def test_overdue_check_uses_local_midnight(pm_store: PMStore) -> None:
    # 23:30 UTC on Jan 5 is already Jan 6 in Berlin; an action at 22:00 UTC
    # (23:00 Berlin, Jan 5) is therefore overdue.
    now = datetime(2025, 1, 5, 23, 30, tzinfo=UTC)
    automation = PMAutomation(pm_store, timezone="Europe/Berlin", now=lambda: now)
    await _seed(
        pm_store,
        "INSERT INTO actions (id, name, status, scheduled_start, created_by_id)"
        " VALUES (?, ?, ?, ?, ?)",
        [("a1", "x", "ACTIVE", datetime(2025, 1, 5, 22, 0, tzinfo=UTC).isoformat(), "u1")],
    )

    result = await automation.check_overdue_actions()
    assert result.detail == "1 overdue action(s) across 1 user(s)"


async def test_daily_planning_reminder(automation: PMAutomation, pm_store: PMStore) -> None:
    await _seed(pm_store, "INSERT INTO users (id) VALUES (?)", [("u1",), ("u2",)])
    await _seed(
        pm_store,
        "INSERT INTO daily_plans (id, user_id, date) VALUES (?, ?, ?)",
        [("d1", "u1", "2025-01-06")],
    )

    result = await automation.send_daily_planning_reminder()
    assert result.detail == "1 user(s) need a daily planning reminder"


async def test_weekly_review(automation: PMAutomation, pm_store: PMStore) -> None:
    await _seed(
        pm_store,
        "INSERT INTO actions (id, name, status, completed_at, created_by_id) VALUES (?, ?, ?, ?, ?)",
        [
            ("a1", "x", "COMPLETED", (NOW - timedelta(days=2)).isoformat(), "u1"),
            ("a2", "y", "COMPLETED", (NOW - timedelta(days=3)).isoformat(), "u1"),
        ],
    )
    await _seed(
        pm_store,
        "INSERT INTO projects (id, name, created_by_id, updated_at) VALUES (?, ?, ?, ?)",
        [("p1", "Alpha", "u1", (NOW - timedelta(days=1)).isoformat())],
    )

    result = await automation.prepare_weekly_review()
    assert result.detail == "2 action(s) completed, 1 project(s) updated"


async def test_project_health(automation: PMAutomation, pm_store: PMStore) -> None:
    await _seed(
        pm_store,
        "INSERT INTO projects (id, name, health_score, created_by_id, updated_at)"
        " VALUES (?, ?, ?, ?, ?)",
        [
            ("p1", "Apollo", 30, "u1", NOW.isoformat()),
            ("p2", "Borealis", 80, "u1", NOW.isoformat()),
            ("p3", "Unscored", None, "u1", NOW.isoformat()),
        ],
    )

    result = await automation.check_project_health()
    assert result.detail == "1 project(s) need attention: Apollo"


async def test_project_health_all_healthy(automation: PMAutomation) -> None:
    result = await automation.check_project_health()
    assert result.detail == "All projects healthy"


async def test_upcoming_meetings(automation: PMAutomation, pm_store: PMStore) -> None:
    await _seed(
        pm_store,
        "INSERT INTO meetings (id, title, date, created_by_id) VALUES (?, ?, ?, ?)",
        [
            ("m1", "Standup", (NOW + timedelta(minutes=15)).isoformat(), "u1"),
            ("m2", "Planning", (NOW + timedelta(hours=5)).isoformat(), "u1"),
        ],
    )

    result = await automation.check_upcoming_meetings()
    assert result.detail == "1 meeting(s) in the next hour"


async def test_store_errors_propagate() -> None:
    store = AsyncMock()
    store.list_active_projects.side_effect = RuntimeError("database is locked")
    automation = PMAutomation(store, now=lambda: NOW)

    with pytest.raises(RuntimeError, match="locked"):
        await automation.check_project_health()


# -- Scheduler integration -----------------------------------------------------


async def test_engine_records_task_failure() -> None:
    store = AsyncMock()
    store.list_overdue_actions.side_effect = RuntimeError("database is locked")
    clock = ManualClock(NOW)
    automation = PMAutomation(store, now=clock.now)
    engine = SchedulerEngine(build_default_registry(automation), clock=clock)

    engine.run_task("daily-overdue-check")
    await engine.join()

    status = engine.get_status().task("daily-overdue-check")
    assert status.last_run_outcome is TaskOutcome.FAILURE
    assert status.last_error == "Unhandled RuntimeError: database is locked"


async def test_engine_runs_pm_task(pm_store: PMStore) -> None:
    clock = ManualClock(NOW)
    automation = PMAutomation(pm_store, now=clock.now)
    engine = SchedulerEngine(build_default_registry(automation), clock=clock)
    engine.start()

    # Every 30 minutes: 10:00 -> 10:30
    assert engine.get_status().task("meeting-prep-reminder").next_fire_at == NOW + timedelta(
        minutes=30
    )
    clock.advance(timedelta(minutes=30))
    await engine.join()

    status = engine.get_status().task("meeting-prep-reminder")
    assert status.last_run_outcome is TaskOutcome.SUCCESS
    assert status.last_detail == "0 meeting(s) in the next hour"
    assert status.next_fire_at == NOW + timedelta(hours=1)
    await engine.shutdown()
