"""Shared test fixtures."""

from pathlib import Path

import pytest

from pmscheduler.jobs.store import PMStore
from tests.fakes import START, ManualClock


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(START)


@pytest.fixture
def pm_store(tmp_path: Path) -> PMStore:
    """Create a PMStore backed by a temp database."""
    return PMStore(db_path=tmp_path / "pm.db")
