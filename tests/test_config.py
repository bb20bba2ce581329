"""Tests for Settings configuration model."""

from pathlib import Path

import pytest

from pmscheduler.config import Settings


class TestGetDisabledTasks:
    def test_parses_comma_separated(self):
        s = Settings(disabled_tasks="weekly-review-prep,meeting-prep-reminder")
        assert s.get_disabled_tasks() == {"weekly-review-prep", "meeting-prep-reminder"}

    def test_handles_spaces(self):
        s = Settings(disabled_tasks=" a , b ,")
        assert s.get_disabled_tasks() == {"a", "b"}

    def test_empty_string_returns_empty_set(self):
        s = Settings(disabled_tasks="")
        assert s.get_disabled_tasks() == set()


class TestDefaults:
    def test_default_timezone(self):
        s = Settings()
        assert s.scheduler_timezone == "Europe/Berlin"

    def test_autostart_enabled(self):
        s = Settings()
        assert s.scheduler_autostart is True

    def test_default_database_path(self):
        s = Settings()
        assert s.database_path == Path("data/pm.db")

    def test_control_server_defaults(self):
        s = Settings()
        assert s.control_port == 8787
        assert s.control_token == ""
        assert s.control_url == "http://127.0.0.1:8787"


class TestExtraForbidden:
    def test_unknown_env_var_raises(self):
        with pytest.raises(ValueError, match="extra_forbidden"):
            Settings(**{"nonexistent_field": "value"})
