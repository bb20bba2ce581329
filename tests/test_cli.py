"""Tests for the pmctl command-line client."""

import json

import httpx

from pmscheduler.cli import format_status, main

STATUS = {
    "phase": "running",
    "tasks": [
        {
            "id": "daily-overdue-check",
            "is_running": False,
            "last_run_outcome": "failure",
            "last_error": "Unhandled RuntimeError: boom",
            "next_fire_at": "2025-01-07T08:00:00+00:00",
        },
        {
            "id": "meeting-prep-reminder",
            "is_running": True,
            "last_run_outcome": "success",
            "last_error": None,
            "next_fire_at": None,
        },
    ],
}


def _transport(requests: list[httpx.Request], status_code: int = 200, body=None):
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(status_code, json=body if body is not None else STATUS)

    return httpx.MockTransport(handler)


def test_status_prints_table(capsys) -> None:
    requests: list[httpx.Request] = []
    code = main(["--url", "http://pm.test", "--token", "t", "status"], _transport(requests))

    assert code == 0
    assert requests[0].method == "GET"
    assert requests[0].url.path == "/scheduler/status"
    assert requests[0].headers["X-Admin-Token"] == "t"
    out = capsys.readouterr().out
    assert "phase: running" in out
    assert "error=Unhandled RuntimeError: boom" in out
    assert "RUNNING" in out


def test_run_posts_to_task_route(capsys) -> None:
    requests: list[httpx.Request] = []
    body = {"success": True, "task_id": "weekly-review-prep", "outcome": "skipped"}
    code = main(
        ["--url", "http://pm.test", "--token", "t", "run", "weekly-review-prep"],
        _transport(requests, body=body),
    )

    assert code == 0
    assert requests[0].method == "POST"
    assert requests[0].url.path == "/scheduler/tasks/weekly-review-prep/run"
    assert json.loads(capsys.readouterr().out) == body


def test_start_and_stop_routes() -> None:
    requests: list[httpx.Request] = []
    transport = _transport(requests, body={"success": True})
    assert main(["--url", "http://pm.test", "--token", "t", "start"], transport) == 0
    assert main(["--url", "http://pm.test", "--token", "t", "stop"], transport) == 0
    assert [r.url.path for r in requests] == ["/scheduler/start", "/scheduler/stop"]


def test_error_status_exits_nonzero(capsys) -> None:
    requests: list[httpx.Request] = []
    transport = _transport(requests, status_code=404, body={"error": "unknown task"})
    code = main(["--url", "http://pm.test", "--token", "t", "run", "nope"], transport)

    assert code == 1
    assert "404" in capsys.readouterr().err


def test_missing_token_exits_nonzero(capsys) -> None:
    code = main(["--url", "http://pm.test", "--token", "", "status"])
    assert code == 1
    assert "CONTROL_TOKEN" in capsys.readouterr().err


def test_unreachable_server(capsys) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    code = main(
        ["--url", "http://pm.test", "--token", "t", "status"], httpx.MockTransport(handler)
    )
    assert code == 1
    assert "could not reach" in capsys.readouterr().err


def test_format_status_empty() -> None:
    assert format_status({"phase": "stopped", "tasks": []}) == "phase: stopped"
