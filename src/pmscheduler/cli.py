"""pmctl — command-line client for the scheduler control surface.

Usage examples:
    pmctl status
    pmctl start
    pmctl stop
    pmctl run daily-overdue-check
    pmctl --url http://10.0.0.5:8787 --token s3cret status
"""

from __future__ import annotations

import argparse
import json
import sys

import httpx

from pmscheduler.config import settings
from pmscheduler.control.server import TOKEN_HEADER


def call_control(
    method: str,
    path: str,
    *,
    base_url: str,
    token: str,
    transport: httpx.BaseTransport | None = None,
) -> httpx.Response:
    """Send one request to the control surface."""
    with httpx.Client(base_url=base_url, timeout=10, transport=transport) as client:
        return client.request(method, path, headers={TOKEN_HEADER: token})


def format_status(data: dict) -> str:
    """Render a status reply as a compact table."""
    lines = [f"phase: {data.get('phase', '?')}"]
    for task in data.get("tasks", []):
        state = "RUNNING" if task.get("is_running") else task.get("last_run_outcome", "?")
        line = f"  {task['id']:26s} {state:9s} next={task.get('next_fire_at') or '-'}"
        if task.get("last_error"):
            line += f"  error={task['last_error']}"
        lines.append(line)
    return "\n".join(lines)


def main(argv: list[str] | None = None, transport: httpx.BaseTransport | None = None) -> int:
    parser = argparse.ArgumentParser(description="Control the PM automation scheduler")
    parser.add_argument("--url", default=settings.control_url, help="Control server base URL")
    parser.add_argument("--token", default=settings.control_token, help="Admin token")
    parser.add_argument("--json", action="store_true", help="Print the raw JSON reply")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("status", help="Show scheduler and task status")
    sub.add_parser("start", help="Start the scheduler")
    sub.add_parser("stop", help="Stop the scheduler")
    run = sub.add_parser("run", help="Run a task now")
    run.add_argument("task_id")
    args = parser.parse_args(argv)

    if not args.token:
        print("ERROR: CONTROL_TOKEN is not set (use --token)", file=sys.stderr)
        return 1

    routes = {
        "status": ("GET", "/scheduler/status"),
        "start": ("POST", "/scheduler/start"),
        "stop": ("POST", "/scheduler/stop"),
    }
    if args.command == "run":
        method, path = "POST", f"/scheduler/tasks/{args.task_id}/run"
    else:
        method, path = routes[args.command]

    try:
        resp = call_control(method, path, base_url=args.url, token=args.token, transport=transport)
    except httpx.HTTPError as exc:
        print(f"ERROR: could not reach {args.url}: {exc}", file=sys.stderr)
        return 1

    if resp.status_code != 200:
        print(f"ERROR: server returned {resp.status_code}: {resp.text}", file=sys.stderr)
        return 1

    data = resp.json()
    if args.command == "status" and not args.json:
        print(format_status(data))
    else:
        print(json.dumps(data, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
