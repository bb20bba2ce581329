"""Admin control surface — a small aiohttp app over the scheduler engine.

Routes:
    GET  /health                          liveness, no auth
    GET  /scheduler/status                per-task status + phase
    POST /scheduler/start                 arm all tasks (idempotent)
    POST /scheduler/stop                  disarm all tasks (idempotent)
    POST /scheduler/tasks/{task_id}/run   trigger one task now

Every ``/scheduler`` route requires the ``X-Admin-Token`` header to match
``CONTROL_TOKEN``. With no token configured the server refuses to start.
"""

from __future__ import annotations

import hmac
import logging

from aiohttp import web

from pmscheduler.config import settings
from pmscheduler.scheduler.engine import SchedulerEngine
from pmscheduler.scheduler.errors import UnknownTaskError

logger = logging.getLogger(__name__)

TOKEN_HEADER = "X-Admin-Token"

engine_key = web.AppKey("engine", SchedulerEngine)
token_key = web.AppKey("control_token", str)


@web.middleware
async def _require_token(request: web.Request, handler) -> web.StreamResponse:
    """Reject /scheduler requests without the admin token."""
    if request.path.startswith("/scheduler"):
        expected = request.app[token_key]
        supplied = request.headers.get(TOKEN_HEADER, "")
        if not expected or not hmac.compare_digest(
            supplied.encode("utf-8", "surrogateescape"), expected.encode("utf-8")
        ):
            logger.warning("Control request rejected: invalid token (%s)", request.path)
            return web.json_response({"error": "unauthorized"}, status=401)
    return await handler(request)


async def _health(request: web.Request) -> web.Response:
    """GET /health — basic liveness check."""
    return web.json_response({"status": "ok"})


async def _status(request: web.Request) -> web.Response:
    engine = request.app[engine_key]
    return web.json_response(engine.get_status().to_dict())


async def _start(request: web.Request) -> web.Response:
    engine = request.app[engine_key]
    engine.start()
    return web.json_response({"success": True, "phase": engine.phase.value})


async def _stop(request: web.Request) -> web.Response:
    engine = request.app[engine_key]
    engine.stop()
    return web.json_response({"success": True, "phase": engine.phase.value})


async def _run_task(request: web.Request) -> web.Response:
    engine = request.app[engine_key]
    task_id = request.match_info["task_id"]
    try:
        outcome = engine.run_task(task_id)
    except UnknownTaskError:
        logger.warning("Control run rejected: unknown task %s", task_id)
        return web.json_response({"error": "unknown task", "task_id": task_id}, status=404)
    return web.json_response({"success": True, "task_id": task_id, "outcome": outcome.value})


def create_control_app(engine: SchedulerEngine, token: str) -> web.Application:
    """Build the aiohttp Application with routes."""
    app = web.Application(middlewares=[_require_token])
    app[engine_key] = engine
    app[token_key] = token
    app.router.add_get("/health", _health)
    app.router.add_get("/scheduler/status", _status)
    app.router.add_post("/scheduler/start", _start)
    app.router.add_post("/scheduler/stop", _stop)
    app.router.add_post("/scheduler/tasks/{task_id}/run", _run_task)
    return app


class ControlServer:
    """Manages the aiohttp server lifecycle."""

    def __init__(
        self,
        engine: SchedulerEngine,
        host: str | None = None,
        port: int | None = None,
        token: str | None = None,
    ) -> None:
        self.engine = engine
        self.host = host or settings.control_host
        self.port = settings.control_port if port is None else port
        self.token = settings.control_token if token is None else token
        self._runner: web.AppRunner | None = None

    @property
    def running(self) -> bool:
        return self._runner is not None

    async def start(self) -> None:
        """Start listening for admin requests."""
        if not self.token:
            logger.warning("CONTROL_TOKEN empty, control server disabled")
            return

        app = create_control_app(self.engine, self.token)
        self._runner = web.AppRunner(app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        logger.info("Control server listening on %s:%d", self.host, self.port)

    async def stop(self) -> None:
        """Shut down the server gracefully."""
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
            logger.info("Control server stopped")
