"""PM scheduler entry point."""

import asyncio
import logging
import signal

from pmscheduler.config import settings
from pmscheduler.control.server import ControlServer
from pmscheduler.jobs.pm_tasks import PMAutomation, build_default_registry
from pmscheduler.jobs.store import PMStore
from pmscheduler.scheduler.clock import AlarmClock, SchedulerAlarmClock
from pmscheduler.scheduler.engine import SchedulerEngine

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
)
logger = logging.getLogger(__name__)


def build_engine(
    store: PMStore | None = None,
    clock: AlarmClock | None = None,
) -> SchedulerEngine:
    """Wire the default PM tasks into a scheduler engine.

    Raises ConfigurationError on a bad registration, before anything starts.
    """
    clock = clock or SchedulerAlarmClock()
    automation = PMAutomation(
        store or PMStore(),
        timezone=settings.scheduler_timezone,
        now=clock.now,
    )
    registry = build_default_registry(automation, disabled=settings.get_disabled_tasks())
    return SchedulerEngine(registry, clock=clock)


async def serve() -> None:
    """Run the scheduler and control server until SIGINT/SIGTERM."""
    engine = build_engine()
    if settings.scheduler_autostart:
        engine.start()
    else:
        logger.info("SCHEDULER_AUTOSTART off, waiting for a start command")

    server = ControlServer(engine)
    await server.start()

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    try:
        await stop_event.wait()
    finally:
        logger.info("Shutting down...")
        await server.stop()
        await engine.shutdown(wait=True)


def main() -> None:
    """Start the PM automation scheduler."""
    logger.info("Starting PM scheduler (tz=%s)...", settings.scheduler_timezone)
    asyncio.run(serve())


if __name__ == "__main__":
    main()
