"""PM automation task bodies and the product database they read."""

from pmscheduler.jobs.pm_tasks import PMAutomation, build_default_registry
from pmscheduler.jobs.store import PMStore

__all__ = ["PMAutomation", "PMStore", "build_default_registry"]
