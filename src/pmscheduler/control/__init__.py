"""Administrative HTTP control surface."""

from pmscheduler.control.server import ControlServer, create_control_app

__all__ = ["ControlServer", "create_control_app"]
