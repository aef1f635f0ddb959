"""HTTP and WebSocket control surface."""

from .server import ControlServer

__all__ = ["ControlServer"]
