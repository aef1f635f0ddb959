"""
CGPlayer - Headless rehearsal player for CGPlayerWeb.

Plays songs and their voice-type versions from a CGPlayerWeb server, with a
persistent queue and an HTTP/WebSocket control surface.
"""

__version__ = "0.1.0"

from .app import CGPlayer
from .config import Config, load_config, ConfigError

__all__ = [
    "__version__",
    "CGPlayer",
    "Config",
    "load_config",
    "ConfigError",
]
