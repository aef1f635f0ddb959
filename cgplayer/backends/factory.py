"""
Backend factory and registry.

Provides factory methods to instantiate backends by type name.
"""

import logging
from typing import Optional

from cgplayer.config import Config

from .base import AudioBackend
from .local import LocalAudioBackend
from .silent import SilentBackend

logger = logging.getLogger(__name__)


class BackendNotFoundError(Exception):
    """Raised when requested backend type is not available."""

    pass


class BackendRegistry:
    """
    Registry of available backend types.

    Backends register themselves here with their type name.
    Factory uses this to instantiate backends.
    """

    _backends: dict[str, type[AudioBackend]] = {}

    @classmethod
    def register(cls, type_name: str, backend_class: type[AudioBackend]) -> None:
        """Register a backend class."""
        cls._backends[type_name] = backend_class
        logger.debug(f"Registered backend type: {type_name}")

    @classmethod
    def get(cls, type_name: str) -> Optional[type[AudioBackend]]:
        """Get backend class by type name."""
        return cls._backends.get(type_name)

    @classmethod
    def available_types(cls) -> list[str]:
        """Get list of registered backend type names."""
        return list(cls._backends.keys())


class BackendFactory:
    """
    Factory for creating connected audio backends.

    Usage:
        backend = await BackendFactory.create_from_config(config)
    """

    @classmethod
    async def create_from_config(cls, config: Config) -> AudioBackend:
        """Create and connect the backend selected in the configuration."""
        backend_type = config.player.backend

        backend_class = BackendRegistry.get(backend_type)
        if not backend_class:
            available = BackendRegistry.available_types()
            raise BackendNotFoundError(
                f"Backend type '{backend_type}' not available. " f"Available types: {available}"
            )

        if backend_type == "local":
            backend: AudioBackend = LocalAudioBackend(
                device=config.player.device,
                blocksize=config.player.blocksize,
            )
        else:
            backend = backend_class(name=f"{backend_type.title()} Output")

        if not await backend.connect():
            raise BackendNotFoundError(f"Failed to open {backend_type} audio output")

        logger.info(f"Audio output: {backend.get_info()}")
        return backend

    @classmethod
    def list_available_backends(cls) -> list[str]:
        """List available backend types."""
        return BackendRegistry.available_types()


# Register backends
BackendRegistry.register("silent", SilentBackend)
BackendRegistry.register("local", LocalAudioBackend)
