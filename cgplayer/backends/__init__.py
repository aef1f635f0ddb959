"""
Audio backends module.

Provides the audio output interface, the concrete outputs, and a factory.
"""

from .base import (
    AudioBackend,
    MetadataReadyCallback,
    PlaybackErrorCallback,
    StateChangeCallback,
    TimeUpdateCallback,
    TrackEndedCallback,
)
from .factory import (
    BackendFactory,
    BackendNotFoundError,
    BackendRegistry,
)
from .local import LocalAudioBackend
from .silent import SilentBackend
from .types import (
    BackendError,
    BackendInfo,
    BackendTrackMetadata,
    MediaLoadError,
    PlaybackRejectedError,
    PlaybackState,
)

__all__ = [
    # Types
    "BackendInfo",
    "BackendTrackMetadata",
    "PlaybackState",
    # Errors
    "BackendError",
    "MediaLoadError",
    "PlaybackRejectedError",
    # Base class
    "AudioBackend",
    # Callback types
    "MetadataReadyCallback",
    "PlaybackErrorCallback",
    "StateChangeCallback",
    "TimeUpdateCallback",
    "TrackEndedCallback",
    # Factory
    "BackendFactory",
    "BackendNotFoundError",
    "BackendRegistry",
    # Outputs
    "LocalAudioBackend",
    "SilentBackend",
]
