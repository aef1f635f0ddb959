"""
Audio backend types, enumerations and errors.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Optional


class PlaybackState(IntEnum):
    """Playback state of an audio output."""

    STOPPED = 1  # Nothing loaded or playback stopped, position at 0
    PLAYING = 2  # Active playback
    PAUSED = 3  # Source loaded, position maintained
    LOADING = 4  # Source set, buffering before metadata is known
    ERROR = 5  # Load or decode failure


class BackendError(Exception):
    """Base class for audio output failures."""

    pass


class MediaLoadError(BackendError):
    """The source could not be fetched or decoded (bad format, 404, auth)."""

    pass


class PlaybackRejectedError(BackendError):
    """The output refused to start playback (the autoplay-policy case)."""

    pass


@dataclass
class BackendTrackMetadata:
    """
    Track metadata handed to audio backends along with the source URL.

    Backends use the duration as a hint until they know the real one.
    """

    track_id: str
    title: str = ""
    artist: str = ""
    album: str = ""
    duration: float = 0.0  # seconds
    headers: Optional[dict[str, str]] = None  # extra request headers (auth)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "track_id": self.track_id,
            "title": self.title,
            "artist": self.artist,
            "album": self.album,
            "duration": self.duration,
        }


@dataclass
class BackendInfo:
    """Information about an audio output, for logging and display."""

    backend_type: str  # 'silent', 'local'
    name: str
    device_id: str
    channels: Optional[int] = None
    sample_rate: Optional[int] = None

    def __str__(self) -> str:
        if self.sample_rate:
            return f"{self.name} ({self.backend_type}, {self.sample_rate}Hz)"
        return f"{self.name} ({self.backend_type})"
