"""
Abstract audio backend interface.

An audio backend is the single media handle the player drives, the
counterpart of a browser's audio element: it is given a source, buffers it,
reports when the duration is known, and reports progress, the end of the
track and errors through callbacks.
"""

import logging
from abc import ABC, abstractmethod
from typing import Callable, Optional

from .types import BackendInfo, BackendTrackMetadata, PlaybackState

logger = logging.getLogger(__name__)

# Event callback types
StateChangeCallback = Callable[[PlaybackState], None]
TimeUpdateCallback = Callable[[float], None]  # position in seconds
MetadataReadyCallback = Callable[[float], None]  # duration in seconds
TrackEndedCallback = Callable[[], None]
PlaybackErrorCallback = Callable[[str], None]  # error message


class AudioBackend(ABC):
    """
    Abstract base class for audio outputs.

    Backends must implement all abstract methods. The event methods and the
    notification helpers are shared.

    Contract:
    - load() sets the source and starts buffering; it never starts playback.
      Once the duration is known the backend calls the metadata-ready
      callback. Failures raise MediaLoadError and are also reported through
      the error callback.
    - play() may raise PlaybackRejectedError or MediaLoadError.
    - Positions are in seconds.
    """

    def __init__(self, name: str = "AudioBackend"):
        """Initialize backend."""
        self.name = name
        self._volume: float = 1.0  # 0.0-1.0
        self._state: PlaybackState = PlaybackState.STOPPED
        self._is_connected: bool = False
        self._source: Optional[str] = None

        # Event callbacks
        self._on_state_change: Optional[StateChangeCallback] = None
        self._on_time_update: Optional[TimeUpdateCallback] = None
        self._on_metadata_ready: Optional[MetadataReadyCallback] = None
        self._on_track_ended: Optional[TrackEndedCallback] = None
        self._on_playback_error: Optional[PlaybackErrorCallback] = None

    # =========================================================================
    # Source and Transport - Required
    # =========================================================================

    @abstractmethod
    async def load(self, url: str, metadata: BackendTrackMetadata) -> None:
        """Set the source and begin buffering."""
        pass

    @abstractmethod
    async def play(self) -> None:
        """Start or resume playback of the loaded source."""
        pass

    @abstractmethod
    async def pause(self) -> None:
        """Pause playback, keeping the position."""
        pass

    @abstractmethod
    async def stop(self) -> None:
        """Stop playback and drop the source."""
        pass

    # =========================================================================
    # Position - Required
    # =========================================================================

    @abstractmethod
    async def seek(self, position: float) -> None:
        """Jump to a position in seconds."""
        pass

    @abstractmethod
    async def get_position(self) -> float:
        """Get current playback position in seconds."""
        pass

    @abstractmethod
    async def get_duration(self) -> float:
        """Get the loaded source's duration in seconds (0 if unknown)."""
        pass

    # =========================================================================
    # Volume
    # =========================================================================

    async def set_volume(self, level: float) -> None:
        """Set output volume (0.0-1.0)."""
        self._volume = max(0.0, min(1.0, level))

    async def get_volume(self) -> float:
        """Get output volume (0.0-1.0)."""
        return self._volume

    # =========================================================================
    # State
    # =========================================================================

    async def get_state(self) -> PlaybackState:
        """Get current playback state."""
        return self._state

    @property
    def source(self) -> Optional[str]:
        """URL of the loaded source."""
        return self._source

    # =========================================================================
    # Lifecycle - Required
    # =========================================================================

    @abstractmethod
    async def connect(self) -> bool:
        """Initialize the output. Returns True if successful."""
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Release the output."""
        pass

    def is_connected(self) -> bool:
        """Check if backend is connected."""
        return self._is_connected

    # =========================================================================
    # Event Callbacks
    # =========================================================================

    def on_state_change(self, callback: Optional[StateChangeCallback]) -> None:
        """Register callback for state changes."""
        self._on_state_change = callback

    def on_time_update(self, callback: Optional[TimeUpdateCallback]) -> None:
        """Register callback for playback progress."""
        self._on_time_update = callback

    def on_metadata_ready(self, callback: Optional[MetadataReadyCallback]) -> None:
        """Register callback for when the source's duration becomes known."""
        self._on_metadata_ready = callback

    def on_track_ended(self, callback: Optional[TrackEndedCallback]) -> None:
        """Register callback for natural track end (not stop command)."""
        self._on_track_ended = callback

    def on_playback_error(self, callback: Optional[PlaybackErrorCallback]) -> None:
        """Register callback for load and playback errors."""
        self._on_playback_error = callback

    def clear_callbacks(self) -> None:
        """Detach every listener."""
        self._on_state_change = None
        self._on_time_update = None
        self._on_metadata_ready = None
        self._on_track_ended = None
        self._on_playback_error = None

    # =========================================================================
    # Event Notification Helpers
    # =========================================================================

    def _notify_state_change(self, state: PlaybackState) -> None:
        """Notify listeners of state change."""
        old_state = self._state
        self._state = state
        if old_state != state and self._on_state_change:
            try:
                self._on_state_change(state)
            except Exception as e:
                logger.error(f"State change callback error: {e}")

    def _notify_time_update(self, position: float) -> None:
        if self._on_time_update:
            try:
                self._on_time_update(position)
            except Exception as e:
                logger.error(f"Time update callback error: {e}")

    def _notify_metadata_ready(self, duration: float) -> None:
        if self._on_metadata_ready:
            try:
                self._on_metadata_ready(duration)
            except Exception as e:
                logger.error(f"Metadata ready callback error: {e}")

    def _notify_track_ended(self) -> None:
        """Notify listeners that track ended naturally."""
        if self._on_track_ended:
            try:
                self._on_track_ended()
            except Exception as e:
                logger.error(f"Track ended callback error: {e}")

    def _notify_playback_error(self, message: str) -> None:
        if self._on_playback_error:
            try:
                self._on_playback_error(message)
            except Exception as e:
                logger.error(f"Playback error callback error: {e}")

    # =========================================================================
    # Info
    # =========================================================================

    def get_info(self) -> BackendInfo:
        """Get information about this backend."""
        return BackendInfo(
            backend_type="unknown",
            name=self.name,
            device_id="",
        )
