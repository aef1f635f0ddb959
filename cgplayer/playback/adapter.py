"""
Audio adapter.

The one seam between the player and the shared audio backend. The adapter
binds a single backend, forwards transport calls to it, applies the mute
override to the output volume, and re-emits backend events tagged with the
source URL they belong to so the player can drop stale ones.
"""

import logging
from typing import Callable, Optional

from cgplayer.backends import AudioBackend, BackendTrackMetadata

logger = logging.getLogger(__name__)

# Event callback types; the first argument is the source URL
TimeUpdateListener = Callable[[Optional[str], float], None]
MetadataReadyListener = Callable[[Optional[str], float], None]
EndedListener = Callable[[Optional[str]], None]
ErrorListener = Callable[[Optional[str], str], None]


class AdapterNotBoundError(RuntimeError):
    """Raised when the adapter is used before a backend is bound."""

    pass


class AudioAdapter:
    """Binds one audio backend and relays its events to one listener."""

    def __init__(self) -> None:
        self._backend: Optional[AudioBackend] = None
        self._duration: float = 0.0
        self._volume: float = 1.0
        self._muted: bool = False

        self._on_time_update: Optional[TimeUpdateListener] = None
        self._on_metadata_ready: Optional[MetadataReadyListener] = None
        self._on_ended: Optional[EndedListener] = None
        self._on_error: Optional[ErrorListener] = None

    # =========================================================================
    # Binding
    # =========================================================================

    def bind(self, backend: AudioBackend) -> None:
        """
        Bind the shared backend.

        A second bind replaces the first: the old backend's callbacks are
        detached and it receives no further calls from this adapter.
        """
        if self._backend is backend:
            return
        if self._backend is not None:
            logger.warning(f"Replacing bound audio backend {self._backend.name} with {backend.name}")
            self._backend.clear_callbacks()

        self._backend = backend
        self._duration = 0.0
        backend.on_time_update(lambda position: self._emit_time_update(backend, position))
        backend.on_metadata_ready(lambda duration: self._emit_metadata_ready(backend, duration))
        backend.on_track_ended(lambda: self._emit_ended(backend))
        backend.on_playback_error(lambda message: self._emit_error(backend, message))
        logger.debug(f"Audio adapter bound to {backend.name}")

    def unbind(self) -> None:
        if self._backend is not None:
            self._backend.clear_callbacks()
        self._backend = None
        self._duration = 0.0

    @property
    def is_bound(self) -> bool:
        return self._backend is not None

    @property
    def backend(self) -> AudioBackend:
        return self._require()

    def _require(self) -> AudioBackend:
        if self._backend is None:
            raise AdapterNotBoundError("No audio backend bound")
        return self._backend

    # =========================================================================
    # Transport
    # =========================================================================

    @property
    def source(self) -> Optional[str]:
        """URL of the current source, or None."""
        if self._backend is None:
            return None
        return self._backend.source

    @property
    def duration(self) -> float:
        """Duration of the current source once metadata is ready, else 0."""
        return self._duration

    async def load(self, url: str, metadata: BackendTrackMetadata) -> None:
        """Set the source and start buffering. Does not start playback."""
        backend = self._require()
        self._duration = 0.0
        await backend.load(url, metadata)

    async def play(self) -> None:
        """
        Start playback.

        Raises:
            PlaybackRejectedError: The output refused to start
            MediaLoadError: The source cannot be played
        """
        await self._require().play()

    async def pause(self) -> None:
        await self._require().pause()

    async def stop(self) -> None:
        backend = self._require()
        self._duration = 0.0
        await backend.stop()

    async def seek(self, position: float) -> float:
        """
        Seek within the current source.

        Returns:
            The applied position, clamped to [0, duration]
        """
        backend = self._require()
        duration = self._duration or await backend.get_duration()
        clamped = max(0.0, min(position, duration))
        if clamped != position:
            logger.debug(f"Seek position clamped: {position:.2f}s -> {clamped:.2f}s")
        await backend.seek(clamped)
        return clamped

    async def get_position(self) -> float:
        return await self._require().get_position()

    # =========================================================================
    # Volume
    # =========================================================================

    async def set_volume(self, level: float) -> None:
        self._volume = max(0.0, min(1.0, level))
        await self._apply_volume()

    async def set_muted(self, muted: bool) -> None:
        self._muted = muted
        await self._apply_volume()

    @property
    def effective_volume(self) -> float:
        """Volume actually sent to the output: 0 while muted."""
        return 0.0 if self._muted else self._volume

    async def _apply_volume(self) -> None:
        await self._require().set_volume(self.effective_volume)

    # =========================================================================
    # Events
    # =========================================================================

    def on_time_update(self, callback: Optional[TimeUpdateListener]) -> None:
        self._on_time_update = callback

    def on_metadata_ready(self, callback: Optional[MetadataReadyListener]) -> None:
        self._on_metadata_ready = callback

    def on_ended(self, callback: Optional[EndedListener]) -> None:
        self._on_ended = callback

    def on_error(self, callback: Optional[ErrorListener]) -> None:
        self._on_error = callback

    def _emit_time_update(self, backend: AudioBackend, position: float) -> None:
        if backend is not self._backend or not self._on_time_update:
            return
        try:
            self._on_time_update(backend.source, position)
        except Exception as e:
            logger.error(f"Time update listener error: {e}", exc_info=True)

    def _emit_metadata_ready(self, backend: AudioBackend, duration: float) -> None:
        if backend is not self._backend:
            return
        self._duration = duration
        if not self._on_metadata_ready:
            return
        try:
            self._on_metadata_ready(backend.source, duration)
        except Exception as e:
            logger.error(f"Metadata ready listener error: {e}", exc_info=True)

    def _emit_ended(self, backend: AudioBackend) -> None:
        if backend is not self._backend or not self._on_ended:
            return
        try:
            self._on_ended(backend.source)
        except Exception as e:
            logger.error(f"Ended listener error: {e}", exc_info=True)

    def _emit_error(self, backend: AudioBackend, message: str) -> None:
        if backend is not self._backend or not self._on_error:
            return
        try:
            self._on_error(backend.source, message)
        except Exception as e:
            logger.error(f"Error listener error: {e}", exc_info=True)
