"""
Silent audio backend.

Plays nothing: a virtual clock advances through the track so the player,
queue and control surfaces behave exactly as with a real output. Used for
headless runs and tests.
"""

import asyncio
import logging
from typing import Iterable, Optional

from .base import AudioBackend
from .types import (
    BackendInfo,
    BackendTrackMetadata,
    MediaLoadError,
    PlaybackRejectedError,
    PlaybackState,
)

logger = logging.getLogger(__name__)

DEFAULT_TICK_INTERVAL = 0.25  # seconds between time updates


class SilentBackend(AudioBackend):
    """Virtual-clock audio output."""

    def __init__(
        self,
        name: str = "Silent Output",
        tick_interval: float = DEFAULT_TICK_INTERVAL,
        failing_urls: Iterable[str] = (),
    ):
        super().__init__(name)
        self.tick_interval = tick_interval

        # Failure injection
        self.reject_play: bool = False
        self.failing_urls: set[str] = set(failing_urls)

        self._duration: float = 0.0
        self._position_base: float = 0.0
        self._started_at: Optional[float] = None  # loop time while playing
        self._tick_task: Optional[asyncio.Task] = None

    # =========================================================================
    # Source and Transport
    # =========================================================================

    async def load(self, url: str, metadata: BackendTrackMetadata) -> None:
        await self._cancel_ticking()
        self._source = url
        self._duration = max(0.0, metadata.duration)
        self._position_base = 0.0
        self._started_at = None
        self._notify_state_change(PlaybackState.LOADING)

        if url in self.failing_urls:
            self._notify_state_change(PlaybackState.ERROR)
            self._notify_playback_error(f"Cannot load {url}")
            raise MediaLoadError(f"Cannot load {url}")

        # Metadata arrives asynchronously, like a media element's event
        asyncio.get_running_loop().call_soon(self._metadata_loaded, url)

    def _metadata_loaded(self, url: str) -> None:
        if self._source != url or self._state != PlaybackState.LOADING:
            return
        self._notify_state_change(PlaybackState.PAUSED)
        self._notify_metadata_ready(self._duration)

    async def play(self) -> None:
        if not self._source:
            raise MediaLoadError("No source loaded")
        if self.reject_play:
            raise PlaybackRejectedError("Playback start rejected")
        if self._state == PlaybackState.PLAYING:
            return

        # Playing an ended track starts it over
        if self._duration > 0 and self._position_base >= self._duration:
            self._position_base = 0.0

        self._started_at = asyncio.get_running_loop().time()
        self._notify_state_change(PlaybackState.PLAYING)
        self._tick_task = asyncio.create_task(self._tick_loop())
        logger.debug(f"Silent playback started: {self._source}")

    async def pause(self) -> None:
        self._position_base = self._current_position()
        self._started_at = None
        await self._cancel_ticking()
        if self._source:
            self._notify_state_change(PlaybackState.PAUSED)

    async def stop(self) -> None:
        await self._cancel_ticking()
        self._source = None
        self._duration = 0.0
        self._position_base = 0.0
        self._started_at = None
        self._notify_state_change(PlaybackState.STOPPED)

    # =========================================================================
    # Position
    # =========================================================================

    async def seek(self, position: float) -> None:
        position = max(0.0, position)
        if self._duration > 0:
            position = min(position, self._duration)
        self._position_base = position
        if self._started_at is not None:
            self._started_at = asyncio.get_running_loop().time()
        self._notify_time_update(position)

    async def get_position(self) -> float:
        return self._current_position()

    async def get_duration(self) -> float:
        return self._duration

    def _current_position(self) -> float:
        position = self._position_base
        if self._started_at is not None:
            position += asyncio.get_running_loop().time() - self._started_at
        if self._duration > 0:
            position = min(position, self._duration)
        return position

    # =========================================================================
    # Clock
    # =========================================================================

    async def _tick_loop(self) -> None:
        """Emit time updates until the end of the track."""
        try:
            while True:
                await asyncio.sleep(self.tick_interval)
                position = self._current_position()
                self._notify_time_update(position)

                if self._duration > 0 and position >= self._duration:
                    self._position_base = self._duration
                    self._started_at = None
                    self._notify_state_change(PlaybackState.STOPPED)
                    self._notify_track_ended()
                    return
        except asyncio.CancelledError:
            pass

    async def _cancel_ticking(self) -> None:
        task = self._tick_task
        self._tick_task = None
        if task and not task.done() and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def connect(self) -> bool:
        self._is_connected = True
        return True

    async def disconnect(self) -> None:
        await self.stop()
        self._is_connected = False

    def get_info(self) -> BackendInfo:
        return BackendInfo(
            backend_type="silent",
            name=self.name,
            device_id="silent",
        )
