"""
CGPlayer Player.

Playback state store: owns what is loaded into the audio adapter and keeps
the state observers read (current track, playing/loading flags, time,
duration, volume, mute, last error). It is handed tracks to play and only
reaches into the queue for next/previous.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Callable, Optional

from cgplayer.api.urls import corrected_track_url, resolve_track_url
from cgplayer.backends import (
    BackendError,
    BackendTrackMetadata,
    MediaLoadError,
    PlaybackRejectedError,
)
from cgplayer.library import Track
from .adapter import AudioAdapter
from .queue import PlayQueue, RepeatMode

logger = logging.getLogger(__name__)

# Threshold for restart vs previous track (seconds)
PREVIOUS_TRACK_THRESHOLD = 3.0

# Observers are called with no arguments; they may be sync or async
PlayerObserver = Callable[[], Any]
HeadersProvider = Callable[[], dict[str, str]]


class PlayerErrorKind(Enum):
    """Why the current track is not playing."""

    LOAD = "load"  # Source could not be fetched or decoded
    AUTOPLAY = "autoplay"  # Output refused to start


class Player:
    """
    Main playback controller.

    State machine:
        idle -> loading (play_track)
        loading -> playing (metadata ready, autoplay)
        loading -> paused (metadata ready, no autoplay or start rejected)
        loading -> error (load failed twice)
        playing <-> paused (play/pause)
        playing -> loading (track ended, next track)

    Transport operations never raise; failures are reflected in
    error / error_kind.
    """

    def __init__(
        self,
        adapter: AudioAdapter,
        queue: PlayQueue,
        base_url: str = "",
        autoplay: bool = True,
        volume: float = 1.0,
        previous_restart_threshold: float = PREVIOUS_TRACK_THRESHOLD,
        headers_provider: Optional[HeadersProvider] = None,
    ):
        """Initialize player."""
        self.adapter = adapter
        self.queue = queue
        self.base_url = base_url
        self.autoplay = autoplay
        self.previous_restart_threshold = previous_restart_threshold
        self._headers_provider = headers_provider

        # Current track
        self._current_track: Optional[Track] = None
        self._source: Optional[str] = None  # URL loaded for the current track
        self._request_id: int = 0  # bumped by every play_track()
        self._retried: bool = False  # corrected URL already tried for this request
        self._pending_load: Optional[str] = None  # URL inside adapter.load()
        self._start_when_ready: bool = autoplay

        # State
        self._is_playing: bool = False
        self._is_loading: bool = False
        self._current_time: float = 0.0
        self._duration: float = 0.0
        self._volume: float = max(0.0, min(1.0, volume))
        self._muted: bool = False
        self._error: Optional[str] = None
        self._error_kind: Optional[PlayerErrorKind] = None

        self._observers: list[PlayerObserver] = []
        self._tasks: set[asyncio.Task] = set()

        # Wire up adapter events
        self.adapter.on_time_update(self._on_time_update)
        self.adapter.on_metadata_ready(self._on_metadata_ready)
        self.adapter.on_ended(self._on_ended)
        self.adapter.on_error(self._on_error)

        logger.debug("Player initialized")

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """Push the initial volume to the output."""
        await self.adapter.set_volume(self._volume)
        await self.adapter.set_muted(self._muted)
        logger.info(f"Player started (volume {self._volume:.2f})")

    async def stop(self) -> None:
        """Stop playback and cancel pending work."""
        self._request_id += 1
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks.clear()

        await self._stop_output()
        self._is_playing = False
        self._is_loading = False
        logger.info("Player stopped")

    # =========================================================================
    # State Access
    # =========================================================================

    @property
    def current_track(self) -> Optional[Track]:
        return self._current_track

    @property
    def source(self) -> Optional[str]:
        return self._source

    @property
    def is_playing(self) -> bool:
        return self._is_playing

    @property
    def is_loading(self) -> bool:
        return self._is_loading

    @property
    def current_time(self) -> float:
        return self._current_time

    @property
    def duration(self) -> float:
        return self._duration

    @property
    def volume(self) -> float:
        return self._volume

    @property
    def muted(self) -> bool:
        return self._muted

    @property
    def is_silent(self) -> bool:
        """Display flag: muted, or volume at zero."""
        return self._muted or self._volume == 0.0

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def error_kind(self) -> Optional[PlayerErrorKind]:
        return self._error_kind

    def snapshot(self) -> dict[str, Any]:
        """Current player state as a JSON-safe dictionary."""
        track = self._current_track
        return {
            "current_track": track.to_dict() if track else None,
            "is_playing": self._is_playing,
            "is_loading": self._is_loading,
            "current_time": round(self._current_time, 3),
            "duration": round(self._duration, 3),
            "volume": self._volume,
            "muted": self._muted,
            "is_silent": self.is_silent,
            "error": self._error,
            "error_kind": self._error_kind.value if self._error_kind else None,
        }

    # =========================================================================
    # Observers
    # =========================================================================

    def subscribe(self, callback: PlayerObserver) -> Callable[[], None]:
        """
        Register a callback invoked after every state change.

        Returns:
            A function that removes the callback
        """
        self._observers.append(callback)

        def unsubscribe() -> None:
            if callback in self._observers:
                self._observers.remove(callback)

        return unsubscribe

    def _notify(self) -> None:
        for callback in list(self._observers):
            try:
                result = callback()
                if asyncio.iscoroutine(result):
                    self._spawn(result)
            except Exception as e:
                logger.error(f"Player observer error: {e}", exc_info=True)

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Player task failed: {exc}", exc_info=exc)

    # =========================================================================
    # Track Selection
    # =========================================================================

    async def play_track(self, track: Track) -> bool:
        """
        Load a track and start it once the output knows its duration.

        Returns:
            True if the load was started, False if it failed
        """
        self._request_id += 1
        request_id = self._request_id
        logger.info(f"Play track requested: {track.display_title} ({track.id})")

        await self._stop_output()
        if request_id != self._request_id:
            return False

        self._current_track = track
        self._source = None
        self._retried = False
        self._start_when_ready = self.autoplay
        self._is_playing = False
        self._is_loading = True
        self._current_time = 0.0
        self._duration = track.duration
        self._error = None
        self._error_kind = None

        url = resolve_track_url(track, self.base_url)
        if not url:
            self._fail(f"Track {track.id} has no playable file", PlayerErrorKind.LOAD)
            return False

        self._notify()
        return await self._load(request_id, track, url)

    async def _load(self, request_id: int, track: Track, url: str) -> bool:
        if request_id != self._request_id:
            return False
        self._source = url
        self._pending_load = url
        metadata = BackendTrackMetadata(
            track_id=track.id,
            title=track.display_title,
            artist=track.artist or "",
            album=track.album or "",
            duration=track.duration,
            headers=self._headers_provider() if self._headers_provider else None,
        )

        try:
            await self.adapter.load(url, metadata)
        except BackendError as e:
            if request_id != self._request_id:
                logger.debug(f"Ignoring load failure of superseded request {request_id}")
                return False
            return await self._handle_load_failure(request_id, track, url, str(e))
        finally:
            if self._pending_load == url:
                self._pending_load = None

        if request_id != self._request_id:
            logger.debug(f"Load of superseded request {request_id} finished")
            return False
        logger.debug(f"Loading {url}")
        return True

    async def _handle_load_failure(
        self, request_id: int, track: Track, url: str, message: str
    ) -> bool:
        """Try the corrected URL once, then give up on the track."""
        if request_id != self._request_id:
            logger.debug(f"Ignoring failure of superseded request {request_id}")
            return False
        if not self._retried:
            corrected = corrected_track_url(track, self.base_url, url)
            if corrected:
                self._retried = True
                logger.warning(f"Load failed ({message}), retrying with {corrected}")
                return await self._load(request_id, track, corrected)

        logger.error(f"Cannot play {track.display_title}: {message}")
        self._fail(message, PlayerErrorKind.LOAD)
        return False

    def _fail(self, message: str, kind: PlayerErrorKind) -> None:
        self._is_playing = False
        self._is_loading = False
        self._error = message
        self._error_kind = kind
        self._notify()

    async def _start_after_load(self, request_id: int) -> None:
        if request_id != self._request_id:
            return
        self._is_loading = False
        if not self._start_when_ready:
            self._notify()
            return
        await self._start(request_id)

    async def _start(self, request_id: int) -> bool:
        """Start the output and settle the playing flag for this request."""
        try:
            await self.adapter.play()
        except PlaybackRejectedError as e:
            if request_id != self._request_id:
                return False
            logger.warning(f"Playback start rejected: {e}")
            self._fail(str(e), PlayerErrorKind.AUTOPLAY)
            return False
        except BackendError as e:
            if request_id != self._request_id or not self._current_track or not self._source:
                return False
            return await self._handle_load_failure(
                request_id, self._current_track, self._source, str(e)
            )

        if request_id != self._request_id or self.adapter.source != self._source:
            logger.debug(f"Discarding stale playback start (request {request_id})")
            return False

        self._is_playing = True
        self._is_loading = False
        self._error = None
        self._error_kind = None
        self._notify()
        logger.info(f"Playing: {self._current_track.display_title if self._current_track else '?'}")
        return True

    async def _stop_output(self) -> None:
        if not self.adapter.is_bound:
            return
        try:
            await self.adapter.stop()
        except BackendError as e:
            logger.warning(f"Error stopping output: {e}")

    # =========================================================================
    # Transport
    # =========================================================================

    async def play(self) -> bool:
        """
        Start or resume playback.

        With nothing selected, plays the queue's current track.
        """
        if not self._current_track:
            track = self.queue.current_track
            if not track:
                logger.warning("No track to play - queue empty")
                return False
            return await self.play_track(track)

        if self._is_playing:
            return True

        if self._is_loading:
            self._start_when_ready = True
            return True

        if self._error_kind == PlayerErrorKind.LOAD:
            logger.warning(f"Cannot play {self._current_track.display_title}: {self._error}")
            return False

        if not self._source or self.adapter.source != self._source:
            return await self.play_track(self._current_track)

        return await self._start(self._request_id)

    async def pause(self) -> bool:
        if self._is_loading:
            self._start_when_ready = False
            self._notify()
            return True

        if not self._is_playing:
            logger.debug("Cannot pause: not playing")
            return False

        try:
            await self.adapter.pause()
            self._current_time = await self.adapter.get_position()
        except BackendError as e:
            logger.error(f"Pause failed: {e}")
        self._is_playing = False
        self._notify()
        logger.info("Playback paused")
        return True

    async def toggle_play_pause(self) -> bool:
        """Pause if playing (or about to), else play. Returns the new playing intent."""
        if self._is_playing or (self._is_loading and self._start_when_ready):
            await self.pause()
            return False
        return await self.play()

    async def seek(self, position: float) -> bool:
        """
        Seek within the current track.

        Returns:
            True if applied, False if rejected (no track loaded)
        """
        if not self._current_track or not self._source:
            logger.warning("Cannot seek: no track loaded")
            return False

        try:
            applied = await self.adapter.seek(position)
        except BackendError as e:
            logger.error(f"Seek failed: {e}")
            return False

        self._current_time = applied
        self._notify()
        logger.debug(f"Seeked to {applied:.2f}s")
        return True

    # =========================================================================
    # Volume Controls
    # =========================================================================

    async def set_volume(self, level: float) -> float:
        """
        Set the volume (clamped to 0.0-1.0).

        The mute flag is independent: a muted player stays muted.

        Returns:
            Volume after clamping
        """
        self._volume = max(0.0, min(1.0, float(level)))
        await self.adapter.set_volume(self._volume)
        self._notify()
        logger.debug(f"Volume set to {self._volume:.2f}")
        return self._volume

    async def toggle_mute(self) -> bool:
        """Flip mute; the stored volume comes back on unmute. Returns the new flag."""
        self._muted = not self._muted
        await self.adapter.set_muted(self._muted)
        self._notify()
        logger.info(f"Muted: {self._muted}")
        return self._muted

    # =========================================================================
    # Queue Navigation
    # =========================================================================

    async def next_track(self) -> bool:
        """
        Skip to the next track.

        Returns:
            True if a track was started, False at the end of the queue
        """
        track = self.queue.next()
        if not track:
            logger.info("No next track")
            return False
        return await self.play_track(track)

    async def previous_track(self) -> bool:
        """
        Go to the previous track, or restart the current one once past the
        restart threshold.
        """
        if self._current_track and self._current_time > self.previous_restart_threshold:
            logger.debug(f"Restarting track (position {self._current_time:.1f}s)")
            return await self.seek(0.0)

        track = self.queue.previous()
        if not track:
            logger.info("No previous track")
            return False
        return await self.play_track(track)

    async def play_position(self, position: int) -> bool:
        """Jump the queue to a position and play it."""
        track = self.queue.jump(position)
        if not track:
            return False
        return await self.play_track(track)

    # =========================================================================
    # Callbacks from Adapter
    # =========================================================================

    def _on_time_update(self, source: Optional[str], position: float) -> None:
        if source is None or source != self._source:
            return
        self._current_time = position
        self._notify()

    def _on_metadata_ready(self, source: Optional[str], duration: float) -> None:
        if source is None or source != self._source:
            logger.debug(f"Ignoring metadata for stale source {source}")
            return
        self._duration = duration
        if self._is_loading:
            self._spawn(self._start_after_load(self._request_id))
        else:
            self._notify()

    def _on_ended(self, source: Optional[str]) -> None:
        if source is None or source != self._source:
            return
        logger.debug("Track ended callback")
        self._spawn(self._handle_track_ended(self._request_id))

    def _on_error(self, source: Optional[str], message: str) -> None:
        if source is None or source != self._source:
            return
        if source == self._pending_load:
            # load() raises as well; handled there
            return
        if self._current_track is None:
            return
        logger.error(f"Playback error: {message}")
        # The retry resumes only if the track was playing
        self._start_when_ready = self._is_playing
        self._is_playing = False
        self._is_loading = True
        self._notify()
        self._spawn(
            self._handle_load_failure(self._request_id, self._current_track, source, message)
        )

    async def _handle_track_ended(self, request_id: int) -> None:
        """Handle natural track end."""
        if request_id != self._request_id:
            return
        logger.info("Track ended naturally")

        if self.queue.repeat_mode == RepeatMode.ONE and self._current_track:
            try:
                await self.adapter.seek(0.0)
            except BackendError as e:
                logger.warning(f"Rewind failed: {e}")
            self._current_time = 0.0
            await self._start(request_id)
            return

        track = self.queue.next()
        if request_id != self._request_id:
            return
        if track is None:
            logger.info("End of queue - playback stopped")
            self._is_playing = False
            self._current_time = self._duration
            self._notify()
            return

        await self.play_track(track)
