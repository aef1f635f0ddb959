"""
Local audio backend.

Downloads the track from the CGPlayerWeb file routes, decodes it to float32
samples, and plays it on a sound card via PortAudio. The decoded track is
held in memory and the output callback reads from a frame cursor, so
seeking is a cursor move.
"""

import asyncio
import io
import logging
import threading
from typing import Optional

import aiohttp
import numpy as np

from cgplayer.backends.base import AudioBackend
from cgplayer.backends.types import (
    BackendInfo,
    BackendTrackMetadata,
    MediaLoadError,
    PlaybackRejectedError,
    PlaybackState,
)
from .device import OutputDevice, _import_sounddevice, find_output_device

logger = logging.getLogger(__name__)

PROGRESS_INTERVAL = 0.25  # seconds between time updates
DOWNLOAD_TIMEOUT = 60.0


def decode_audio(data: bytes) -> tuple[np.ndarray, int]:
    """Decode an audio file to a (frames, channels) float32 array."""
    import soundfile

    try:
        samples, sample_rate = soundfile.read(io.BytesIO(data), dtype="float32", always_2d=True)
    except RuntimeError as e:
        raise MediaLoadError(f"Cannot decode audio: {e}")
    return samples, sample_rate


class LocalAudioBackend(AudioBackend):
    """Sound card output using sounddevice/PortAudio."""

    def __init__(
        self,
        device: str = "default",
        blocksize: int = 2048,
        name: str = "Local Audio",
    ):
        super().__init__(name)
        self._device_setting = device
        self._blocksize = blocksize
        self._device: Optional[OutputDevice] = None

        # Decoded source
        self._samples: Optional[np.ndarray] = None
        self._sample_rate: int = 0
        self._cursor: int = 0  # next frame to output
        self._finished = False
        self._lock = threading.Lock()  # cursor is shared with the audio thread

        self._stream = None  # sounddevice.OutputStream
        self._monitor_task: Optional[asyncio.Task] = None

    # =========================================================================
    # Source and Transport
    # =========================================================================

    async def load(self, url: str, metadata: BackendTrackMetadata) -> None:
        await self._release_source()
        self._source = url
        self._notify_state_change(PlaybackState.LOADING)

        try:
            samples, sample_rate = await self._download_and_decode(url, metadata.headers)
        except MediaLoadError as e:
            if self._source == url:
                self._notify_state_change(PlaybackState.ERROR)
                self._notify_playback_error(str(e))
            raise

        if self._source != url:
            logger.debug(f"Discarding superseded load of {url}")
            return

        with self._lock:
            self._samples = samples
            self._sample_rate = sample_rate
            self._cursor = 0
            self._finished = False

        duration = len(samples) / sample_rate
        logger.info(
            f"Loaded: {metadata.artist} - {metadata.title} "
            f"({sample_rate}Hz, {samples.shape[1]}ch, {duration:.1f}s)"
        )
        self._notify_state_change(PlaybackState.PAUSED)
        self._notify_metadata_ready(duration)

    async def _download_and_decode(
        self, url: str, headers: Optional[dict[str, str]] = None
    ) -> tuple[np.ndarray, int]:
        """Fetch the file and decode it."""
        timeout = aiohttp.ClientTimeout(total=DOWNLOAD_TIMEOUT)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(url, headers=headers or {}) as response:
                    response.raise_for_status()
                    data = await response.read()
        except aiohttp.ClientResponseError as e:
            raise MediaLoadError(f"HTTP {e.status} loading {url}")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise MediaLoadError(f"Cannot fetch {url}: {e}")

        logger.debug(f"Downloaded {len(data)} bytes, decoding...")
        return decode_audio(data)

    async def play(self) -> None:
        if self._samples is None:
            raise MediaLoadError("No decoded source to play")
        if self._state == PlaybackState.PLAYING:
            return

        with self._lock:
            if self._finished:
                self._cursor = 0
                self._finished = False

        try:
            if self._stream is None:
                self._stream = self._open_stream()
            self._stream.start()
        except (ImportError, MediaLoadError):
            raise
        except Exception as e:
            logger.error(f"Audio device refused playback: {e}")
            raise PlaybackRejectedError(f"Audio device refused playback: {e}")

        self._notify_state_change(PlaybackState.PLAYING)
        self._monitor_task = asyncio.create_task(self._monitor_loop())

    def _open_stream(self):
        if self._samples is None:
            raise MediaLoadError("No decoded source to play")
        sd = _import_sounddevice()
        return sd.OutputStream(
            device=self._device.index if self._device else None,
            samplerate=self._sample_rate,
            channels=self._samples.shape[1],
            dtype="float32",
            blocksize=self._blocksize,
            callback=self._audio_callback,
        )

    async def pause(self) -> None:
        await self._cancel_monitor()
        if self._stream is not None:
            self._stream.stop()
        if self._source:
            self._notify_state_change(PlaybackState.PAUSED)

    async def stop(self) -> None:
        await self._release_source()
        self._notify_state_change(PlaybackState.STOPPED)

    async def _release_source(self) -> None:
        await self._cancel_monitor()
        self._close_stream()
        with self._lock:
            self._samples = None
            self._sample_rate = 0
            self._cursor = 0
            self._finished = False
        self._source = None

    def _close_stream(self) -> None:
        if self._stream is None:
            return
        try:
            self._stream.stop()
            self._stream.close()
        except Exception as e:
            logger.warning(f"Error closing audio stream: {e}")
        self._stream = None

    # =========================================================================
    # Output
    # =========================================================================

    def _audio_callback(self, outdata: np.ndarray, frames: int, time_info, status) -> None:
        """PortAudio callback, runs on the audio thread."""
        if status:
            logger.debug(f"Audio callback status: {status}")

        with self._lock:
            if self._samples is None or self._finished:
                outdata[:] = 0
                return
            chunk = self._samples[self._cursor : self._cursor + frames]
            self._cursor += len(chunk)
            if self._cursor >= len(self._samples):
                self._finished = True

        outdata[: len(chunk)] = chunk * self._volume
        outdata[len(chunk) :] = 0

    async def _monitor_loop(self) -> None:
        """Report progress and detect the end of the track."""
        try:
            while True:
                await asyncio.sleep(PROGRESS_INTERVAL)
                self._notify_time_update(await self.get_position())

                if self._finished:
                    if self._stream is not None:
                        self._stream.stop()
                    self._notify_state_change(PlaybackState.STOPPED)
                    self._notify_track_ended()
                    return
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.error(f"Playback monitor error: {e}", exc_info=True)
            self._notify_state_change(PlaybackState.ERROR)
            self._notify_playback_error(str(e))

    async def _cancel_monitor(self) -> None:
        task = self._monitor_task
        self._monitor_task = None
        if task and not task.done() and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    # =========================================================================
    # Position
    # =========================================================================

    async def seek(self, position: float) -> None:
        with self._lock:
            if self._samples is None or self._sample_rate == 0:
                return
            frame = int(max(0.0, position) * self._sample_rate)
            self._cursor = min(frame, len(self._samples))
            self._finished = False
            position = self._cursor / self._sample_rate
        self._notify_time_update(position)

    async def get_position(self) -> float:
        with self._lock:
            if self._sample_rate == 0:
                return 0.0
            return self._cursor / self._sample_rate

    async def get_duration(self) -> float:
        with self._lock:
            if self._samples is None or self._sample_rate == 0:
                return 0.0
            return len(self._samples) / self._sample_rate

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def connect(self) -> bool:
        """Resolve the configured output device."""
        try:
            self._device = find_output_device(self._device_setting)
        except (ValueError, ImportError) as e:
            logger.error(f"Failed to initialize audio device: {e}")
            return False

        self.name = f"Local: {self._device.name}"
        self._is_connected = True
        logger.info(
            f"Audio output device: {self._device.name} "
            f"({int(self._device.default_samplerate)} Hz, {self._device.channels}ch)"
        )
        return True

    async def disconnect(self) -> None:
        await self.stop()
        self._is_connected = False

    def get_info(self) -> BackendInfo:
        return BackendInfo(
            backend_type="local",
            name=self.name,
            device_id=f"local-{self._device_setting}",
            channels=self._device.channels if self._device else None,
            sample_rate=self._sample_rate or None,
        )
