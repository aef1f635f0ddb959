"""Tests for the audio adapter."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from cgplayer.backends import BackendTrackMetadata, SilentBackend
from cgplayer.playback.adapter import AdapterNotBoundError, AudioAdapter

URL = "http://media/a.mp3"


@pytest.fixture
def backend() -> SilentBackend:
    return SilentBackend(tick_interval=0.01)


@pytest.fixture
def adapter(backend: SilentBackend) -> AudioAdapter:
    adapter = AudioAdapter()
    adapter.bind(backend)
    return adapter


def metadata(duration: float = 10.0) -> BackendTrackMetadata:
    return BackendTrackMetadata(track_id="1", title="Song", duration=duration)


class TestBinding:
    """Tests for binding the shared backend."""

    def test_unbound_raises(self) -> None:
        """Test using an unbound adapter raises."""
        adapter = AudioAdapter()
        assert adapter.is_bound is False
        assert adapter.source is None
        with pytest.raises(AdapterNotBoundError):
            adapter.backend

    async def test_unbound_operations_raise(self) -> None:
        """Test transport calls on an unbound adapter raise."""
        adapter = AudioAdapter()
        with pytest.raises(AdapterNotBoundError):
            await adapter.play()
        with pytest.raises(AdapterNotBoundError):
            await adapter.load(URL, metadata())

    async def test_rebind_replaces_and_detaches(self, adapter: AudioAdapter, backend) -> None:
        """Test the last bind wins and the old backend stops reporting."""
        listener = MagicMock()
        adapter.on_metadata_ready(listener)

        other = SilentBackend(name="Other")
        adapter.bind(other)
        assert adapter.backend is other

        # Old backend events no longer reach the listener
        backend._notify_metadata_ready(5.0)
        listener.assert_not_called()

        other._source = URL
        other._notify_metadata_ready(5.0)
        listener.assert_called_once_with(URL, 5.0)

    def test_rebind_same_backend_is_noop(self, adapter: AudioAdapter, backend) -> None:
        """Test binding the bound backend again keeps its callbacks."""
        adapter.bind(backend)
        assert backend._on_time_update is not None


class TestTransport:
    """Tests for load/play/seek."""

    async def test_load_does_not_play(self, adapter: AudioAdapter, backend) -> None:
        """Test load sets the source and reports metadata without playing."""
        ready = MagicMock()
        adapter.on_metadata_ready(ready)

        await adapter.load(URL, metadata(12.0))
        assert adapter.source == URL
        await asyncio.sleep(0)

        ready.assert_called_once_with(URL, 12.0)
        assert adapter.duration == 12.0
        assert backend._tick_task is None

    async def test_seek_clamped(self, adapter: AudioAdapter) -> None:
        """Test seek is clamped to [0, duration]."""
        await adapter.load(URL, metadata(10.0))
        await asyncio.sleep(0)

        assert await adapter.seek(25.0) == 10.0
        assert await adapter.seek(-3.0) == 0.0
        assert await adapter.seek(4.5) == 4.5
        assert await adapter.get_position() == pytest.approx(4.5)

    async def test_stop_resets_duration(self, adapter: AudioAdapter) -> None:
        """Test stop drops the source and duration."""
        await adapter.load(URL, metadata(10.0))
        await asyncio.sleep(0)
        await adapter.stop()
        assert adapter.source is None
        assert adapter.duration == 0.0

    async def test_events_carry_source(self, adapter: AudioAdapter, backend) -> None:
        """Test time, ended and error events are tagged with the source URL."""
        times, ended, errors = MagicMock(), MagicMock(), MagicMock()
        adapter.on_time_update(times)
        adapter.on_ended(ended)
        adapter.on_error(errors)

        await adapter.load(URL, metadata(0.03))
        await asyncio.sleep(0)
        await adapter.play()
        await asyncio.sleep(0.1)

        assert times.call_args_list[0].args[0] == URL
        ended.assert_called_once_with(URL)

        backend._notify_playback_error("decode failed")
        errors.assert_called_once_with(URL, "decode failed")

    async def test_listener_error_absorbed(self, adapter: AudioAdapter, backend) -> None:
        """Test a failing listener does not propagate into the backend."""
        adapter.on_metadata_ready(MagicMock(side_effect=RuntimeError("boom")))
        await adapter.load(URL, metadata())
        await asyncio.sleep(0)
        assert adapter.duration == 10.0


class TestVolume:
    """Tests for volume and mute."""

    async def test_mute_overrides_volume(self) -> None:
        """Test the output gets 0 while muted and the volume after."""
        backend = MagicMock()
        backend.set_volume = AsyncMock()
        adapter = AudioAdapter()
        adapter._backend = backend

        await adapter.set_volume(0.6)
        backend.set_volume.assert_awaited_with(0.6)

        await adapter.set_muted(True)
        assert adapter.effective_volume == 0.0
        backend.set_volume.assert_awaited_with(0.0)

        await adapter.set_volume(0.8)
        backend.set_volume.assert_awaited_with(0.0)

        await adapter.set_muted(False)
        backend.set_volume.assert_awaited_with(0.8)

    async def test_volume_clamped(self, adapter: AudioAdapter, backend) -> None:
        """Test volume is clamped before reaching the output."""
        await adapter.set_volume(1.5)
        assert await backend.get_volume() == 1.0
        await adapter.set_volume(-0.2)
        assert await backend.get_volume() == 0.0
