"""Tests for the player state store."""

import asyncio
from typing import Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from cgplayer.backends import BackendTrackMetadata, SilentBackend
from cgplayer.library import Track
from cgplayer.playback import AudioAdapter, Player, PlayerErrorKind, PlayQueue, RepeatMode

BASE_URL = "http://api.test"


def make_track(track_id: str, duration: float = 5.0, **kwargs) -> Track:
    kwargs.setdefault("file_path", f"{track_id}.mp3")
    return Track(id=track_id, title=f"Song {track_id}", duration=duration, **kwargs)


async def settle(seconds: float = 0.02) -> None:
    """Let scheduled callbacks and tasks run."""
    await asyncio.sleep(seconds)


class GatedBackend(SilentBackend):
    """Silent backend whose play() waits for a gate."""

    def __init__(self) -> None:
        super().__init__(tick_interval=0.01)
        self.gate = asyncio.Event()

    async def play(self) -> None:
        await self.gate.wait()
        await super().play()


@pytest.fixture
def backend() -> SilentBackend:
    return SilentBackend(tick_interval=0.01)


@pytest.fixture
def adapter(backend: SilentBackend) -> AudioAdapter:
    adapter = AudioAdapter()
    adapter.bind(backend)
    return adapter


@pytest.fixture
def queue() -> PlayQueue:
    return PlayQueue([make_track("A"), make_track("B"), make_track("C")])


@pytest.fixture
async def player(adapter: AudioAdapter, queue: PlayQueue):
    player = Player(adapter, queue, base_url=BASE_URL)
    await player.start()
    yield player
    await player.stop()


class TestPlayTrack:
    """Tests for loading and autoplay."""

    async def test_autoplay_after_metadata(self, player: Player, queue: PlayQueue) -> None:
        """Test a selected track starts once its duration is known."""
        assert await player.play_track(queue.current_track) is True
        assert player.is_loading is True
        assert player.is_playing is False

        await settle()

        assert player.is_playing is True
        assert player.is_loading is False
        assert player.current_track.id == "A"
        assert player.duration == 5.0
        assert player.source == f"{BASE_URL}/uploads/A.mp3"
        assert player.error is None

    async def test_no_autoplay(self, adapter: AudioAdapter, queue: PlayQueue) -> None:
        """Test autoplay off leaves the track loaded and paused."""
        player = Player(adapter, queue, base_url=BASE_URL, autoplay=False)
        await player.play_track(queue.current_track)
        await settle()

        assert player.is_playing is False
        assert player.is_loading is False

        assert await player.play() is True
        assert player.is_playing is True
        await player.stop()

    async def test_autoplay_rejected(self, player: Player, backend, queue: PlayQueue) -> None:
        """Test a refused start leaves the player paused with an autoplay error."""
        backend.reject_play = True
        await player.play_track(queue.current_track)
        await settle()

        assert player.is_playing is False
        assert player.is_loading is False
        assert player.error_kind == PlayerErrorKind.AUTOPLAY
        assert player.current_track.id == "A"

    async def test_pause_while_loading_holds_autoplay(self, player: Player, queue) -> None:
        """Test pausing during the load keeps the track from starting."""
        await player.play_track(queue.current_track)
        await player.pause()
        await settle()

        assert player.is_playing is False
        assert player.is_loading is False

    async def test_headers_passed_to_output(self, queue: PlayQueue) -> None:
        """Test the auth headers travel with the load."""
        adapter = MagicMock()
        adapter.is_bound = True
        adapter.stop = AsyncMock()
        adapter.load = AsyncMock()
        player = Player(
            adapter, queue, base_url=BASE_URL, headers_provider=lambda: {"Authorization": "Bearer t"}
        )

        await player.play_track(queue.current_track)

        url, meta = adapter.load.await_args.args
        assert url == f"{BASE_URL}/uploads/A.mp3"
        assert isinstance(meta, BackendTrackMetadata)
        assert meta.headers == {"Authorization": "Bearer t"}
        assert meta.duration == 5.0


class TestLoadErrors:
    """Tests for load failures and the corrected-URL retry."""

    async def test_retry_with_corrected_url(self, player: Player, backend) -> None:
        """Test one retry with the corrected URL after a load failure."""
        bad = "http://media.test//songs//A.mp3"
        backend.failing_urls = {bad}

        await player.play_track(make_track("A", file_path=None, url=bad))
        await settle()

        assert player.source == "http://media.test/songs/A.mp3"
        assert player.is_playing is True
        assert player.error is None

    async def test_second_failure_is_terminal(self, player: Player, backend) -> None:
        """Test the track stays selected but errored when the retry fails too."""
        bad = "http://media.test//songs//A.mp3"
        backend.failing_urls = {bad, "http://media.test/songs/A.mp3"}
        track = make_track("A", file_path=None, url=bad)

        assert await player.play_track(track) is False
        await settle()

        assert player.is_playing is False
        assert player.is_loading is False
        assert player.error_kind == PlayerErrorKind.LOAD
        assert player.current_track == track

        # Terminal until another track is picked
        assert await player.play() is False

    async def test_no_correction_available(self, player: Player, backend) -> None:
        """Test a failure with no alternative URL is terminal right away."""
        track = make_track("A")
        backend.failing_urls = {f"{BASE_URL}/uploads/A.mp3"}

        assert await player.play_track(track) is False
        assert player.error_kind == PlayerErrorKind.LOAD

    async def test_track_without_file(self, player: Player) -> None:
        """Test a track with no file reference is a load error."""
        track = Track(id="X", title="Nothing")
        assert await player.play_track(track) is False
        assert player.error_kind == PlayerErrorKind.LOAD
        assert player.current_track == track

    async def test_picking_another_track_clears_error(self, player: Player, backend) -> None:
        """Test selecting a new track resets the error."""
        await player.play_track(Track(id="X", title="Nothing"))
        await player.play_track(make_track("B"))
        await settle()
        assert player.error is None
        assert player.is_playing is True


class TestStaleRequests:
    """Tests for superseded play_track calls."""

    async def test_stale_settle_ignored(self, queue: PlayQueue) -> None:
        """Test a start that settles after a newer selection never flips playing."""
        backend = GatedBackend()
        adapter = AudioAdapter()
        adapter.bind(backend)
        player = Player(adapter, queue, base_url=BASE_URL)

        seen: list[tuple[Optional[str], bool]] = []
        player.subscribe(
            lambda: seen.append(
                (player.current_track.id if player.current_track else None, player.is_playing)
            )
        )

        await player.play_track(make_track("A"))
        await settle()
        await player.play_track(make_track("B"))
        await settle()

        backend.gate.set()
        await settle()

        assert ("A", True) not in seen
        assert player.current_track.id == "B"
        assert player.is_playing is True
        await player.stop()

    async def test_stale_events_ignored(self, player: Player, queue: PlayQueue) -> None:
        """Test events for another source do not touch the state."""
        await player.play_track(queue.current_track)
        await settle()
        before = player.current_time

        player._on_time_update("http://elsewhere/x.mp3", 3.0)
        player._on_metadata_ready("http://elsewhere/x.mp3", 99.0)

        assert player.current_time == before
        assert player.duration == 5.0

    async def test_playback_error_retries_then_terminal(self, player: Player, backend) -> None:
        """Test an error after load retries the corrected URL once, then gives up."""
        track = make_track("A", file_name="A.mp3")
        await player.play_track(track)
        await settle()
        assert player.source == f"{BASE_URL}/uploads/A.mp3"

        backend._notify_playback_error("decoder died")
        await settle()

        assert player.source == f"{BASE_URL}/api/songs/file-root/A.mp3"
        assert backend.source == player.source
        assert player.is_playing is True
        assert player.error is None

        backend._notify_playback_error("decoder died again")
        await settle()

        assert player.is_playing is False
        assert player.error_kind == PlayerErrorKind.LOAD
        assert player.current_track == track
        assert await player.play() is False

    async def test_paused_track_retry_stays_paused(self, player: Player, backend) -> None:
        await player.play_track(make_track("A", file_name="A.mp3"))
        await settle()
        await player.pause()

        backend._notify_playback_error("decoder died")
        await settle()

        assert player.source == f"{BASE_URL}/api/songs/file-root/A.mp3"
        assert player.is_loading is False
        assert player.is_playing is False

    async def test_error_racing_new_selection(self, player: Player, backend) -> None:
        """Test a retry for an old track never replaces a newer selection."""
        await player.play_track(make_track("A", file_name="A.mp3"))
        await settle()
        await player.pause()

        backend._notify_playback_error("decoder died")
        await player.play_track(make_track("B"))
        await settle(0.05)

        assert player.current_track.id == "B"
        assert player.source == f"{BASE_URL}/uploads/B.mp3"
        assert backend.source == player.source
        assert player.is_playing is True
        assert player.error is None


class TestTransport:
    """Tests for play/pause/seek."""

    async def test_play_with_nothing_selected(self, player: Player) -> None:
        """Test play() picks the queue's current track."""
        assert await player.play() is True
        await settle()
        assert player.current_track.id == "A"
        assert player.is_playing is True

    async def test_play_empty_queue(self, adapter: AudioAdapter) -> None:
        """Test play() with nothing to play does nothing."""
        player = Player(adapter, PlayQueue(), base_url=BASE_URL)
        assert await player.play() is False
        assert player.current_track is None

    async def test_toggle(self, player: Player, queue: PlayQueue) -> None:
        """Test toggle_play_pause alternates."""
        await player.play_track(queue.current_track)
        await settle()

        assert await player.toggle_play_pause() is False
        assert player.is_playing is False
        assert await player.toggle_play_pause() is True
        assert player.is_playing is True

    async def test_seek_without_track(self, player: Player) -> None:
        """Test seek is rejected with no track loaded."""
        assert await player.seek(2.0) is False

    async def test_seek_clamped(self, player: Player, queue: PlayQueue) -> None:
        """Test seek never exceeds the duration."""
        await player.play_track(queue.current_track)
        await settle()
        await player.pause()

        assert await player.seek(2.0) is True
        assert player.current_time == 2.0
        await player.seek(99.0)
        assert player.current_time == 5.0
        await player.seek(-1.0)
        assert player.current_time == 0.0

    async def test_time_follows_output(self, player: Player, queue: PlayQueue) -> None:
        """Test current_time advances from the output's progress events."""
        await player.play_track(queue.current_track)
        await settle(0.08)
        assert player.current_time > 0.0


class TestVolume:
    """Tests for volume and mute."""

    async def test_volume_clamped(self, player: Player) -> None:
        """Test out-of-range volumes are clamped."""
        assert await player.set_volume(1.5) == 1.0
        assert player.volume == 1.0
        assert await player.set_volume(-0.2) == 0.0
        assert player.volume == 0.0

    @pytest.mark.parametrize("level", [0.0, 0.25, 0.42, 1.0])
    async def test_mute_round_trip(self, player: Player, backend, level: float) -> None:
        """Test unmuting restores the exact pre-mute volume."""
        await player.set_volume(level)

        assert await player.toggle_mute() is True
        assert player.muted is True
        assert player.volume == level
        assert await backend.get_volume() == 0.0

        assert await player.toggle_mute() is False
        assert player.volume == level
        assert await backend.get_volume() == level

    async def test_volume_change_while_muted(self, player: Player, backend) -> None:
        """Test changing the volume while muted stays silent until unmute."""
        await player.toggle_mute()
        await player.set_volume(0.3)
        assert await backend.get_volume() == 0.0
        await player.toggle_mute()
        assert await backend.get_volume() == 0.3

    async def test_zero_volume_is_silent_not_muted(self, player: Player) -> None:
        """Test volume 0 shows as silent without setting the mute flag."""
        await player.set_volume(0.0)
        assert player.is_silent is True
        assert player.muted is False


class TestNavigation:
    """Tests for next/previous/play_position."""

    async def test_next_track(self, player: Player, queue: PlayQueue) -> None:
        """Test next plays the following queue track."""
        await player.play_track(queue.current_track)
        assert await player.next_track() is True
        await settle()
        assert player.current_track.id == "B"
        assert player.is_playing is True

    async def test_next_at_end(self, player: Player, queue: PlayQueue) -> None:
        """Test next at the end leaves playback as it is."""
        queue.jump(2)
        await player.play_track(queue.current_track)
        await settle()

        assert await player.next_track() is False
        assert player.current_track.id == "C"
        assert player.is_playing is True

    async def test_previous_restarts_after_threshold(self, player: Player, queue) -> None:
        """Test previous restarts the track once past the threshold."""
        queue.jump(1)
        await player.play_track(queue.current_track)
        await settle()
        await player.seek(4.0)

        assert await player.previous_track() is True
        assert player.current_time == 0.0
        assert queue.current_index == 1
        assert player.current_track.id == "B"

    async def test_previous_goes_back(self, player: Player, queue: PlayQueue) -> None:
        """Test previous near the start goes to the previous track."""
        queue.jump(1)
        await player.play_track(queue.current_track)
        await settle()

        assert await player.previous_track() is True
        assert player.current_track.id == "A"

    async def test_previous_at_start(self, player: Player, queue: PlayQueue) -> None:
        """Test previous at the first track with repeat off does nothing."""
        await player.play_track(queue.current_track)
        assert await player.previous_track() is False
        assert player.current_track.id == "A"

    async def test_play_position(self, player: Player, queue: PlayQueue) -> None:
        """Test play_position jumps the queue and plays."""
        assert await player.play_position(2) is True
        assert queue.current_index == 2
        assert player.current_track.id == "C"


class TestTrackEnd:
    """Tests for end-of-track handling."""

    async def test_auto_advance_then_stop(self, adapter: AudioAdapter) -> None:
        """Test tracks advance at the end and playback stops after the last."""
        queue = PlayQueue([make_track("A", 0.03), make_track("B", 0.03)])
        player = Player(adapter, queue, base_url=BASE_URL)

        await player.play_track(queue.current_track)
        await settle(0.3)

        assert queue.current_index == 1
        assert player.current_track.id == "B"
        assert player.is_playing is False
        assert player.current_time == player.duration
        await player.stop()

    async def test_repeat_one_replays(self, adapter: AudioAdapter) -> None:
        """Test repeat one replays the same track from the start."""
        queue = PlayQueue([make_track("A", 0.03), make_track("B", 0.03)])
        queue.set_repeat(RepeatMode.ONE)
        player = Player(adapter, queue, base_url=BASE_URL)

        await player.play_track(queue.current_track)
        await settle(0.2)

        assert queue.current_index == 0
        assert player.current_track.id == "A"
        assert player.is_playing is True
        await player.stop()

    async def test_repeat_all_wraps(self, adapter: AudioAdapter) -> None:
        """Test repeat all continues from the first track after the last."""
        queue = PlayQueue([make_track("A", 5.0), make_track("B", 0.03)])
        queue.jump(1)
        queue.set_repeat(RepeatMode.ALL)
        player = Player(adapter, queue, base_url=BASE_URL)

        await player.play_track(queue.current_track)
        await settle(0.15)

        assert player.current_track.id == "A"
        assert player.is_playing is True
        await player.stop()


class TestObservers:
    """Tests for state observers."""

    async def test_sync_and_async_observers(self, player: Player) -> None:
        """Test both kinds of observers are notified."""
        sync_cb = MagicMock()
        async_cb = AsyncMock()
        player.subscribe(sync_cb)
        player.subscribe(async_cb)

        await player.set_volume(0.5)
        await settle()

        sync_cb.assert_called()
        async_cb.assert_awaited()

    async def test_observer_errors_absorbed(self, player: Player) -> None:
        """Test a failing observer does not break the operation."""
        player.subscribe(MagicMock(side_effect=RuntimeError("boom")))
        assert await player.set_volume(0.5) == 0.5

    async def test_unsubscribe(self, player: Player) -> None:
        """Test unsubscribed observers are not called."""
        cb = MagicMock()
        unsubscribe = player.subscribe(cb)
        unsubscribe()
        await player.set_volume(0.5)
        cb.assert_not_called()

    async def test_snapshot(self, player: Player, queue: PlayQueue) -> None:
        """Test the snapshot is JSON-friendly."""
        await player.play_track(queue.current_track)
        await settle()
        snap = player.snapshot()
        assert snap["current_track"]["id"] == "A"
        assert snap["is_playing"] is True
        assert snap["error_kind"] is None
        assert snap["volume"] == 1.0
