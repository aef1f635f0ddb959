"""Tests for the playback command handler."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from cgplayer.backends import SilentBackend
from cgplayer.library import Track, TrackCatalog, VoiceType
from cgplayer.playback import (
    AudioAdapter,
    CommandError,
    PlaybackCommandHandler,
    Player,
    PlayQueue,
    RepeatMode,
)

SONG = Track(id="10", title="Requiem", file_path="requiem.mp3")
VERSIONS = [
    Track(id="11", title="Requiem", voice_type=VoiceType.SOPRANO, parent_id="10", file_path="s.mp3"),
    Track(id="12", title="Requiem", voice_type=VoiceType.TENOR, parent_id="10", file_path="t.mp3"),
    Track(id="13", title="Requiem", voice_type=VoiceType.CORO, parent_id="10", file_path="c.mp3"),
]


def make_track(track_id: str) -> Track:
    return Track(id=track_id, title=f"Song {track_id}", duration=5.0, file_path=f"{track_id}.mp3")


@pytest.fixture
def queue() -> PlayQueue:
    return PlayQueue([make_track("A"), make_track("B"), make_track("C")])


@pytest.fixture
def api_client() -> AsyncMock:
    client = AsyncMock()
    client.get_versions.return_value = [SONG, *VERSIONS]
    return client


@pytest.fixture
async def handler(queue: PlayQueue, api_client: AsyncMock):
    adapter = AudioAdapter()
    adapter.bind(SilentBackend(tick_interval=0.01))
    player = Player(adapter, queue, base_url="http://api.test")
    catalog = TrackCatalog(queue.canonical_tracks + [make_track("D")])
    handler = PlaybackCommandHandler(player, queue, catalog=catalog, api_client=api_client)
    yield handler
    await player.stop()


class TestDispatch:
    """Tests for command dispatch."""

    async def test_unknown_command(self, handler: PlaybackCommandHandler) -> None:
        """Test unknown commands raise CommandError."""
        with pytest.raises(CommandError, match="Unknown command"):
            await handler.handle("rewind")

    async def test_params_must_be_object(self, handler: PlaybackCommandHandler) -> None:
        """Test non-dict parameters are rejected."""
        with pytest.raises(CommandError):
            await handler.handle("seek", [1, 2])

    async def test_command_list(self, handler: PlaybackCommandHandler) -> None:
        """Test every command is listed."""
        commands = handler.get_commands()
        assert len(commands) == 18
        assert {"play", "enqueue_song", "repeat", "move"} <= set(commands)


class TestTransportCommands:
    """Tests for transport commands."""

    async def test_play_and_pause(self, handler: PlaybackCommandHandler) -> None:
        """Test play starts the queue's current track and pause stops it."""
        assert await handler.handle("play") == {"ok": True}
        await asyncio.sleep(0.02)
        assert handler.player.is_playing is True

        assert await handler.handle("pause") == {"ok": True}
        assert handler.player.is_playing is False

    async def test_play_track_id(self, handler: PlaybackCommandHandler) -> None:
        """Test play with a track id plays that catalog track."""
        await handler.handle("play", {"track_id": "D"})
        assert handler.player.current_track.id == "D"

    async def test_play_unknown_track(self, handler: PlaybackCommandHandler) -> None:
        """Test an unknown track id is rejected."""
        with pytest.raises(CommandError, match="Unknown track"):
            await handler.handle("play", {"track_id": "nope"})

    async def test_toggle(self, handler: PlaybackCommandHandler) -> None:
        """Test toggle reports the new playing intent."""
        result = await handler.handle("toggle")
        assert result == {"ok": True, "playing": True}

    async def test_seek_requires_position(self, handler: PlaybackCommandHandler) -> None:
        """Test seek validates its parameter."""
        with pytest.raises(CommandError):
            await handler.handle("seek", {})
        with pytest.raises(CommandError):
            await handler.handle("seek", {"position": "soon"})
        with pytest.raises(CommandError):
            await handler.handle("seek", {"position": True})

    async def test_seek_without_track(self, handler: PlaybackCommandHandler) -> None:
        """Test seek with nothing loaded reports failure."""
        result = await handler.handle("seek", {"position": 3})
        assert result["ok"] is False

    async def test_volume_clamped(self, handler: PlaybackCommandHandler) -> None:
        """Test the volume result is the clamped value."""
        assert await handler.handle("volume", {"level": 2}) == {"ok": True, "volume": 1.0}
        assert await handler.handle("volume", {"level": "0.25"}) == {"ok": True, "volume": 0.25}

    async def test_mute(self, handler: PlaybackCommandHandler) -> None:
        """Test mute toggles without a parameter and sets with one."""
        assert (await handler.handle("mute"))["muted"] is True
        assert (await handler.handle("mute", {"muted": True}))["muted"] is True
        assert (await handler.handle("mute", {"muted": False}))["muted"] is False
        with pytest.raises(CommandError):
            await handler.handle("mute", {"muted": "yes"})

    async def test_next_previous(self, handler: PlaybackCommandHandler) -> None:
        """Test next and previous move through the queue."""
        await handler.handle("play")
        assert await handler.handle("next") == {"ok": True}
        assert handler.player.current_track.id == "B"
        assert await handler.handle("previous") == {"ok": True}
        assert handler.player.current_track.id == "A"

    async def test_play_position(self, handler: PlaybackCommandHandler) -> None:
        """Test play_position plays the given position."""
        await handler.handle("play_position", {"position": 2})
        assert handler.player.current_track.id == "C"


class TestQueueCommands:
    """Tests for queue editing commands."""

    async def test_enqueue_single(self, handler: PlaybackCommandHandler) -> None:
        """Test enqueue appends a known track."""
        result = await handler.handle("enqueue", {"track_id": "D"})
        assert result == {"ok": True, "added": 1, "queue_length": 4}
        assert handler.queue.tracks[-1].id == "D"

    async def test_enqueue_many_and_play(self, handler: PlaybackCommandHandler) -> None:
        """Test enqueue with play starts the first added track."""
        result = await handler.handle("enqueue", {"track_ids": ["D", "A"], "play": True})
        assert result["added"] == 2
        assert handler.queue.current_index == 3
        assert handler.player.current_track.id == "D"

    async def test_enqueue_validation(self, handler: PlaybackCommandHandler) -> None:
        """Test enqueue rejects missing or bad ids."""
        with pytest.raises(CommandError):
            await handler.handle("enqueue", {})
        with pytest.raises(CommandError):
            await handler.handle("enqueue", {"track_ids": []})
        with pytest.raises(CommandError):
            await handler.handle("enqueue", {"track_ids": ["D", "zzz"]})
        assert len(handler.queue) == 3

    async def test_enqueue_song_filters_voices(
        self, handler: PlaybackCommandHandler, api_client: AsyncMock
    ) -> None:
        """Test enqueue_song keeps the container, shared mixes and the requested voice."""
        result = await handler.handle("enqueue_song", {"song_id": 10, "voices": ["tenor"]})

        api_client.get_versions.assert_awaited_once_with("10")
        assert result["added"] == 3
        assert [t.id for t in handler.queue.tracks[3:]] == ["10", "12", "13"]
        # Every version is known afterwards, even the filtered ones
        assert handler.catalog.get("11") is not None

    async def test_enqueue_song_all_voices(self, handler: PlaybackCommandHandler) -> None:
        """Test enqueue_song without voices adds every version."""
        result = await handler.handle("enqueue_song", {"song_id": "10"})
        assert result["added"] == 4

    async def test_enqueue_song_bad_voice(self, handler: PlaybackCommandHandler) -> None:
        """Test an unknown voice name is rejected."""
        with pytest.raises(CommandError, match="voice"):
            await handler.handle("enqueue_song", {"song_id": "10", "voices": ["whistle"]})

    async def test_enqueue_song_without_api(self, queue: PlayQueue) -> None:
        """Test enqueue_song needs an API client."""
        player = Player(AudioAdapter(), queue)
        handler = PlaybackCommandHandler(player)
        with pytest.raises(CommandError):
            await handler.handle("enqueue_song", {"song_id": "10"})

    async def test_remove(self, handler: PlaybackCommandHandler) -> None:
        """Test remove by id and by position."""
        assert await handler.handle("remove", {"track_id": "B"}) == {"ok": True}
        assert await handler.handle("remove", {"track_id": "B"}) == {"ok": False}
        assert await handler.handle("remove_at", {"position": 0}) == {"ok": True}
        assert [t.id for t in handler.queue.tracks] == ["C"]

    async def test_move(self, handler: PlaybackCommandHandler) -> None:
        """Test move reports the current index that follows the current track."""
        result = await handler.handle("move", {"from": 0, "to": 2})
        assert result == {"ok": True, "current_index": 2}
        assert [t.id for t in handler.queue.tracks] == ["B", "C", "A"]

        result = await handler.handle("move", {"from": 0, "to": 9})
        assert result["ok"] is False

    async def test_jump_and_clear(self, handler: PlaybackCommandHandler) -> None:
        """Test jump changes the position without playing, clear empties."""
        assert await handler.handle("jump", {"position": 1}) == {"ok": True, "current_index": 1}
        assert handler.player.current_track is None

        await handler.handle("clear")
        assert handler.queue.is_empty
        assert (await handler.handle("jump", {"position": 0}))["ok"] is False


class TestModeCommands:
    """Tests for shuffle and repeat."""

    async def test_shuffle(self, handler: PlaybackCommandHandler) -> None:
        """Test shuffle toggles and sets."""
        assert await handler.handle("shuffle") == {"ok": True, "shuffle": True}
        assert await handler.handle("shuffle", {"enabled": True}) == {"ok": True, "shuffle": True}
        assert await handler.handle("shuffle", {"enabled": False}) == {"ok": True, "shuffle": False}
        with pytest.raises(CommandError):
            await handler.handle("shuffle", {"enabled": 1})

    async def test_repeat(self, handler: PlaybackCommandHandler) -> None:
        """Test repeat cycles and sets by name."""
        assert (await handler.handle("repeat"))["repeat"] == "all"
        assert (await handler.handle("repeat", {"mode": "ONE"}))["repeat"] == "one"
        assert handler.queue.repeat_mode == RepeatMode.ONE
        with pytest.raises(CommandError, match="Invalid repeat mode"):
            await handler.handle("repeat", {"mode": "twice"})
