"""
Playback command handler.

The single command interface every control surface (HTTP, WebSocket, CLI)
goes through. Translates named commands with JSON-style parameters into
player and queue operations.
"""

import logging
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional

from cgplayer.library import InvalidTrackError, Track, TrackCatalog, VoiceType, filter_by_voices
from .queue import RepeatMode

if TYPE_CHECKING:
    from cgplayer.api import CGPlayerAPIClient
    from .player import Player
    from .queue import PlayQueue

logger = logging.getLogger(__name__)

CommandResult = dict[str, Any]


class CommandError(Exception):
    """Raised for unknown commands and invalid parameters."""

    pass


class PlaybackCommandHandler:
    """
    Dispatches playback commands.

    Every handler returns a result dict; the current player and queue state
    are reported separately by the StateReporter.
    """

    def __init__(
        self,
        player: "Player",
        queue: Optional["PlayQueue"] = None,
        catalog: Optional[TrackCatalog] = None,
        api_client: Optional["CGPlayerAPIClient"] = None,
    ):
        """
        Initialize command handler.

        Args:
            player: Player instance
            queue: Optional PlayQueue (defaults to player.queue)
            catalog: Known tracks, used to resolve track ids
            api_client: Used by enqueue_song to fetch a song's variants
        """
        self.player = player
        self.queue = queue or player.queue
        self.catalog = catalog if catalog is not None else TrackCatalog()
        self.api_client = api_client

        self._commands: dict[str, Callable[[dict[str, Any]], Awaitable[CommandResult]]] = {
            "play": self._handle_play,
            "pause": self._handle_pause,
            "toggle": self._handle_toggle,
            "seek": self._handle_seek,
            "volume": self._handle_volume,
            "mute": self._handle_mute,
            "next": self._handle_next,
            "previous": self._handle_previous,
            "play_position": self._handle_play_position,
            "enqueue": self._handle_enqueue,
            "enqueue_song": self._handle_enqueue_song,
            "remove": self._handle_remove,
            "remove_at": self._handle_remove_at,
            "move": self._handle_move,
            "jump": self._handle_jump,
            "clear": self._handle_clear,
            "shuffle": self._handle_shuffle,
            "repeat": self._handle_repeat,
        }

    def get_commands(self) -> list[str]:
        """Get list of command names this handler processes."""
        return list(self._commands)

    async def handle(self, command: str, params: Optional[dict[str, Any]] = None) -> CommandResult:
        """
        Run a command.

        Raises:
            CommandError: Unknown command or invalid parameters
            APIError: enqueue_song could not reach the API
        """
        handler = self._commands.get(command)
        if handler is None:
            raise CommandError(f"Unknown command: {command}")
        if params is None:
            params = {}
        if not isinstance(params, dict):
            raise CommandError("Command parameters must be an object")

        logger.debug(f"Command {command}: {params}")
        return await handler(params)

    # =========================================================================
    # Transport
    # =========================================================================

    async def _handle_play(self, params: dict[str, Any]) -> CommandResult:
        track_id = params.get("track_id")
        if track_id is not None:
            track = self._lookup(str(track_id))
            ok = await self.player.play_track(track)
        else:
            ok = await self.player.play()
        return {"ok": ok}

    async def _handle_pause(self, params: dict[str, Any]) -> CommandResult:
        return {"ok": await self.player.pause()}

    async def _handle_toggle(self, params: dict[str, Any]) -> CommandResult:
        playing = await self.player.toggle_play_pause()
        return {"ok": True, "playing": playing}

    async def _handle_seek(self, params: dict[str, Any]) -> CommandResult:
        position = _float_param(params, "position")
        ok = await self.player.seek(position)
        return {"ok": ok, "position": self.player.current_time}

    async def _handle_volume(self, params: dict[str, Any]) -> CommandResult:
        level = _float_param(params, "level")
        return {"ok": True, "volume": await self.player.set_volume(level)}

    async def _handle_mute(self, params: dict[str, Any]) -> CommandResult:
        wanted = params.get("muted")
        if wanted is not None and not isinstance(wanted, bool):
            raise CommandError("'muted' must be a boolean")
        if wanted is None or wanted != self.player.muted:
            await self.player.toggle_mute()
        return {"ok": True, "muted": self.player.muted}

    async def _handle_next(self, params: dict[str, Any]) -> CommandResult:
        return {"ok": await self.player.next_track()}

    async def _handle_previous(self, params: dict[str, Any]) -> CommandResult:
        return {"ok": await self.player.previous_track()}

    async def _handle_play_position(self, params: dict[str, Any]) -> CommandResult:
        position = _int_param(params, "position")
        return {"ok": await self.player.play_position(position)}

    # =========================================================================
    # Queue Editing
    # =========================================================================

    async def _handle_enqueue(self, params: dict[str, Any]) -> CommandResult:
        """Append known tracks by id: {"track_id": ...} or {"track_ids": [...]}."""
        if "track_ids" in params:
            ids = params["track_ids"]
            if not isinstance(ids, list) or not ids:
                raise CommandError("'track_ids' must be a non-empty list")
        elif "track_id" in params:
            ids = [params["track_id"]]
        else:
            raise CommandError("Missing parameter: track_id")

        tracks = [self._lookup(str(i)) for i in ids]
        return await self._append(tracks, bool(params.get("play", False)))

    async def _handle_enqueue_song(self, params: dict[str, Any]) -> CommandResult:
        """Fetch a song's variants and append the ones matching the given voices."""
        song_id = params.get("song_id")
        if song_id is None or str(song_id) == "":
            raise CommandError("Missing parameter: song_id")
        if self.api_client is None:
            raise CommandError("enqueue_song needs an API connection")

        voices = _voices_param(params)
        versions = await self.api_client.get_versions(str(song_id))
        self.catalog.add_many(versions)
        tracks = filter_by_voices(versions, voices)
        logger.info(f"Song {song_id}: {len(tracks)} of {len(versions)} versions selected")
        return await self._append(tracks, bool(params.get("play", False)))

    async def _append(self, tracks: list[Track], play: bool) -> CommandResult:
        first_position = len(self.queue)
        added = self.queue.add_many(tracks)
        result: CommandResult = {"ok": True, "added": added, "queue_length": len(self.queue)}
        if play and added:
            result["ok"] = await self.player.play_position(first_position)
        return result

    async def _handle_remove(self, params: dict[str, Any]) -> CommandResult:
        track_id = params.get("track_id")
        if track_id is None:
            raise CommandError("Missing parameter: track_id")
        return {"ok": self.queue.remove(str(track_id))}

    async def _handle_remove_at(self, params: dict[str, Any]) -> CommandResult:
        return {"ok": self.queue.remove_at(_int_param(params, "position"))}

    async def _handle_move(self, params: dict[str, Any]) -> CommandResult:
        ok = self.queue.move(_int_param(params, "from"), _int_param(params, "to"))
        return {"ok": ok, "current_index": self.queue.current_index}

    async def _handle_jump(self, params: dict[str, Any]) -> CommandResult:
        track = self.queue.jump(_int_param(params, "position"))
        return {"ok": track is not None, "current_index": self.queue.current_index}

    async def _handle_clear(self, params: dict[str, Any]) -> CommandResult:
        self.queue.clear()
        return {"ok": True}

    # =========================================================================
    # Modes
    # =========================================================================

    async def _handle_shuffle(self, params: dict[str, Any]) -> CommandResult:
        enabled = params.get("enabled")
        if enabled is None:
            self.queue.toggle_shuffle()
        elif isinstance(enabled, bool):
            self.queue.set_shuffle(enabled)
        else:
            raise CommandError("'enabled' must be a boolean")
        return {"ok": True, "shuffle": self.queue.shuffle_enabled}

    async def _handle_repeat(self, params: dict[str, Any]) -> CommandResult:
        mode = params.get("mode")
        if mode is None:
            self.queue.toggle_repeat()
        else:
            try:
                self.queue.set_repeat(RepeatMode(str(mode).lower()))
            except ValueError:
                raise CommandError(f"Invalid repeat mode: {mode} (off, all, one)")
        return {"ok": True, "repeat": self.queue.repeat_mode.value}

    # =========================================================================
    # Helpers
    # =========================================================================

    def _lookup(self, track_id: str) -> Track:
        track = self.catalog.get(track_id)
        if track is None:
            raise CommandError(f"Unknown track: {track_id}")
        return track


def _int_param(params: dict[str, Any], name: str) -> int:
    value = params.get(name)
    if isinstance(value, bool) or value is None:
        raise CommandError(f"Missing or invalid integer parameter: {name}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise CommandError(f"Missing or invalid integer parameter: {name}")


def _float_param(params: dict[str, Any], name: str) -> float:
    value = params.get(name)
    if isinstance(value, bool) or value is None:
        raise CommandError(f"Missing or invalid number parameter: {name}")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise CommandError(f"Missing or invalid number parameter: {name}")


def _voices_param(params: dict[str, Any]) -> Optional[list[VoiceType]]:
    voices = params.get("voices")
    if voices is None:
        return None
    if isinstance(voices, str):
        voices = [voices]
    if not isinstance(voices, list):
        raise CommandError("'voices' must be a list of voice types")
    try:
        return [VoiceType.parse(str(v)) for v in voices]
    except InvalidTrackError as e:
        raise CommandError(str(e))
