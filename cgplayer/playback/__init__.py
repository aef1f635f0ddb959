"""Playback, queue and command handling module."""

from .adapter import AdapterNotBoundError, AudioAdapter
from .queue import (
    QUEUE_FORMAT_VERSION,
    PlayQueue,
    QueueState,
    RepeatMode,
)
from .player import PREVIOUS_TRACK_THRESHOLD, Player, PlayerErrorKind
from .persistence import QueueStorage
from .command_handler import CommandError, PlaybackCommandHandler
from .state_reporter import PlayerSnapshot, StateReporter

__all__ = [
    # Adapter
    "AdapterNotBoundError",
    "AudioAdapter",
    # Queue
    "QUEUE_FORMAT_VERSION",
    "PlayQueue",
    "QueueState",
    "QueueStorage",
    "RepeatMode",
    # Player
    "PREVIOUS_TRACK_THRESHOLD",
    "Player",
    "PlayerErrorKind",
    # Commands
    "CommandError",
    "PlaybackCommandHandler",
    # State reporting
    "PlayerSnapshot",
    "StateReporter",
]
