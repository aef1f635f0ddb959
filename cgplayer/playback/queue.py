"""
Play queue for CGPlayer.

Handles track ordering, shuffle, repeat and position bookkeeping.
"""

import logging
import random
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterable, Optional

from cgplayer.library import Track

logger = logging.getLogger(__name__)

# Serialized queue layout version
QUEUE_FORMAT_VERSION = 1


class RepeatMode(Enum):
    """Queue repeat modes."""

    OFF = "off"  # Stop after last track
    ALL = "all"  # Loop entire queue
    ONE = "one"  # Repeat current track


# toggle_repeat() cycle
_REPEAT_CYCLE = {
    RepeatMode.OFF: RepeatMode.ALL,
    RepeatMode.ALL: RepeatMode.ONE,
    RepeatMode.ONE: RepeatMode.OFF,
}


@dataclass
class QueueState:
    """Snapshot of the queue for reporting."""

    version: int
    track_count: int
    current_index: Optional[int]
    current_track_id: Optional[str]
    shuffle_enabled: bool
    repeat_mode: RepeatMode

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "track_count": self.track_count,
            "current_index": self.current_index,
            "current_track_id": self.current_track_id,
            "shuffle": self.shuffle_enabled,
            "repeat": self.repeat_mode.value,
        }


QueueListener = Callable[["PlayQueue"], None]


class PlayQueue:
    """
    Ordered list of tracks with a current position.

    Tracks are kept in their canonical (insertion) order. The play order is
    a list of indexes into it: the identity normally, a permutation while
    shuffle is on. Every position in the public API is a play-order
    position, and current_index points into the play order.

    Duplicates are allowed; each position is independent.
    """

    def __init__(self, tracks: Iterable[Track] = ()) -> None:
        self._tracks: list[Track] = list(tracks)
        self._order: list[int] = list(range(len(self._tracks)))
        self._current_index: Optional[int] = 0 if self._tracks else None

        self._shuffle_enabled: bool = False
        self._repeat_mode: RepeatMode = RepeatMode.OFF

        self._version: int = 0
        self._listeners: list[QueueListener] = []

    # =========================================================================
    # Change Listeners
    # =========================================================================

    def add_listener(self, callback: QueueListener) -> None:
        """Register a callback invoked with the queue after every change."""
        self._listeners.append(callback)

    def remove_listener(self, callback: QueueListener) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    def _changed(self) -> None:
        self._version += 1
        for callback in list(self._listeners):
            try:
                callback(self)
            except Exception as e:
                logger.error(f"Queue listener error: {e}", exc_info=True)

    # =========================================================================
    # State Access
    # =========================================================================

    @property
    def tracks(self) -> list[Track]:
        """Tracks in play order."""
        return [self._tracks[i] for i in self._order]

    @property
    def canonical_tracks(self) -> list[Track]:
        """Tracks in insertion order, ignoring shuffle."""
        return list(self._tracks)

    @property
    def current_index(self) -> Optional[int]:
        return self._current_index

    @property
    def current_track(self) -> Optional[Track]:
        if self._current_index is None:
            return None
        return self._tracks[self._order[self._current_index]]

    @property
    def shuffle_enabled(self) -> bool:
        return self._shuffle_enabled

    @property
    def repeat_mode(self) -> RepeatMode:
        return self._repeat_mode

    @property
    def version(self) -> int:
        """Counter bumped on every mutation."""
        return self._version

    @property
    def is_empty(self) -> bool:
        return not self._tracks

    def __len__(self) -> int:
        return len(self._tracks)

    def get_state(self) -> QueueState:
        current = self.current_track
        return QueueState(
            version=self._version,
            track_count=len(self._tracks),
            current_index=self._current_index,
            current_track_id=current.id if current else None,
            shuffle_enabled=self._shuffle_enabled,
            repeat_mode=self._repeat_mode,
        )

    # =========================================================================
    # Queue Management
    # =========================================================================

    def add(self, track: Track) -> None:
        """Append a track. The first track added becomes current."""
        self._tracks.append(track)
        self._order.append(len(self._tracks) - 1)
        if self._current_index is None:
            self._current_index = 0
        logger.debug(f"Queued {track.display_title} at position {len(self._order) - 1}")
        self._changed()

    def add_many(self, tracks: Iterable[Track]) -> int:
        """Append several tracks as one change. Returns how many were added."""
        added = list(tracks)
        if not added:
            return 0
        start = len(self._tracks)
        self._tracks.extend(added)
        self._order.extend(range(start, len(self._tracks)))
        if self._current_index is None:
            self._current_index = 0
        logger.info(f"Queued {len(added)} tracks ({len(self._tracks)} total)")
        self._changed()
        return len(added)

    def replace(self, tracks: Iterable[Track], play_index: int = 0) -> Optional[Track]:
        """
        Replace the whole queue.

        Args:
            tracks: New tracks in canonical order
            play_index: Canonical position to make current

        Returns:
            The new current track, or None if the queue is empty
        """
        self._tracks = list(tracks)
        self._order = list(range(len(self._tracks)))
        if not self._tracks:
            self._current_index = None
        else:
            self._current_index = max(0, min(play_index, len(self._tracks) - 1))
            if self._shuffle_enabled:
                self._apply_shuffle()
        logger.info(f"Queue replaced: {len(self._tracks)} tracks")
        self._changed()
        return self.current_track

    def clear(self) -> None:
        """Remove every track. Shuffle and repeat settings are kept."""
        self._tracks.clear()
        self._order.clear()
        self._current_index = None
        logger.info("Queue cleared")
        self._changed()

    def remove(self, track_id: str) -> bool:
        """
        Remove the first position holding the given track id.

        Returns:
            True if a track was removed
        """
        for position, track_index in enumerate(self._order):
            if self._tracks[track_index].id == track_id:
                return self.remove_at(position)
        logger.debug(f"Track {track_id} not in queue")
        return False

    def remove_at(self, position: int) -> bool:
        """
        Remove the track at a play-order position.

        The current index shifts down when an earlier position goes, stays
        put (now pointing at the following track) when the current one goes,
        and is clamped to the new end or cleared when nothing is left.
        """
        if not 0 <= position < len(self._order):
            return False

        track_index = self._order.pop(position)
        removed = self._tracks.pop(track_index)
        self._order = [i - 1 if i > track_index else i for i in self._order]

        current = self._current_index
        if not self._order:
            self._current_index = None
        elif current is not None:
            if position < current:
                current -= 1
            self._current_index = min(current, len(self._order) - 1)

        logger.debug(f"Removed {removed.display_title} from position {position}")
        self._changed()
        return True

    def move(self, from_position: int, to_position: int) -> bool:
        """
        Move one track to another play-order position.

        The current index follows the current track: it moves with it, and
        shifts by one when another track is moved across it.
        """
        size = len(self._order)
        if not (0 <= from_position < size and 0 <= to_position < size):
            return False
        if from_position == to_position:
            return True

        if self._shuffle_enabled:
            item = self._order.pop(from_position)
            self._order.insert(to_position, item)
        else:
            track = self._tracks.pop(from_position)
            self._tracks.insert(to_position, track)

        current = self._current_index
        if current is not None:
            if from_position == current:
                current = to_position
            elif from_position < current <= to_position:
                current -= 1
            elif to_position <= current < from_position:
                current += 1
            self._current_index = current

        self._changed()
        return True

    def jump(self, position: int) -> Optional[Track]:
        """Make a play-order position current (clamped to the queue)."""
        if not self._order:
            return None
        self._current_index = max(0, min(position, len(self._order) - 1))
        self._changed()
        return self.current_track

    # =========================================================================
    # Navigation
    # =========================================================================

    def next(self) -> Optional[Track]:
        """
        Advance to the next track respecting repeat mode.

        Returns:
            Next track, or None at the end of the queue with repeat off
        """
        target = self._next_index()
        if target is None:
            if self._order:
                logger.info("End of queue reached")
            return None
        if target != self._current_index:
            if target == 0:
                logger.info("Queue wrapped to beginning (repeat all)")
            self._current_index = target
            self._changed()
        return self.current_track

    def peek_next(self) -> Optional[Track]:
        """What next() would return, without moving."""
        target = self._next_index()
        if target is None:
            return None
        return self._tracks[self._order[target]]

    def _next_index(self) -> Optional[int]:
        if self._current_index is None:
            return None
        if self._repeat_mode == RepeatMode.ONE:
            return self._current_index
        if self._current_index + 1 < len(self._order):
            return self._current_index + 1
        if self._repeat_mode == RepeatMode.ALL:
            return 0
        return None

    def previous(self) -> Optional[Track]:
        """
        Go back to the previous track respecting repeat mode.

        Returns:
            Previous track, or None at the start of the queue with repeat off
        """
        if self._current_index is None:
            return None
        if self._repeat_mode == RepeatMode.ONE:
            return self.current_track

        if self._current_index > 0:
            self._current_index -= 1
        elif self._repeat_mode == RepeatMode.ALL:
            self._current_index = len(self._order) - 1
            logger.info("Queue wrapped to end (repeat all)")
        else:
            logger.info("At beginning of queue")
            return None

        self._changed()
        return self.current_track

    # =========================================================================
    # Shuffle Mode
    # =========================================================================

    def toggle_shuffle(self) -> bool:
        """Flip shuffle. Returns the new setting."""
        self.set_shuffle(not self._shuffle_enabled)
        return self._shuffle_enabled

    def set_shuffle(self, enabled: bool) -> None:
        """
        Enable or disable the shuffled view.

        Enabling puts the current track first and shuffles the rest.
        Disabling restores insertion order with the current track kept.
        """
        if enabled == self._shuffle_enabled:
            return
        self._shuffle_enabled = enabled
        if enabled:
            self._apply_shuffle()
        else:
            self._restore_original_order()
        logger.info(f"Shuffle mode: {enabled}")
        self._changed()

    def _apply_shuffle(self) -> None:
        if not self._order:
            return
        pivot = self._order[self._current_index or 0]
        others = [i for i in range(len(self._tracks)) if i != pivot]
        random.shuffle(others)
        self._order = [pivot] + others
        self._current_index = 0

    def _restore_original_order(self) -> None:
        if not self._order:
            return
        pivot = self._order[self._current_index or 0]
        self._order = list(range(len(self._tracks)))
        self._current_index = pivot

    # =========================================================================
    # Repeat Mode
    # =========================================================================

    def toggle_repeat(self) -> RepeatMode:
        """Cycle off -> all -> one -> off. Returns the new mode."""
        self.set_repeat(_REPEAT_CYCLE[self._repeat_mode])
        return self._repeat_mode

    def set_repeat(self, mode: RepeatMode) -> None:
        if mode == self._repeat_mode:
            return
        self._repeat_mode = mode
        logger.info(f"Repeat mode: {mode.value}")
        self._changed()

    # =========================================================================
    # Serialization
    # =========================================================================

    def to_dict(self) -> dict[str, Any]:
        """Serialize tracks, play order, position and modes."""
        return {
            "version": QUEUE_FORMAT_VERSION,
            "tracks": [t.to_dict() for t in self._tracks],
            "order": list(self._order),
            "current_index": self._current_index,
            "shuffle": self._shuffle_enabled,
            "repeat": self._repeat_mode.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PlayQueue":
        """
        Rebuild a queue from to_dict() output.

        Raises:
            ValueError: Unsupported format version or malformed content
        """
        version = data.get("version")
        if version != QUEUE_FORMAT_VERSION:
            raise ValueError(f"Unsupported queue format version: {version}")

        entries = data.get("tracks", [])
        if not isinstance(entries, list) or not all(isinstance(t, dict) for t in entries):
            raise ValueError("Saved tracks are not a list of objects")
        try:
            tracks = [Track.from_dict(t) for t in entries]
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise ValueError(f"Invalid track in saved queue: {e}")

        queue = cls(tracks)
        queue._shuffle_enabled = bool(data.get("shuffle", False))
        queue._repeat_mode = RepeatMode(data.get("repeat", RepeatMode.OFF.value))

        index = data.get("current_index")
        if tracks:
            if not isinstance(index, int) or isinstance(index, bool):
                index = 0
            queue._current_index = max(0, min(index, len(tracks) - 1))

        identity = list(range(len(tracks)))
        order = data.get("order")
        valid_order = (
            isinstance(order, list)
            and all(isinstance(i, int) and not isinstance(i, bool) for i in order)
            and sorted(order) == identity
        )
        if not queue._shuffle_enabled:
            # Unshuffled moves edit the track list by play position
            if valid_order and order != identity:
                logger.warning("Ignoring saved play order for an unshuffled queue")
                queue._current_index = order[queue._current_index]
        elif valid_order:
            queue._order = list(order)
        else:
            # The index is taken as a track position, then shuffled around
            logger.warning("Saved play order is invalid, reshuffling")
            queue._apply_shuffle()

        return queue
