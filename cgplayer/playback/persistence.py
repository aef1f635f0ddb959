"""
Queue persistence.

The queue (tracks, position, shuffle view, repeat mode) survives restarts
as a JSON file. Player state is never saved: a fresh start is always paused
with nothing loaded.
"""

import json
import logging
import os
from pathlib import Path
from typing import Callable, Optional

from .queue import PlayQueue

logger = logging.getLogger(__name__)


class QueueStorage:
    """Loads and saves a PlayQueue as JSON."""

    def __init__(self, path: Path):
        self.path = Path(path).expanduser()
        self._detach: Optional[Callable[[], None]] = None

    def load(self) -> PlayQueue:
        """
        Load the saved queue.

        Returns:
            The saved queue, or an empty one if the file is missing or unusable
        """
        if not self.path.exists():
            logger.debug(f"No saved queue at {self.path}")
            return PlayQueue()

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError("Saved queue is not a JSON object")
            queue = PlayQueue.from_dict(data)
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable queue file {self.path}: {e}")
            return PlayQueue()

        logger.info(f"Restored queue: {len(queue)} tracks from {self.path}")
        return queue

    def save(self, queue: PlayQueue) -> bool:
        """
        Write the queue, replacing the file atomically.

        Returns:
            True if the queue was saved
        """
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(queue.to_dict(), f, indent=2)
            os.replace(tmp_path, self.path)
        except OSError as e:
            logger.warning(f"Failed to save queue to {self.path}: {e}")
            return False

        logger.debug(f"Queue saved to {self.path} (version {queue.version})")
        return True

    def attach(self, queue: PlayQueue) -> None:
        """Save the queue after every change."""
        self.detach()

        def on_change(changed: PlayQueue) -> None:
            self.save(changed)

        queue.add_listener(on_change)
        self._detach = lambda: queue.remove_listener(on_change)

    def detach(self) -> None:
        if self._detach:
            self._detach()
            self._detach = None
