"""
State reporter.

Pushes player and queue snapshots to control surfaces: immediately after
changes (coalesced so a burst of changes yields one push) and periodically
while playing.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional

from .queue import QueueState

if TYPE_CHECKING:
    from .player import Player
    from .queue import PlayQueue

logger = logging.getLogger(__name__)

# Heartbeat interval while playing
STATE_UPDATE_INTERVAL_SECONDS = 5.0


@dataclass
class PlayerSnapshot:
    """Complete player and queue state at one moment."""

    player: dict[str, Any]
    queue: QueueState
    timestamp: float  # wall clock, seconds

    def to_dict(self) -> dict[str, Any]:
        return {
            "player": self.player,
            "queue": self.queue.to_dict(),
            "timestamp": self.timestamp,
        }


SendCallback = Callable[[PlayerSnapshot], Awaitable[None]]


class StateReporter:
    """
    Manages state pushes.

    Sends:
    - One update per event-loop iteration in which state changed
    - Periodic updates every `interval` seconds while playing (heartbeat)
    """

    def __init__(
        self,
        player: "Player",
        queue: "PlayQueue",
        send_callback: SendCallback,
        interval: float = STATE_UPDATE_INTERVAL_SECONDS,
    ):
        """
        Initialize state reporter.

        Args:
            player: Player instance for state access
            queue: Queue instance for queue state
            send_callback: Async callback receiving each snapshot
            interval: Heartbeat interval in seconds
        """
        self._player = player
        self._queue = queue
        self._send_callback = send_callback
        self.interval = interval

        self._is_running = False
        self._heartbeat_task: Optional[asyncio.Task] = None
        self._send_tasks: set[asyncio.Task] = set()
        self._push_scheduled = False
        self._unsubscribe: Optional[Callable[[], None]] = None

    async def start(self) -> None:
        """Start listening for changes and the heartbeat."""
        if self._is_running:
            return

        self._is_running = True
        self._unsubscribe = self._player.subscribe(self._on_change)
        self._queue.add_listener(self._on_queue_change)
        self._heartbeat_task = asyncio.create_task(self._heartbeat_loop())
        logger.info("StateReporter started")

    async def stop(self) -> None:
        """Stop the state reporter."""
        self._is_running = False

        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None
        self._queue.remove_listener(self._on_queue_change)

        for task in [self._heartbeat_task, *self._send_tasks]:
            if task and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._heartbeat_task = None
        self._send_tasks.clear()

        logger.info("StateReporter stopped")

    def build_snapshot(self) -> PlayerSnapshot:
        """Capture the current player and queue state."""
        return PlayerSnapshot(
            player=self._player.snapshot(),
            queue=self._queue.get_state(),
            timestamp=time.time(),
        )

    async def report_now(self) -> None:
        """Send an update immediately."""
        await self._send_state_update()

    # =========================================================================
    # Change Tracking
    # =========================================================================

    def _on_change(self) -> None:
        if not self._is_running or self._push_scheduled:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("State changed outside the event loop, not pushed")
            return
        self._push_scheduled = True
        loop.call_soon(self._flush)

    def _on_queue_change(self, queue: "PlayQueue") -> None:
        self._on_change()

    def _flush(self) -> None:
        self._push_scheduled = False
        if self._is_running:
            task = asyncio.create_task(self._send_state_update())
            self._send_tasks.add(task)
            task.add_done_callback(self._send_tasks.discard)

    async def _heartbeat_loop(self) -> None:
        """Periodic state update loop."""
        while self._is_running:
            try:
                await asyncio.sleep(self.interval)

                # Only send heartbeat while playing
                if self._player.is_playing:
                    await self._send_state_update()

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Heartbeat error: {e}", exc_info=True)

    async def _send_state_update(self) -> None:
        """Build and send state update."""
        try:
            snapshot = self.build_snapshot()
            await self._send_callback(snapshot)
            logger.debug(
                f"State update sent: playing={snapshot.player['is_playing']}, "
                f"t={snapshot.player['current_time']}s, queue v{snapshot.queue.version}"
            )
        except Exception as e:
            logger.error(f"Failed to send state update: {e}", exc_info=True)
