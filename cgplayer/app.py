"""
CGPlayer Application.

Main orchestrator that wires together all components and manages lifecycle.
"""

import asyncio
import logging
import signal
from typing import Iterable, Optional

from cgplayer.api import CGPlayerAPIClient
from cgplayer.backends import AudioBackend, BackendFactory
from cgplayer.config import Config
from cgplayer.control import ControlServer
from cgplayer.library import TrackCatalog
from cgplayer.playback import (
    AudioAdapter,
    PlaybackCommandHandler,
    Player,
    PlayerSnapshot,
    PlayQueue,
    QueueStorage,
    StateReporter,
)

logger = logging.getLogger(__name__)


class CGPlayer:
    """
    Main CGPlayer application.

    Orchestrates all components:
    - API access (CGPlayerAPIClient)
    - Audio output (AudioBackend behind an AudioAdapter)
    - Playback (PlayQueue, Player, QueueStorage)
    - Control (PlaybackCommandHandler, StateReporter, ControlServer)

    Usage:
        config = load_config(...)
        app = CGPlayer(config, song_ids=["42"], play=True)
        await app.run()
    """

    def __init__(
        self,
        config: Config,
        song_ids: Iterable[str] = (),
        voices: Optional[list[str]] = None,
        play: bool = False,
    ):
        """
        Initialize CGPlayer.

        Args:
            config: Validated configuration
            song_ids: Songs whose variants are queued at start
            voices: Voice types to keep when queueing (all when None)
            play: Start playing the current track once started
        """
        self._config = config
        self._song_ids = list(song_ids)
        self._voices = voices
        self._play_on_start = play

        self._is_running = False
        self._shutdown_event = asyncio.Event()

        # Components (initialized in start())
        self._api_client: Optional[CGPlayerAPIClient] = None
        self._backend: Optional[AudioBackend] = None
        self._adapter: Optional[AudioAdapter] = None
        self._storage: Optional[QueueStorage] = None
        self._queue: Optional[PlayQueue] = None
        self._catalog: Optional[TrackCatalog] = None
        self._player: Optional[Player] = None
        self._handler: Optional[PlaybackCommandHandler] = None
        self._state_reporter: Optional[StateReporter] = None
        self._control: Optional[ControlServer] = None

    async def start(self) -> None:
        """
        Start CGPlayer and all components.

        Startup order:
        1. API client and authentication
        2. Audio backend, bound to the adapter
        3. Queue (restored from disk) and persistence
        4. Player, command handler, state reporter
        5. Control server
        6. Initial songs and optional playback

        Raises:
            AuthenticationError: If login or the token is rejected
            APIError: If the API cannot be reached
            BackendNotFoundError: If the audio output cannot be opened
        """
        logger.info("Starting CGPlayer...")
        self._is_running = True
        config = self._config

        # 1. API client
        self._api_client = CGPlayerAPIClient(
            base_url=config.api.base_url,
            token=config.api.token or None,
            timeout=config.api.timeout,
        )
        if config.api.token:
            user = await self._api_client.get_current_user()
            logger.info(f"Authenticated as {user.get('email', '?')}")
        elif config.api.email:
            logger.info(f"Authenticating as {config.api.email}...")
            await self._api_client.login(config.api.email, config.api.password)
        else:
            logger.warning("No API credentials configured, media requests are unauthenticated")

        # 2. Audio backend
        self._backend = await BackendFactory.create_from_config(config)
        self._adapter = AudioAdapter()
        self._adapter.bind(self._backend)

        # 3. Queue
        if config.storage.persist_queue:
            self._storage = QueueStorage(config.storage.queue_file)
            self._queue = self._storage.load()
            self._storage.attach(self._queue)
        else:
            self._queue = PlayQueue()
        self._catalog = TrackCatalog(self._queue.canonical_tracks)

        # 4. Player and handlers
        self._player = Player(
            adapter=self._adapter,
            queue=self._queue,
            base_url=config.api.base_url,
            autoplay=config.player.autoplay,
            volume=config.player.volume,
            previous_restart_threshold=config.player.previous_restart_threshold,
            headers_provider=self._api_client.auth_headers,
        )
        await self._player.start()

        self._handler = PlaybackCommandHandler(
            player=self._player,
            queue=self._queue,
            catalog=self._catalog,
            api_client=self._api_client,
        )
        self._state_reporter = StateReporter(
            player=self._player,
            queue=self._queue,
            send_callback=self._publish_state,
            interval=config.server.state_interval,
        )

        # 5. Control server
        if config.server.enabled:
            self._control = ControlServer(
                handler=self._handler,
                reporter=self._state_reporter,
                host=config.server.bind_address,
                port=config.server.port,
            )
            await self._control.start()

        await self._state_reporter.start()

        # 6. Initial songs
        for song_id in self._song_ids:
            params: dict = {"song_id": song_id}
            if self._voices:
                params["voices"] = self._voices
            result = await self._handler.handle("enqueue_song", params)
            logger.info(f"Queued song {song_id}: {result['added']} versions")

        if self._play_on_start:
            await self._player.play()

        logger.info(f"CGPlayer ready ({len(self._queue)} tracks queued)")

    async def _publish_state(self, snapshot: PlayerSnapshot) -> None:
        """Forward state snapshots to control clients."""
        if self._control:
            await self._control.broadcast(snapshot)

    async def stop(self) -> None:
        """
        Stop CGPlayer and all components.

        Shutdown order (reverse of startup):
        1. Stop state reporter
        2. Stop control server
        3. Stop player
        4. Save and detach the queue
        5. Disconnect backend
        6. Close API client
        """
        if not self._is_running:
            return

        logger.info("Stopping CGPlayer...")
        self._is_running = False

        # 1. Stop state reporter
        if self._state_reporter:
            try:
                await self._state_reporter.stop()
            except Exception as e:
                logger.warning(f"Error stopping state reporter: {e}")

        # 2. Stop control server
        if self._control:
            try:
                await self._control.stop()
            except Exception as e:
                logger.warning(f"Error stopping control server: {e}")

        # 3. Stop player
        if self._player:
            try:
                await self._player.stop()
            except Exception as e:
                logger.warning(f"Error stopping player: {e}")

        # 4. Save queue
        if self._storage and self._queue:
            self._storage.save(self._queue)
            self._storage.detach()

        # 5. Disconnect backend
        if self._adapter:
            self._adapter.unbind()
        if self._backend:
            try:
                await self._backend.disconnect()
            except Exception as e:
                logger.warning(f"Error disconnecting backend: {e}")

        # 6. Close API client
        if self._api_client:
            try:
                await self._api_client.close()
            except Exception as e:
                logger.warning(f"Error closing API client: {e}")

        logger.info("CGPlayer stopped")

    async def run(self) -> None:
        """
        Run CGPlayer until interrupted.

        Sets up signal handlers for graceful shutdown on SIGINT/SIGTERM.
        """
        loop = asyncio.get_running_loop()

        def handle_signal() -> None:
            logger.info("Shutdown signal received")
            self._shutdown_event.set()

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, handle_signal)

        try:
            await self.start()

            # Wait for shutdown signal
            await self._shutdown_event.wait()

        finally:
            await self.stop()

    def request_shutdown(self) -> None:
        self._shutdown_event.set()

    @property
    def is_running(self) -> bool:
        """Check if the application is running."""
        return self._is_running

    @property
    def player(self) -> Optional[Player]:
        return self._player

    @property
    def queue(self) -> Optional[PlayQueue]:
        return self._queue

    @property
    def handler(self) -> Optional[PlaybackCommandHandler]:
        return self._handler
