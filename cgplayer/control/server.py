"""
Control server.

HTTP and WebSocket surface for controlling playback. Every request goes
through the PlaybackCommandHandler; WebSocket clients also receive each
state snapshot the StateReporter pushes.
"""

import json
import logging
from typing import TYPE_CHECKING, Any, Optional

from aiohttp import WSMsgType, web

from cgplayer.api import APIError
from cgplayer.playback import CommandError, PlayerSnapshot

if TYPE_CHECKING:
    from cgplayer.playback import PlaybackCommandHandler, StateReporter

logger = logging.getLogger(__name__)

WS_HEARTBEAT_SECONDS = 30.0


class ControlServer:
    """
    aiohttp server exposing the command interface.

    Endpoints:
        GET  /                    Health check
        GET  /state               Current snapshot
        GET  /queue               Queue tracks and state
        GET  /commands            Supported command names
        POST /commands/{command}  Run a command (JSON body = parameters)
        GET  /ws                  WebSocket: snapshots out, commands in
    """

    def __init__(
        self,
        handler: "PlaybackCommandHandler",
        reporter: "StateReporter",
        host: str = "127.0.0.1",
        port: int = 8790,
    ):
        self.handler = handler
        self.reporter = reporter
        self.host = host
        self.port = port

        # HTTP server components
        self._app: Optional[web.Application] = None
        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None

        self._sockets: set[web.WebSocketResponse] = set()

    async def start(self) -> None:
        """Start the HTTP server."""
        self._app = self.build_app()
        self._runner = web.AppRunner(self._app)
        await self._runner.setup()

        self._site = web.TCPSite(self._runner, self.host, self.port)
        await self._site.start()
        logger.info(f"Control server listening on http://{self.host}:{self.port}")

    async def stop(self) -> None:
        """Close WebSocket clients and stop the HTTP server."""
        for ws in list(self._sockets):
            await ws.close()
        self._sockets.clear()

        if self._site:
            await self._site.stop()
        if self._runner:
            await self._runner.cleanup()
        self._site = None
        self._runner = None
        logger.info("Control server stopped")

    def build_app(self) -> web.Application:
        """Create the aiohttp application with all routes."""
        app = web.Application()
        app.router.add_get("/", self._handle_root)
        app.router.add_get("/state", self._handle_state)
        app.router.add_get("/queue", self._handle_queue)
        app.router.add_get("/commands", self._handle_command_list)
        app.router.add_post("/commands/{command}", self._handle_command)
        app.router.add_get("/ws", self._handle_ws)
        return app

    @property
    def client_count(self) -> int:
        return len(self._sockets)

    # =========================================================================
    # Broadcasting
    # =========================================================================

    async def broadcast(self, snapshot: PlayerSnapshot) -> None:
        """Send a snapshot to every connected WebSocket client."""
        if not self._sockets:
            return
        message = {"type": "state", "state": snapshot.to_dict()}
        for ws in list(self._sockets):
            if ws.closed:
                self._sockets.discard(ws)
                continue
            try:
                await ws.send_json(message)
            except ConnectionError as e:
                logger.debug(f"Dropping WebSocket client: {e}")
                self._sockets.discard(ws)

    # =========================================================================
    # HTTP Handlers
    # =========================================================================

    async def _handle_root(self, request: web.Request) -> web.Response:
        """Health check endpoint."""
        return web.Response(text="CGPlayer", content_type="text/plain")

    async def _handle_state(self, request: web.Request) -> web.Response:
        return web.json_response(self.reporter.build_snapshot().to_dict())

    async def _handle_queue(self, request: web.Request) -> web.Response:
        queue = self.handler.queue
        response = {
            "tracks": [t.to_dict() for t in queue.tracks],
            "state": queue.get_state().to_dict(),
        }
        return web.json_response(response)

    async def _handle_command_list(self, request: web.Request) -> web.Response:
        return web.json_response({"commands": self.handler.get_commands()})

    async def _handle_command(self, request: web.Request) -> web.Response:
        """
        POST /commands/{command}

        The optional JSON body carries the command parameters.
        """
        command = request.match_info["command"]
        params: Any = {}
        if request.can_read_body:
            try:
                params = await request.json()
            except json.JSONDecodeError:
                return web.json_response({"error": "Invalid JSON"}, status=400)

        status, body = await self._run_command(command, params)
        return web.json_response(body, status=status)

    async def _run_command(self, command: str, params: Any) -> tuple[int, dict[str, Any]]:
        try:
            result = await self.handler.handle(command, params)
        except CommandError as e:
            logger.warning(f"Rejected command {command}: {e}")
            return 400, {"error": str(e)}
        except APIError as e:
            logger.error(f"Command {command} failed: {e}")
            return 502, {"error": str(e)}
        except Exception as e:
            logger.exception(f"Error handling command {command}: {e}")
            return 500, {"error": str(e)}
        return 200, result

    # =========================================================================
    # WebSocket
    # =========================================================================

    async def _handle_ws(self, request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse(heartbeat=WS_HEARTBEAT_SECONDS)
        await ws.prepare(request)

        self._sockets.add(ws)
        logger.info(f"WebSocket client connected ({len(self._sockets)} total)")

        try:
            await ws.send_json(
                {"type": "state", "state": self.reporter.build_snapshot().to_dict()}
            )
            async for msg in ws:
                if msg.type == WSMsgType.TEXT:
                    await ws.send_json(await self._handle_ws_message(msg.data))
                elif msg.type == WSMsgType.ERROR:
                    logger.warning(f"WebSocket error: {ws.exception()}")
        finally:
            self._sockets.discard(ws)
            logger.info(f"WebSocket client disconnected ({len(self._sockets)} left)")

        return ws

    async def _handle_ws_message(self, data: str) -> dict[str, Any]:
        """Run a {"command": ..., "params": {...}} message and build the reply."""
        try:
            message = json.loads(data)
        except json.JSONDecodeError:
            return {"type": "error", "error": "Invalid JSON"}

        if not isinstance(message, dict) or not isinstance(message.get("command"), str):
            return {"type": "error", "error": "Message needs a 'command' string"}

        command = message["command"]
        status, body = await self._run_command(command, message.get("params") or {})
        if status != 200:
            return {"type": "error", "command": command, "error": body["error"]}
        return {"type": "result", "command": command, "result": body}
