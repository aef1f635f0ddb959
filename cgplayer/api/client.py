"""
CGPlayerWeb API Client.

Handles login, bearer-token attachment, and the song endpoints the player
needs (listing, details, and voice-type variants).
"""

import asyncio
import logging
from typing import Any, Optional

import aiohttp

from cgplayer.library import Track

logger = logging.getLogger(__name__)


class APIError(Exception):
    """CGPlayerWeb API error."""

    def __init__(self, message: str, status: int = 0):
        super().__init__(message)
        self.status = status


class AuthenticationError(APIError):
    """Login failed or the token was rejected."""

    pass


class CGPlayerAPIClient:
    """CGPlayerWeb REST API client."""

    def __init__(self, base_url: str, token: Optional[str] = None, timeout: float = 10.0):
        """
        Initialize API client.

        Args:
            base_url: Server root, e.g. http://localhost:3001
            token: JWT from a previous login (optional)
            timeout: Per-request timeout in seconds
        """
        self.base_url = base_url.rstrip("/")
        self.token: Optional[str] = token or None
        self.user: Optional[dict[str, Any]] = None
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> "CGPlayerAPIClient":
        """Async context manager entry."""
        self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self

    async def __aexit__(
        self,
        exc_type: Optional[type],
        exc_val: Optional[BaseException],
        exc_tb: Optional[Any],
    ) -> None:
        """Async context manager exit."""
        await self.close()

    async def close(self) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    def auth_headers(self) -> dict[str, str]:
        """Headers that authenticate a request (also used for media downloads)."""
        if self.token:
            return {"Authorization": f"Bearer {self.token}"}
        return {}

    # =========================================================================
    # Auth
    # =========================================================================

    async def login(self, email: str, password: str) -> dict[str, Any]:
        """
        Login and keep the returned token.

        Returns:
            The user payload

        Raises:
            AuthenticationError: If the credentials are rejected
        """
        data = await self._request(
            "POST", "/api/auth/login", json={"email": email, "password": password}
        )
        token = data.get("token") if isinstance(data, dict) else None
        if not token:
            raise AuthenticationError("Login response did not include a token")

        self.token = token
        self.user = data.get("user") or {}
        logger.info(f"Logged in as {self.user.get('email', email)}")
        return self.user

    async def get_current_user(self) -> dict[str, Any]:
        """Get the user the token belongs to."""
        data = await self._request("GET", "/api/auth/me")
        self.user = data.get("user", data)
        return self.user

    # =========================================================================
    # Songs
    # =========================================================================

    async def list_songs(self) -> list[dict[str, Any]]:
        """List songs visible to the current user (raw payloads)."""
        data = await self._request("GET", "/api/songs")
        if isinstance(data, dict):
            data = data.get("songs", [])
        return list(data)

    async def get_song(self, song_id: str) -> dict[str, Any]:
        """Get a song payload (including childVersions when present)."""
        data = await self._request("GET", f"/api/songs/{song_id}")
        if isinstance(data, dict) and isinstance(data.get("song"), dict):
            return data["song"]
        return data

    async def get_versions(self, song_id: str) -> list[Track]:
        """
        Get the voice-type variants of a song the current user may play.

        A song without variants comes back as a single-item list.
        """
        data = await self._request("GET", f"/api/songs/{song_id}/versions")
        versions = data.get("versions", []) if isinstance(data, dict) else data
        tracks = [Track.from_api(v) for v in versions]
        logger.debug(f"Song {song_id}: {len(tracks)} versions")
        return tracks

    # =========================================================================
    # Transport
    # =========================================================================

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[dict[str, Any]] = None,
    ) -> Any:
        """Make an API request and return the decoded JSON body."""
        url = f"{self.base_url}{path}"
        headers = {"Accept": "application/json", **self.auth_headers()}

        session = self._session
        close_session = False
        if session is None:
            session = aiohttp.ClientSession(timeout=self._timeout)
            close_session = True

        logger.debug(f"API {method} {path}")
        try:
            async with session.request(method, url, json=json, headers=headers) as resp:
                if resp.status in (401, 403):
                    raise AuthenticationError(
                        await self._error_message(resp), status=resp.status
                    )
                if resp.status >= 400:
                    raise APIError(await self._error_message(resp), status=resp.status)
                return await resp.json(content_type=None)

        except aiohttp.ClientError as e:
            raise APIError(f"Request to {path} failed: {e}")
        except asyncio.TimeoutError:
            raise APIError(f"Request to {path} timed out")
        except ValueError as e:
            raise APIError(f"Invalid JSON from {path}: {e}")
        finally:
            if close_session:
                await session.close()

    @staticmethod
    async def _error_message(resp: aiohttp.ClientResponse) -> str:
        """Extract the server's error message, falling back to the status."""
        try:
            data = await resp.json(content_type=None)
            if isinstance(data, dict) and data.get("message"):
                return f"{data['message']} (HTTP {resp.status})"
        except (aiohttp.ContentTypeError, ValueError):
            pass
        return f"HTTP {resp.status}"
