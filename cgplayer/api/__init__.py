"""CGPlayerWeb API access and URL resolution."""

from .client import APIError, AuthenticationError, CGPlayerAPIClient
from .urls import (
    corrected_track_url,
    resolve_track_url,
    root_file_url,
    song_file_url,
    upload_url,
)

__all__ = [
    "APIError",
    "AuthenticationError",
    "CGPlayerAPIClient",
    "corrected_track_url",
    "resolve_track_url",
    "root_file_url",
    "song_file_url",
    "upload_url",
]
