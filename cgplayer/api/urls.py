"""
Playable URL resolution for tracks.

The API serves audio from a few routes depending on how the file was
uploaded, so a track's URL is built from whichever reference it carries.
"""

import logging
import re
from typing import Optional
from urllib.parse import quote

from cgplayer.library import Track

logger = logging.getLogger(__name__)

_DUPLICATE_SLASHES = re.compile(r"(?<!:)/{2,}")


def song_file_url(base_url: str, folder_name: str, file_name: str) -> str:
    """URL of a file stored in a song folder."""
    return (
        f"{base_url.rstrip('/')}/api/songs/file/"
        f"{quote(folder_name, safe='')}/{quote(file_name, safe='')}"
    )


def root_file_url(base_url: str, file_name: str) -> str:
    """URL of a file stored at the uploads root."""
    return f"{base_url.rstrip('/')}/api/songs/file-root/{quote(file_name, safe='')}"


def upload_url(base_url: str, file_path: str) -> str:
    """Static uploads URL for a stored file path."""
    return f"{base_url.rstrip('/')}/uploads/{quote(file_path.lstrip('/'))}"


def resolve_track_url(track: Track, base_url: str) -> Optional[str]:
    """
    Build the playable URL for a track.

    Order: direct URL, folder + file name, file path, root file name.

    Returns:
        URL or None if the track carries no file reference
    """
    if track.url:
        return track.url
    if track.folder_name and track.file_name:
        return song_file_url(base_url, track.folder_name, track.file_name)
    if track.file_path:
        return upload_url(base_url, track.file_path)
    if track.file_name:
        return root_file_url(base_url, track.file_name)
    return None


def collapse_slashes(url: str) -> str:
    """Collapse repeated slashes in a URL, keeping the scheme separator."""
    return _DUPLICATE_SLASHES.sub("/", url)


def corrected_track_url(track: Track, base_url: str, failed_url: str) -> Optional[str]:
    """
    Best-effort alternative URL after a load failure.

    Returns:
        A different URL to try once, or None if no correction applies
    """
    corrected: Optional[str] = None
    if track.folder_name and track.file_name:
        corrected = song_file_url(base_url, track.folder_name, track.file_name)
    elif track.file_name:
        corrected = root_file_url(base_url, track.file_name)
    elif failed_url:
        corrected = collapse_slashes(failed_url)

    if not corrected or corrected == failed_url:
        return None

    logger.debug(f"Corrected URL for track {track.id}: {failed_url} -> {corrected}")
    return corrected
