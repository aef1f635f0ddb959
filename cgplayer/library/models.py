"""
Track model for CGPlayer.

A song can be a "container" with voice-type variants as children. The
hierarchy is exactly one level deep, so it is kept as a flat arena keyed by
track id plus a parent-id index rather than a tree.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Iterator, Optional

logger = logging.getLogger(__name__)


class InvalidTrackError(ValueError):
    """Raised when a track payload breaks the variant invariants."""

    pass


class VoiceType(Enum):
    """Voice types a song variant can be tagged with."""

    SOPRANO = "SOPRANO"
    MESOSOPRANO = "MESOSOPRANO"
    CONTRALTO = "CONTRALTO"
    TENOR = "TENOR"
    BARITONO = "BARITONO"
    BAJO = "BAJO"
    CORO = "CORO"  # Full choir mix
    ORIGINAL = "ORIGINAL"  # Original recording

    @classmethod
    def parse(cls, value: str) -> "VoiceType":
        """Parse a voice type name, case-insensitively."""
        try:
            return cls(value.strip().upper())
        except ValueError:
            raise InvalidTrackError(f"Unknown voice type: {value!r}")


# Tags every singer may listen to regardless of their own voice
SHARED_VOICE_TYPES = frozenset({VoiceType.CORO, VoiceType.ORIGINAL})


@dataclass(frozen=True)
class Track:
    """
    A playable audio item: a song or one of its voice-type variants.

    Attributes:
        id: Song ID from the API
        title: Display title
        duration: Duration in seconds (0 when unknown)
        folder_name: Upload folder, combined with file_name for the file route
        file_name: Stored file name
        file_path: Path relative to the uploads directory
        url: Direct playable URL (takes precedence over file references)
        voice_type: Voice-type tag, required for variants
        parent_id: Container song ID for variants
    """

    id: str
    title: str
    artist: Optional[str] = None
    album: Optional[str] = None
    genre: Optional[str] = None
    duration: float = 0.0
    folder_name: Optional[str] = None
    file_name: Optional[str] = None
    file_path: Optional[str] = None
    url: Optional[str] = None
    voice_type: Optional[VoiceType] = None
    parent_id: Optional[str] = None
    cover_color: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.id:
            raise InvalidTrackError("Track id is required")
        if self.parent_id is not None and self.voice_type is None:
            raise InvalidTrackError(
                f"Variant {self.id} of {self.parent_id} has no voice type"
            )

    @property
    def is_variant(self) -> bool:
        return self.parent_id is not None

    @property
    def is_container(self) -> bool:
        return self.parent_id is None and self.voice_type is None

    @property
    def display_title(self) -> str:
        """Title with the voice type appended for variants."""
        if self.voice_type is not None:
            return f"{self.title} ({self.voice_type.value.title()})"
        return self.title

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "Track":
        """Build a track from a CGPlayerWeb API song payload."""
        voice = data.get("voiceType")
        parent_id = data.get("parentSongId")
        if parent_id is None and isinstance(data.get("parentSong"), dict):
            parent_id = data["parentSong"].get("id")

        return cls(
            id=str(data.get("id", "")),
            title=data.get("title") or "",
            artist=data.get("artist"),
            album=data.get("album"),
            genre=data.get("genre"),
            duration=float(data.get("duration") or 0),
            folder_name=data.get("folderName"),
            file_name=data.get("fileName"),
            file_path=data.get("filePath"),
            url=data.get("url"),
            voice_type=VoiceType.parse(voice) if voice else None,
            parent_id=str(parent_id) if parent_id is not None else None,
            cover_color=data.get("coverColor"),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-safe dictionary."""
        return {
            "id": self.id,
            "title": self.title,
            "artist": self.artist,
            "album": self.album,
            "genre": self.genre,
            "duration": self.duration,
            "folder_name": self.folder_name,
            "file_name": self.file_name,
            "file_path": self.file_path,
            "url": self.url,
            "voice_type": self.voice_type.value if self.voice_type else None,
            "parent_id": self.parent_id,
            "cover_color": self.cover_color,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Track":
        """Inverse of to_dict()."""
        voice = data.get("voice_type")
        return cls(
            id=str(data["id"]),
            title=data.get("title", ""),
            artist=data.get("artist"),
            album=data.get("album"),
            genre=data.get("genre"),
            duration=float(data.get("duration") or 0),
            folder_name=data.get("folder_name"),
            file_name=data.get("file_name"),
            file_path=data.get("file_path"),
            url=data.get("url"),
            voice_type=VoiceType.parse(voice) if voice else None,
            parent_id=data.get("parent_id"),
            cover_color=data.get("cover_color"),
        )


class TrackCatalog:
    """Arena of known tracks with a parent-id lookup for variants."""

    def __init__(self, tracks: Iterable[Track] = ()) -> None:
        self._tracks: dict[str, Track] = {}
        self._children: dict[str, list[str]] = {}
        self.add_many(tracks)

    def add(self, track: Track) -> None:
        """Add or replace a track."""
        previous = self._tracks.get(track.id)
        if previous is not None and previous.parent_id != track.parent_id:
            self._unlink(previous)

        self._tracks[track.id] = track
        if track.parent_id is not None:
            children = self._children.setdefault(track.parent_id, [])
            if track.id not in children:
                children.append(track.id)

    def add_many(self, tracks: Iterable[Track]) -> None:
        for track in tracks:
            self.add(track)

    def add_api_song(self, data: dict[str, Any]) -> Track:
        """
        Add a song payload, registering embedded childVersions too.

        Returns:
            The container (or standalone) track
        """
        track = Track.from_api(data)
        self.add(track)
        for child in data.get("childVersions") or []:
            child = dict(child)
            child.setdefault("parentSongId", track.id)
            self.add(Track.from_api(child))
        return track

    def _unlink(self, track: Track) -> None:
        if track.parent_id is None:
            return
        children = self._children.get(track.parent_id, [])
        if track.id in children:
            children.remove(track.id)

    def get(self, track_id: str) -> Optional[Track]:
        return self._tracks.get(track_id)

    def __contains__(self, track_id: object) -> bool:
        return track_id in self._tracks

    def __len__(self) -> int:
        return len(self._tracks)

    def __iter__(self) -> Iterator[Track]:
        return iter(self._tracks.values())

    def variants_of(self, parent_id: str) -> list[Track]:
        """Variants of a container, in insertion order."""
        return [self._tracks[i] for i in self._children.get(parent_id, [])]

    def parent_of(self, track_id: str) -> Optional[Track]:
        track = self._tracks.get(track_id)
        if track is None or track.parent_id is None:
            return None
        return self._tracks.get(track.parent_id)

    def containers(self) -> list[Track]:
        return [t for t in self._tracks.values() if t.is_container]

    def variants_for_voices(
        self, parent_id: str, voices: Optional[Iterable[VoiceType]] = None
    ) -> list[Track]:
        """
        Variants a singer with the given voices may play.

        CORO and ORIGINAL are always included. With no voices given, every
        variant is returned. A song without variants yields itself when its
        own tag (if any) is allowed.
        """
        variants = self.variants_of(parent_id)
        if not variants:
            track = self._tracks.get(parent_id)
            if track is None:
                return []
            variants = [track]

        return filter_by_voices(variants, voices)


def filter_by_voices(
    tracks: Iterable[Track], voices: Optional[Iterable[VoiceType]] = None
) -> list[Track]:
    """Keep untagged tracks, shared tags, and the given voices (all when None)."""
    if voices is None:
        return list(tracks)
    allowed = set(voices) | SHARED_VOICE_TYPES
    return [t for t in tracks if t.voice_type is None or t.voice_type in allowed]
