"""Song and voice-variant model."""

from .models import (
    SHARED_VOICE_TYPES,
    InvalidTrackError,
    Track,
    TrackCatalog,
    VoiceType,
    filter_by_voices,
)

__all__ = [
    "SHARED_VOICE_TYPES",
    "InvalidTrackError",
    "Track",
    "TrackCatalog",
    "VoiceType",
    "filter_by_voices",
]
