"""Domain entities for listening sessions, events, tracks and the collection.

Sessions, events and tracks are owned by this package. Albums belong to the
user's collection and are only read here (plus an album link on tracks).
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional
from uuid import uuid4


def _new_id() -> str:
    return str(uuid4())


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class SessionState(Enum):
    """States of the session lifecycle."""
    IDLE = "idle"
    ACTIVE = "active"


class EventType(Enum):
    """Kinds of domain events that are persisted."""
    SILENCE_DETECTED = "silence_detected"
    SILENCE_ENDED = "silence_ended"
    CLIPPING_DETECTED = "clipping_detected"
    SESSION_STARTED = "session_started"
    SESSION_ENDED = "session_ended"
    TRACK_CHANGE_DETECTED = "track_change_detected"


class RecognitionSource(Enum):
    """Providers a track identification can come from."""
    ACRCLOUD = "acrcloud"
    AUDD = "audd"
    MANUAL = "manual"


class MatchType(Enum):
    """Which fields of a collection entry matched a recognised track."""
    ARTIST_AND_ALBUM = "artist+album"
    ARTIST = "artist"
    ALBUM = "album"


@dataclass(kw_only=True)
class Session:
    """One continuous listening period."""

    id: str = field(default_factory=_new_id)
    started_at: datetime
    ended_at: Optional[datetime] = None
    duration_seconds: int = 0
    event_count: int = 0

    @property
    def is_open(self) -> bool:
        return self.ended_at is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "started_at": _iso(self.started_at),
            "ended_at": _iso(self.ended_at),
            "duration_seconds": self.duration_seconds,
            "event_count": self.event_count,
        }


@dataclass(frozen=True, kw_only=True)
class ActiveSessionInfo:
    """Live snapshot of the open session."""
    id: str
    started_at: datetime
    duration_seconds: int
    event_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "started_at": _iso(self.started_at),
            "duration_seconds": self.duration_seconds,
            "event_count": self.event_count,
        }


@dataclass(frozen=True, kw_only=True)
class AudioEvent:
    """An immutable fact about audio conditions or lifecycle transitions.

    The metadata shape depends only on ``event_type`` and is stored opaquely.
    """

    id: str = field(default_factory=_new_id)
    event_type: EventType
    session_id: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.now)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "event_type": self.event_type.value,
            "session_id": self.session_id,
            "timestamp": _iso(self.timestamp),
            "metadata": self.metadata,
        }


@dataclass(frozen=True, kw_only=True)
class Album:
    """A collection entry, consumed read-only by the matcher."""
    id: str = field(default_factory=_new_id)
    title: str
    artist: str
    year: Optional[int] = None
    archived: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "artist": self.artist,
            "year": self.year,
            "archived": self.archived,
        }


@dataclass(frozen=True, kw_only=True)
class Track:
    """A recognition result for one audio sample.

    Tracks are frozen; re-linking to an album produces a new instance through
    the store, everything else stays as recognised.
    """

    id: str = field(default_factory=_new_id)
    session_id: str
    title: str
    artist: str
    recognition_source: RecognitionSource
    album_id: Optional[str] = None
    album_name: Optional[str] = None
    album_art_url: Optional[str] = None
    year: Optional[int] = None
    duration_seconds: Optional[int] = None
    confidence: float = 1.0
    isrc: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    recognized_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "album_id": self.album_id,
            "title": self.title,
            "artist": self.artist,
            "album_name": self.album_name,
            "album_art_url": self.album_art_url,
            "year": self.year,
            "duration_seconds": self.duration_seconds,
            "confidence": self.confidence,
            "recognition_source": self.recognition_source.value,
            "isrc": self.isrc,
            "metadata": self.metadata,
            "recognized_at": _iso(self.recognized_at),
        }


@dataclass(frozen=True, kw_only=True)
class SessionAlbum:
    """Association between a session and an album played during it."""
    session_id: str
    album_id: str
    created_at: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True, kw_only=True)
class AlbumMatch:
    """A scored candidate album for a recognised track. Never persisted."""
    album: Album
    confidence: float
    matched_on: MatchType
    needs_confirmation: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "album_id": self.album.id,
            "album_title": self.album.title,
            "album_artist": self.album.artist,
            "match_confidence": self.confidence,
            "matched_on": self.matched_on.value,
            "needs_confirmation": self.needs_confirmation,
        }
