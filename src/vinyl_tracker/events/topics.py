"""
Topics - names and payload shapes of the events exchanged on the bus.

Payloads travel as plain dictionaries. Each dataclass below documents one
topic's shape, builds the dictionary on the publishing side
(``to_payload``) and decodes it on the subscribing side (``from_payload``).
"""

from dataclasses import asdict, dataclass, field, fields
from datetime import datetime
from typing import Any, ClassVar, Dict, Optional, Type, TypeVar

AUDIO_LEVEL = "audio.level"
SILENCE_DETECTED = "silence.detected"
SILENCE_ENDED = "silence.ended"
CLIPPING_DETECTED = "clipping.detected"
SESSION_STARTED = "session.started"
SESSION_ENDED = "session.ended"
TRACK_CHANGE_DETECTED = "track.change.detected"
TRACK_RECOGNIZED = "track.recognized"

P = TypeVar('P', bound='TopicPayload')


def _now_iso() -> str:
    return datetime.now().isoformat()


@dataclass(kw_only=True)
class TopicPayload:
    """Base class for typed topic payloads."""
    topic: ClassVar[str] = ""
    timestamp: str = field(default_factory=_now_iso)

    def to_payload(self) -> Dict[str, Any]:
        """Convert to the plain dictionary published on the bus."""
        return asdict(self)

    @classmethod
    def from_payload(cls: Type[P], payload: Dict[str, Any]) -> P:
        """Decode a bus dictionary, ignoring keys this topic does not define."""
        known = {f.name for f in fields(cls)}
        return cls(**{key: value for key, value in payload.items() if key in known})


@dataclass(kw_only=True)
class AudioLevel(TopicPayload):
    """Current input level of the sound device."""
    topic: ClassVar[str] = AUDIO_LEVEL
    level_db: float


@dataclass(kw_only=True)
class SilenceDetected(TopicPayload):
    """Input stayed below the silence threshold long enough."""
    topic: ClassVar[str] = SILENCE_DETECTED
    level_db: float
    duration: float
    threshold: float


@dataclass(kw_only=True)
class SilenceEnded(TopicPayload):
    """Audio returned after a confirmed silence."""
    topic: ClassVar[str] = SILENCE_ENDED
    level_db: float
    silence_duration: float


@dataclass(kw_only=True)
class ClippingDetected(TopicPayload):
    """Input level exceeded the clipping threshold."""
    topic: ClassVar[str] = CLIPPING_DETECTED
    level_db: float
    threshold: float
    count: int


@dataclass(kw_only=True)
class SessionStarted(TopicPayload):
    """A listening session was opened."""
    topic: ClassVar[str] = SESSION_STARTED
    session_id: str


@dataclass(kw_only=True)
class SessionEnded(TopicPayload):
    """A listening session was closed."""
    topic: ClassVar[str] = SESSION_ENDED
    session_id: str
    duration_seconds: int
    event_count: int


@dataclass(kw_only=True)
class TrackRecognized(TopicPayload):
    """A sample was identified and stored as a track."""
    topic: ClassVar[str] = TRACK_RECOGNIZED
    track: Dict[str, Any]
    session_id: str
    album_match: Optional[Dict[str, Any]] = None
