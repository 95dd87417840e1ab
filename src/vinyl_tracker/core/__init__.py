"""Core services: session tracking, event persistence, detection and recognition."""

from .auto_recognition import AutoRecognitionService
from .collection_matcher import (
    ALBUM_WEIGHT,
    ARTIST_WEIGHT,
    AUTO_LINK,
    MAX_RESULTS,
    MIN_MATCH,
    CollectionMatcher,
    TrackInput,
    rank_albums,
)
from .event_detector import EventDetector
from .event_persistence import EventPersistence
from .recognition import (
    RecognitionOrchestrator,
    RecognitionOutcome,
    RecognizeOptions,
    next_recognition_in,
    result_to_payload,
)
from .session_manager import SessionManager

__all__ = [
    "AutoRecognitionService",
    "CollectionMatcher",
    "TrackInput",
    "rank_albums",
    "MIN_MATCH",
    "AUTO_LINK",
    "MAX_RESULTS",
    "ARTIST_WEIGHT",
    "ALBUM_WEIGHT",
    "EventDetector",
    "EventPersistence",
    "RecognitionOrchestrator",
    "RecognitionOutcome",
    "RecognizeOptions",
    "next_recognition_in",
    "result_to_payload",
    "SessionManager",
]
