"""
Domain Layer - Vinyl Tracker

Entities, collaborator interfaces and the Result type shared by the session
and recognition services.
"""

from .entities import (
    ActiveSessionInfo,
    Album,
    AlbumMatch,
    AudioEvent,
    EventType,
    MatchType,
    RecognitionSource,
    Session,
    SessionAlbum,
    SessionState,
    Track,
)
from .ports import (
    AudioFormat,
    AudioSource,
    EncodedSample,
    FingerprintProvider,
    RecognizedMusic,
    SampleEncoder,
)
from .repositories import Store
from .result import Result, Success, Failure, success, failure

__all__ = [
    # Entities
    "ActiveSessionInfo",
    "Album",
    "AlbumMatch",
    "AudioEvent",
    "EventType",
    "MatchType",
    "RecognitionSource",
    "Session",
    "SessionAlbum",
    "SessionState",
    "Track",
    # Collaborators
    "AudioFormat",
    "AudioSource",
    "EncodedSample",
    "FingerprintProvider",
    "RecognizedMusic",
    "SampleEncoder",
    "Store",
    # Result pattern
    "Result",
    "Success",
    "Failure",
    "success",
    "failure",
]
