"""Vinyl Tracker - listening sessions and music recognition for a turntable."""

__version__ = "0.1.0"

from .core import (
    AutoRecognitionService,
    CollectionMatcher,
    EventDetector,
    EventPersistence,
    RecognitionOrchestrator,
    RecognitionOutcome,
    RecognizeOptions,
    SessionManager,
    TrackInput,
    result_to_payload,
)
from .events import EventBus, SubscriptionGroup
from .models.config import Config, load_config
from .pipeline import ListeningPipeline

__all__ = [
    "AutoRecognitionService",
    "CollectionMatcher",
    "Config",
    "EventBus",
    "EventDetector",
    "EventPersistence",
    "ListeningPipeline",
    "RecognitionOrchestrator",
    "RecognitionOutcome",
    "RecognizeOptions",
    "SessionManager",
    "SubscriptionGroup",
    "TrackInput",
    "load_config",
    "result_to_payload",
]
