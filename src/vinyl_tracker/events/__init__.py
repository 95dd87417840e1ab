"""
Event System - in-process publish/subscribe.

Audio-level signals, session lifecycle transitions and recognition results
flow between components through the event bus.
"""

from .event_bus import EventBus, EventHandler, SubscriptionGroup
from . import topics
from .topics import (
    AudioLevel,
    ClippingDetected,
    SessionEnded,
    SessionStarted,
    SilenceDetected,
    SilenceEnded,
    TopicPayload,
    TrackRecognized,
)

__all__ = [
    # Core event system
    "EventBus",
    "EventHandler",
    "SubscriptionGroup",
    "topics",
    # Topic payloads
    "TopicPayload",
    "AudioLevel",
    "SilenceDetected",
    "SilenceEnded",
    "ClippingDetected",
    "SessionStarted",
    "SessionEnded",
    "TrackRecognized",
]
