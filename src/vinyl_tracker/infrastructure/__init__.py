"""Infrastructure Layer - stores, audio capture and external services."""

from .audio import AudioRingBuffer, WavSampleEncoder
from .external import ACRCloudAdapter
from .repositories import InMemoryStore, SQLiteStore

__all__ = [
    "ACRCloudAdapter",
    "AudioRingBuffer",
    "InMemoryStore",
    "SQLiteStore",
    "WavSampleEncoder",
]
