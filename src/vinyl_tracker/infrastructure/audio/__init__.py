"""Audio capture buffer and sample encoding."""

from .ring_buffer import AudioRingBuffer
from .sample_encoder import WavSampleEncoder

__all__ = [
    "AudioRingBuffer",
    "WavSampleEncoder",
]
