"""Circular PCM buffer holding the most recent seconds of captured audio."""

import logging
import threading
from typing import Any, Dict, Optional

from ...domain.ports import AudioFormat, AudioSource

logger = logging.getLogger(__name__)


class AudioRingBuffer(AudioSource):
    """Fixed-capacity ring of raw PCM bytes.

    The capture thread calls ``write`` with chunks as they arrive; recognition
    reads the latest ``seconds`` back. Writes larger than the capacity keep
    only their tail, and reads are always aligned to whole frames.
    """

    def __init__(self, duration_seconds: float = 30, audio_format: Optional[AudioFormat] = None):
        self._format = audio_format or AudioFormat()
        frames = int(duration_seconds * self._format.sample_rate)
        self.capacity = frames * self._format.frame_size

        self._buffer = bytearray(self.capacity)
        self._write_pos = 0
        self._filled = 0
        self._total_written = 0
        self._total_read = 0
        self._lock = threading.Lock()

        logger.info(
            f"Ring buffer initialized: {duration_seconds}s, "
            f"{self.capacity / 1024 / 1024:.2f}MB, {self._format.byte_rate / 1024:.1f}KB/s"
        )

    @property
    def audio_format(self) -> AudioFormat:
        return self._format

    def write(self, data: bytes) -> None:
        """Append a chunk, overwriting the oldest audio when full."""
        size = len(data)
        if size == 0 or self.capacity == 0:
            return

        with self._lock:
            self._total_written += size

            if size >= self.capacity:
                self._buffer[:] = data[size - self.capacity:]
                self._write_pos = 0
                self._filled = self.capacity
                return

            space_to_end = self.capacity - self._write_pos
            if size <= space_to_end:
                self._buffer[self._write_pos:self._write_pos + size] = data
                self._write_pos = (self._write_pos + size) % self.capacity
            else:
                self._buffer[self._write_pos:] = data[:space_to_end]
                self._buffer[:size - space_to_end] = data[space_to_end:]
                self._write_pos = size - space_to_end

            self._filled = min(self._filled + size, self.capacity)

    def read(self, seconds: float) -> Optional[bytes]:
        """The latest ``seconds`` of audio, or None if not that much is buffered."""
        needed = self._aligned(seconds * self._format.byte_rate)
        with self._lock:
            if self._filled < needed:
                logger.warning(
                    f"Insufficient audio: requested {seconds}s, "
                    f"available {self._filled / self._format.byte_rate:.1f}s"
                )
                return None
            return self._read_latest(needed)

    def capture_sample(self, seconds: float) -> bytes:
        """Up to ``seconds`` of the latest audio; shorter when less is buffered."""
        with self._lock:
            size = min(self._aligned(seconds * self._format.byte_rate), self._filled)
            return self._read_latest(size)

    def get_available_seconds(self) -> float:
        return self._filled / self._format.byte_rate

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "capacity": self.capacity,
                "filled": self._filled,
                "fill_percent": (self._filled / self.capacity * 100) if self.capacity else 0.0,
                "available_seconds": self._filled / self._format.byte_rate,
                "total_written": self._total_written,
                "total_read": self._total_read,
            }

    def clear(self) -> None:
        with self._lock:
            self._write_pos = 0
            self._filled = 0
        logger.debug("Ring buffer cleared")

    def _aligned(self, size: float) -> int:
        frame_size = self._format.frame_size
        return int(size) // frame_size * frame_size

    def _read_latest(self, size: int) -> bytes:
        if size <= 0:
            return b""

        start = (self._write_pos - size) % self.capacity
        end = start + size
        if end <= self.capacity:
            data = bytes(self._buffer[start:end])
        else:
            data = bytes(self._buffer[start:]) + bytes(self._buffer[:end - self.capacity])

        self._total_read += size
        return data
