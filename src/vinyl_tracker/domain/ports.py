"""Collaborator interfaces used by the recognition workflow.

These isolate the domain from the sound device, audio conversion and the
fingerprint web service.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional
import logging

from .entities import RecognitionSource

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AudioFormat:
    """Raw PCM layout: interleaved signed little-endian samples."""
    sample_rate: int = 48000
    channels: int = 2
    sample_width: int = 2  # bytes per sample

    @property
    def frame_size(self) -> int:
        return self.channels * self.sample_width

    @property
    def byte_rate(self) -> int:
        return self.sample_rate * self.frame_size


@dataclass
class EncodedSample:
    """A temporary encoded audio file ready for submission."""
    path: Path
    duration_seconds: float
    sample_rate: int
    channels: int = 1

    def cleanup(self) -> None:
        """Remove the temporary file. Safe to call more than once."""
        try:
            self.path.unlink(missing_ok=True)
            logger.debug(f"Removed temporary sample {self.path}")
        except OSError as e:
            logger.warning(f"Failed to remove temporary sample {self.path}: {e}")


@dataclass(frozen=True, kw_only=True)
class RecognizedMusic:
    """Provider-neutral identification result."""
    title: str
    artist: str
    source: RecognitionSource
    album: Optional[str] = None
    year: Optional[int] = None
    album_art_url: Optional[str] = None
    duration_seconds: Optional[int] = None
    confidence: float = 1.0
    isrc: Optional[str] = None
    provider_id: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)


class AudioSource(ABC):
    """Buffered audio from the sound device."""

    @property
    @abstractmethod
    def audio_format(self) -> AudioFormat:
        """Layout of the bytes returned by capture_sample."""
        pass

    @abstractmethod
    def get_available_seconds(self) -> float:
        """Seconds of audio currently buffered."""
        pass

    @abstractmethod
    def capture_sample(self, seconds: float) -> bytes:
        """Return up to ``seconds`` of the most recent raw audio."""
        pass


class SampleEncoder(ABC):
    """Converts raw captured audio into the provider's expected encoding."""

    @abstractmethod
    def encode(self, raw: bytes, audio_format: AudioFormat) -> EncodedSample:
        """Encode raw PCM into a temporary file. Raises CaptureError on failure."""
        pass


class FingerprintProvider(ABC):
    """Audio fingerprint identification service."""

    @property
    @abstractmethod
    def is_configured(self) -> bool:
        """Whether credentials are present."""
        pass

    @property
    @abstractmethod
    def source(self) -> RecognitionSource:
        """Tag recorded on tracks identified by this provider."""
        pass

    @abstractmethod
    async def identify(self, sample_path: Path) -> Optional[RecognizedMusic]:
        """Identify an encoded sample.

        Returns None when the provider found no match. Raises
        ProviderTimeoutError or ProviderError on service failures.
        """
        pass
