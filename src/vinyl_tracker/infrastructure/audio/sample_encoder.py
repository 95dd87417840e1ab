"""Conversion of captured PCM into the sample format fingerprint providers expect.

Providers want mono 16-bit WAV at 44.1 kHz. The encoder downmixes by channel
mean, resamples with linear interpolation and writes a temporary file that
the caller removes through ``EncodedSample.cleanup``.
"""

import logging
import tempfile
import wave
from pathlib import Path
from typing import Optional, Union

import numpy as np

from ...domain.ports import AudioFormat, EncodedSample, SampleEncoder
from ...exceptions import CaptureError

logger = logging.getLogger(__name__)

TARGET_SAMPLE_RATE = 44100

_DTYPES = {
    2: np.int16,
    4: np.int32,
}


def to_mono(raw: bytes, audio_format: AudioFormat) -> np.ndarray:
    """Decode interleaved PCM and average the channels into float samples in [-1, 1]."""
    dtype = _DTYPES.get(audio_format.sample_width)
    if dtype is None:
        raise CaptureError(details=f"Unsupported sample width: {audio_format.sample_width} bytes")

    usable = len(raw) - len(raw) % audio_format.frame_size
    if usable <= 0:
        raise CaptureError(details="Empty audio sample")

    samples = np.frombuffer(raw[:usable], dtype=dtype).astype(np.float64)
    samples /= float(np.iinfo(dtype).max) + 1.0
    frames = samples.reshape(-1, audio_format.channels)
    return frames.mean(axis=1)


def resample(samples: np.ndarray, source_rate: int, target_rate: int) -> np.ndarray:
    """Linear-interpolation resampling."""
    if source_rate == target_rate or samples.size == 0:
        return samples

    duration = samples.size / source_rate
    target_size = max(1, int(round(duration * target_rate)))
    source_times = np.arange(samples.size) / source_rate
    target_times = np.arange(target_size) / target_rate
    return np.interp(target_times, source_times, samples)


def to_pcm16(samples: np.ndarray) -> bytes:
    clipped = np.clip(samples, -1.0, 1.0 - 1.0 / 32768)
    return (clipped * 32768).astype("<i2").tobytes()


class WavSampleEncoder(SampleEncoder):
    """Writes mono 16-bit WAV samples into a temporary directory."""

    def __init__(
        self,
        target_sample_rate: int = TARGET_SAMPLE_RATE,
        temp_dir: Optional[Union[str, Path]] = None
    ):
        self.target_sample_rate = target_sample_rate
        self.temp_dir = Path(temp_dir) if temp_dir else None

    def encode(self, raw: bytes, audio_format: AudioFormat) -> EncodedSample:
        mono = to_mono(raw, audio_format)
        converted = resample(mono, audio_format.sample_rate, self.target_sample_rate)

        try:
            tmp = tempfile.NamedTemporaryFile(
                prefix="recognition-", suffix=".wav", dir=self.temp_dir, delete=False
            )
        except OSError as e:
            raise CaptureError(details=str(e), message="Failed to create audio sample file") from e

        path = Path(tmp.name)
        try:
            with tmp:
                with wave.open(tmp, "wb") as wav:
                    wav.setnchannels(1)
                    wav.setsampwidth(2)
                    wav.setframerate(self.target_sample_rate)
                    wav.writeframes(to_pcm16(converted))
        except (OSError, wave.Error) as e:
            path.unlink(missing_ok=True)
            raise CaptureError(details=str(e), message="Failed to write audio sample") from e

        duration = converted.size / self.target_sample_rate
        logger.debug(f"Encoded {duration:.1f}s sample to {path}")
        return EncodedSample(
            path=path,
            duration_seconds=duration,
            sample_rate=self.target_sample_rate,
            channels=1,
        )
