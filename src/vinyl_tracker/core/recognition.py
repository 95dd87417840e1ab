"""Recognition workflow: capture, identify, match, persist and announce.

``RecognitionOrchestrator.recognize`` runs the whole pipeline for one
on-demand request:

1. check the fingerprint provider is configured
2. capture the most recent audio (degrading down to a 3 second floor)
3. encode it for the provider
4. identify it with a bounded timeout
5. stop without writing anything if the provider found no match
6. match the result against the record collection
7. store the track, linking it to an album when the match is strong enough
8. publish ``track.recognized``
9. remove the temporary sample file, whatever happened

Every outcome is returned as a ``Result``; nothing raised by a collaborator
escapes to the caller.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, TYPE_CHECKING

import aiohttp

from ..domain.entities import AlbumMatch, Track
from ..domain.ports import AudioSource, EncodedSample, FingerprintProvider, RecognizedMusic, SampleEncoder
from ..domain.repositories import Store
from ..domain.result import Result, failure, success
from ..events import topics
from ..events.event_bus import EventBus
from ..events.topics import TrackRecognized
from ..exceptions import (
    AlbumNotFoundError,
    CaptureError,
    NoActiveSessionError,
    NotConfiguredError,
    ProviderError,
    ProviderTimeoutError,
    TrackNotFoundError,
    TrackNotIdentifiedError,
    VinylTrackerError,
)
from ..models.config import RecognitionConfig
from .collection_matcher import AUTO_LINK, CollectionMatcher, TrackInput

if TYPE_CHECKING:
    from .session_manager import SessionManager

logger = logging.getLogger(__name__)

UNEXPECTED_ERROR = "UNEXPECTED_ERROR"
TRIGGERS = ("manual", "automatic")

MIN_TRACK_SECONDS_FOR_HINT = 60
NEXT_RECOGNITION_MIN = 60
NEXT_RECOGNITION_LEAD = 30


@dataclass
class RecognizeOptions:
    """Parameters of one recognition request."""
    sample_duration: float = 10
    trigger: str = "manual"
    session_id: Optional[str] = None

    def __post_init__(self):
        if self.trigger not in TRIGGERS:
            raise ValueError(f"trigger must be one of {TRIGGERS}, got {self.trigger!r}")
        if self.sample_duration <= 0:
            raise ValueError("sample_duration must be positive")


@dataclass
class RecognitionOutcome:
    """A stored track together with its collection matching result."""
    track: Track
    album_match: Optional[AlbumMatch] = None
    candidates: List[AlbumMatch] = field(default_factory=list)
    needs_confirmation: bool = False
    next_recognition_in: Optional[int] = None

    @property
    def linked(self) -> bool:
        return self.track.album_id is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "track": self.track.to_dict(),
            "album_match": self.album_match.to_dict() if self.album_match else None,
            "candidates": [candidate.to_dict() for candidate in self.candidates],
            "needs_confirmation": self.needs_confirmation,
            "next_recognition_in": self.next_recognition_in,
        }


def error_to_payload(error: Exception) -> Dict[str, Any]:
    """Failure projection with a stable error code."""
    if isinstance(error, VinylTrackerError):
        payload: Dict[str, Any] = {
            "success": False,
            "error": error.message,
            "error_code": error.code,
        }
        if error.details is not None:
            payload["details"] = error.details
        return payload

    return {
        "success": False,
        "error": "Unexpected recognition error",
        "error_code": UNEXPECTED_ERROR,
    }


def result_to_payload(result: Result) -> Dict[str, Any]:
    """JSON-ready projection of a recognition or confirmation result."""
    if result.is_failure():
        return error_to_payload(result.error())

    value = result.value()
    if isinstance(value, RecognitionOutcome):
        return value.to_dict()
    if isinstance(value, Track):
        return {"success": True, "track": value.to_dict()}
    return {"success": True, "value": value}


def next_recognition_in(duration_seconds: Optional[int]) -> Optional[int]:
    """Suggested delay before the next recognition, aiming at the following song."""
    if duration_seconds and duration_seconds > MIN_TRACK_SECONDS_FOR_HINT:
        return max(NEXT_RECOGNITION_MIN, duration_seconds - NEXT_RECOGNITION_LEAD)
    return None


class RecognitionOrchestrator:
    """Runs on-demand recognitions over injected collaborators.

    Holds no per-request state, so concurrent calls are independent; callers
    that need to serialise recognitions must do it themselves.
    """

    def __init__(
        self,
        audio_source: AudioSource,
        provider: FingerprintProvider,
        encoder: SampleEncoder,
        store: Store,
        event_bus: EventBus,
        matcher: Optional[CollectionMatcher] = None,
        session_manager: Optional["SessionManager"] = None,
        config: Optional[RecognitionConfig] = None,
    ):
        self.audio_source = audio_source
        self.provider = provider
        self.encoder = encoder
        self.store = store
        self.event_bus = event_bus
        self.matcher = matcher or CollectionMatcher(store)
        self.session_manager = session_manager
        self.config = config or RecognitionConfig()

    @property
    def is_configured(self) -> bool:
        return self.provider.is_configured

    async def recognize(self, options: Optional[RecognizeOptions] = None) -> Result[RecognitionOutcome, Exception]:
        """Identify what is playing and store it as a track."""
        options = options or RecognizeOptions(sample_duration=self.config.sample_duration)
        encoded: Optional[EncodedSample] = None

        logger.info(
            f"Recognition started: trigger={options.trigger}, "
            f"session_id={options.session_id or 'current'}"
        )

        try:
            if not self.provider.is_configured:
                raise NotConfiguredError()

            session_id = self._resolve_session_id(options)

            raw, captured_seconds = await self._capture(options.sample_duration)
            encoded = await self._encode(raw)

            music = await self._identify(encoded)
            if music is None:
                logger.info("Provider could not identify the sample")
                return failure(TrackNotIdentifiedError())

            logger.info(
                f"Identified: '{music.title}' - {music.artist} "
                f"(confidence: {music.confidence:.2f})"
            )

            candidates = await self._match_collection(music)
            best = candidates[0] if candidates else None
            linked = best if best is not None and best.confidence >= AUTO_LINK else None

            track = await self.store.insert_track(Track(
                session_id=session_id,
                title=music.title,
                artist=music.artist,
                recognition_source=music.source,
                album_id=linked.album.id if linked else None,
                album_name=music.album,
                album_art_url=music.album_art_url,
                year=music.year,
                duration_seconds=music.duration_seconds,
                confidence=music.confidence,
                isrc=music.isrc,
                metadata={
                    "provider_id": music.provider_id,
                    "trigger": options.trigger,
                    "sample_seconds": captured_seconds,
                    **music.extra,
                },
            ))
            logger.info(f"Track stored: id={track.id}, album_id={track.album_id}")

            if linked is not None:
                await self._link_session_album(session_id, linked)

            await self.event_bus.publish(
                topics.TRACK_RECOGNIZED,
                TrackRecognized(
                    track=track.to_dict(),
                    session_id=session_id,
                    album_match=best.to_dict() if best else None,
                ).to_payload(),
            )

            return success(RecognitionOutcome(
                track=track,
                album_match=best,
                candidates=candidates,
                needs_confirmation=best is not None and best.needs_confirmation,
                next_recognition_in=next_recognition_in(music.duration_seconds),
            ))

        except VinylTrackerError as e:
            logger.error(f"Recognition error: {e.code} - {e.message}")
            return failure(e)
        except Exception as e:
            logger.exception(f"Unexpected recognition error: {e}")
            return failure(e)
        finally:
            if encoded is not None:
                encoded.cleanup()

    async def confirm_track_album(self, track_id: str, album_id: Optional[str]) -> Result[Track, Exception]:
        """Link a track to a collection album, or unlink it with ``album_id=None``."""
        logger.info(f"Confirming album link: track={track_id}, album={album_id}")

        try:
            track = await self.store.get_track(track_id)
            if track is None:
                raise TrackNotFoundError(track_id)

            if album_id is not None and await self.store.get_album(album_id) is None:
                raise AlbumNotFoundError(album_id)

            updated = await self.store.update_track_album(track_id, album_id)
        except VinylTrackerError as e:
            logger.error(f"Album confirmation failed: {e.code} - {e.message}")
            return failure(e)
        except Exception as e:
            logger.exception(f"Unexpected error confirming album: {e}")
            return failure(e)

        logger.info(f"Track updated: id={updated.id}, album_id={updated.album_id}")
        return success(updated)

    # Steps

    def _resolve_session_id(self, options: RecognizeOptions) -> str:
        if options.session_id:
            return options.session_id
        if self.session_manager is not None:
            session_id = self.session_manager.get_current_session_id()
            if session_id:
                return session_id
        raise NoActiveSessionError()

    async def _capture(self, requested: float):
        """Capture up to ``requested`` seconds, never less than the configured floor."""
        available = self.audio_source.get_available_seconds()
        seconds = min(requested, available)

        if seconds < self.config.min_sample_seconds:
            raise CaptureError(
                details={
                    "requested_seconds": requested,
                    "available_seconds": available,
                    "min_seconds": self.config.min_sample_seconds,
                },
                message="Not enough buffered audio for a sample",
            )
        if seconds < requested:
            logger.warning(f"Only {available:.1f}s buffered, capturing {seconds:.1f}s instead of {requested}s")

        loop = asyncio.get_running_loop()
        try:
            raw = await loop.run_in_executor(None, self.audio_source.capture_sample, seconds)
        except CaptureError:
            raise
        except Exception as e:
            raise CaptureError(details=str(e)) from e

        if not raw:
            raise CaptureError(details="Audio source returned no data")

        return raw, seconds

    async def _encode(self, raw: bytes) -> EncodedSample:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(
                None, self.encoder.encode, raw, self.audio_source.audio_format
            )
        except CaptureError:
            raise
        except Exception as e:
            raise CaptureError(details=str(e), message="Failed to encode audio sample") from e

    async def _identify(self, encoded: EncodedSample) -> Optional[RecognizedMusic]:
        try:
            return await asyncio.wait_for(
                self.provider.identify(encoded.path),
                timeout=self.config.api_timeout,
            )
        except asyncio.TimeoutError as e:
            raise ProviderTimeoutError(details={"timeout": self.config.api_timeout}) from e
        except VinylTrackerError:
            raise
        except (aiohttp.ClientError, OSError) as e:
            raise ProviderError(f"Fingerprint provider request failed: {e}") from e

    async def _match_collection(self, music: RecognizedMusic) -> List[AlbumMatch]:
        """Ranked collection candidates; matching problems never fail a recognition."""
        try:
            return await self.matcher.find_matches(
                TrackInput(artist=music.artist, album=music.album or "")
            )
        except Exception as e:
            logger.error(f"Collection matching failed: {e}")
            return []

    async def _link_session_album(self, session_id: str, linked: AlbumMatch) -> None:
        """Record the album as played in the session; the track is already stored."""
        try:
            created = await self.store.ensure_session_album(session_id, linked.album.id)
        except Exception as e:
            logger.error(f"Failed to link album {linked.album.id} to session {session_id}: {e}")
            return
        if created:
            logger.info(f"Album '{linked.album.title}' linked to session {session_id}")
