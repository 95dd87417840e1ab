"""
ACRCloud Adapter - Anti-Corruption Layer for the ACRCloud identify API.

This adapter isolates the domain from ACRCloud's request signing and
response layout, returning provider-neutral ``RecognizedMusic`` values.
"""

import asyncio
import base64
import hashlib
import hmac
import logging
import re
import time
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import aiohttp

from ...domain.entities import RecognitionSource
from ...domain.ports import FingerprintProvider, RecognizedMusic
from ...exceptions import NotConfiguredError, ProviderError, ProviderTimeoutError
from ...models.config import RecognitionConfig

logger = logging.getLogger(__name__)

STATUS_OK = 0
STATUS_NO_RESULT = 1001

UNKNOWN_ARTIST = "Unknown Artist"

_YEAR = re.compile(r"^(\d{4})")


def sign_request(access_key: str, access_secret: str, timestamp: str) -> str:
    """Base64 HMAC-SHA1 signature of the identify request."""
    string_to_sign = "\n".join(["POST", "/v1/identify", access_key, "audio", "1", timestamp])
    digest = hmac.new(
        access_secret.encode("utf-8"),
        string_to_sign.encode("utf-8"),
        hashlib.sha1
    ).digest()
    return base64.b64encode(digest).decode("ascii")


def extract_album_art(music: Dict[str, Any]) -> Optional[str]:
    """Cover URL from Spotify metadata, falling back to Deezer."""
    external = music.get("external_metadata") or {}

    covers = ((external.get("spotify") or {}).get("album") or {}).get("cover") or []
    if covers and covers[0].get("url"):
        return covers[0]["url"]

    return ((external.get("deezer") or {}).get("album") or {}).get("cover_big")


def extract_year(release_date: Optional[str]) -> Optional[int]:
    """Year from ``YYYY-MM-DD`` or ``YYYY`` release dates."""
    if not release_date:
        return None
    match = _YEAR.match(release_date)
    return int(match.group(1)) if match else None


def parse_music(music: Dict[str, Any]) -> RecognizedMusic:
    """Convert the first ``metadata.music`` entry of a response."""
    artists = ", ".join(
        artist["name"] for artist in music.get("artists") or [] if artist.get("name")
    )
    duration_ms = music.get("duration_ms")
    score = music.get("score") or 100

    return RecognizedMusic(
        title=music.get("title") or "",
        artist=artists or UNKNOWN_ARTIST,
        source=RecognitionSource.ACRCLOUD,
        album=(music.get("album") or {}).get("name") or None,
        year=extract_year(music.get("release_date")),
        album_art_url=extract_album_art(music),
        duration_seconds=round(duration_ms / 1000) if duration_ms else None,
        confidence=score / 100,
        isrc=(music.get("external_ids") or {}).get("isrc"),
        provider_id=music.get("acrid"),
    )


class ACRCloudAdapter(FingerprintProvider):
    """Adapter for the ACRCloud audio identification service."""

    def __init__(
        self,
        host: Optional[str] = None,
        access_key: Optional[str] = None,
        access_secret: Optional[str] = None,
        timeout: float = 15.0,
        clock: Callable[[], float] = time.time,
    ):
        self.host = host
        self.access_key = access_key
        self.access_secret = access_secret
        self.timeout = timeout
        self._clock = clock
        self._session: Optional[aiohttp.ClientSession] = None

    @classmethod
    def from_config(cls, config: RecognitionConfig) -> "ACRCloudAdapter":
        return cls(
            host=config.acrcloud_host,
            access_key=config.acrcloud_access_key,
            access_secret=config.acrcloud_access_secret,
            timeout=config.api_timeout,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.host and self.access_key and self.access_secret)

    @property
    def source(self) -> RecognitionSource:
        return RecognitionSource.ACRCLOUD

    @property
    def url(self) -> str:
        return f"https://{self.host}/v1/identify"

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create the aiohttp session."""
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
        return self._session

    def _build_form(self, sample: bytes, filename: str) -> aiohttp.FormData:
        timestamp = str(int(self._clock()))

        form = aiohttp.FormData()
        form.add_field("sample", sample, filename=filename, content_type="audio/wav")
        form.add_field("access_key", self.access_key)
        form.add_field("data_type", "audio")
        form.add_field("signature_version", "1")
        form.add_field("signature", sign_request(self.access_key, self.access_secret, timestamp))
        form.add_field("sample_bytes", str(len(sample)))
        form.add_field("timestamp", timestamp)
        return form

    async def identify(self, sample_path: Path) -> Optional[RecognizedMusic]:
        """Submit a WAV sample and parse the best match."""
        if not self.is_configured:
            raise NotConfiguredError()

        try:
            sample = Path(sample_path).read_bytes()
        except OSError as e:
            raise ProviderError(f"Cannot read sample {sample_path}: {e}") from e

        logger.info(f"ACRCloud request: {self.url} ({len(sample)} bytes)")

        try:
            session = await self._get_session()
            async with session.post(self.url, data=self._build_form(sample, Path(sample_path).name)) as response:
                if response.status != 200:
                    raise ProviderError(
                        f"ACRCloud HTTP {response.status}",
                        details={"status": response.status},
                    )
                data = await response.json(content_type=None)
        except ProviderError:
            raise
        except asyncio.TimeoutError as e:
            raise ProviderTimeoutError("ACRCloud request timed out", details={"timeout": self.timeout}) from e
        except (aiohttp.ClientError, ValueError) as e:
            raise ProviderError(f"ACRCloud communication failed: {e}") from e

        return self._parse_response(data)

    def _parse_response(self, data: Dict[str, Any]) -> Optional[RecognizedMusic]:
        status = data.get("status") or {}
        code = status.get("code")
        message = status.get("msg", "")
        logger.info(f"ACRCloud response: code={code}, msg={message}")

        if code == STATUS_NO_RESULT:
            return None

        if code != STATUS_OK:
            raise ProviderError(
                f"ACRCloud: {message or 'error'}",
                details={"provider_code": code},
            )

        music = ((data.get("metadata") or {}).get("music") or [None])[0]
        if not music:
            raise ProviderError("ACRCloud response has no metadata", code="NO_METADATA")

        return parse_music(music)

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None
