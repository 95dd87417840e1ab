"""Custom exceptions for vinyl tracker.

Every error carries a stable ``code`` so outer layers (HTTP routes, UI) can
branch on the failure kind without parsing messages.
"""

from typing import Any, Dict, Optional


class VinylTrackerError(Exception):
    """Base exception for vinyl tracker errors."""

    code = "INTERNAL_ERROR"

    def __init__(self, message: str, code: Optional[str] = None, details: Any = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for serialization."""
        data: Dict[str, Any] = {"message": self.message, "code": self.code}
        if self.details is not None:
            data["details"] = self.details
        return data


class ConfigurationError(VinylTrackerError):
    """Raised when there's an error in configuration."""
    code = "CONFIGURATION_ERROR"


class StoreError(VinylTrackerError):
    """Raised when the persistence layer fails to read or write."""
    code = "STORE_ERROR"


class RecognitionError(VinylTrackerError):
    """Base class for errors in the recognition workflow."""
    code = "RECOGNITION_ERROR"


class NotConfiguredError(RecognitionError):
    """Raised when the fingerprint service credentials are missing."""
    code = "RECOGNITION_NOT_CONFIGURED"

    def __init__(self, message: Optional[str] = None):
        super().__init__(
            message or (
                "Music recognition is not configured. Set ACRCLOUD_HOST, "
                "ACRCLOUD_ACCESS_KEY and ACRCLOUD_ACCESS_SECRET."
            )
        )


class NoActiveSessionError(RecognitionError):
    """Raised when recognition is requested outside a listening session."""
    code = "NO_ACTIVE_SESSION"

    def __init__(self, message: str = "No active session"):
        super().__init__(message)


class CaptureError(RecognitionError):
    """Raised when an audio sample cannot be captured or encoded."""
    code = "CAPTURE_ERROR"

    def __init__(self, details: Any = None, message: str = "Failed to capture audio sample"):
        super().__init__(message, details=details)


class ProviderError(RecognitionError):
    """Raised when the fingerprint provider fails or rejects the request."""
    code = "PROVIDER_ERROR"


class ProviderTimeoutError(ProviderError):
    """Raised when the fingerprint provider does not answer in time."""
    code = "PROVIDER_TIMEOUT"

    def __init__(self, message: str = "Fingerprint provider request timed out", details: Any = None):
        super().__init__(message, details=details)


class TrackNotIdentifiedError(RecognitionError):
    """Raised when the provider found no match for the sample."""
    code = "NOT_FOUND"

    def __init__(self, message: str = "Track not identified"):
        super().__init__(message)


class TrackNotFoundError(RecognitionError):
    """Raised when a track id does not exist."""
    code = "TRACK_NOT_FOUND"

    def __init__(self, track_id: str):
        super().__init__(f"Track not found: {track_id}", details={"track_id": track_id})


class AlbumNotFoundError(RecognitionError):
    """Raised when an album id does not exist in the collection."""
    code = "ALBUM_NOT_FOUND"

    def __init__(self, album_id: str):
        super().__init__(f"Album not found: {album_id}", details={"album_id": album_id})
