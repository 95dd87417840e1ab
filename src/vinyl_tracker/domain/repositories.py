"""Store interface.

The Store abstracts the relational persistence engine. Implementations raise
``StoreError`` when a read or write fails.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from .entities import Album, AudioEvent, Session, SessionAlbum, Track


class Store(ABC):
    """Repository for sessions, events, tracks and collection albums."""

    # Sessions

    @abstractmethod
    async def create_session(self, started_at: datetime) -> Session:
        """Create an open session with zero events."""
        pass

    @abstractmethod
    async def update_session(
        self,
        session_id: str,
        *,
        ended_at: datetime,
        duration_seconds: int,
        event_count: int
    ) -> Session:
        """Close a session with its final duration and event count."""
        pass

    @abstractmethod
    async def get_session(self, session_id: str) -> Optional[Session]:
        """Find a session by its ID."""
        pass

    # Domain events

    @abstractmethod
    async def insert_event(self, event: AudioEvent) -> AudioEvent:
        """Persist a domain event."""
        pass

    @abstractmethod
    async def list_events(self, session_id: Optional[str] = None) -> List[AudioEvent]:
        """List events, optionally restricted to one session."""
        pass

    # Tracks

    @abstractmethod
    async def insert_track(self, track: Track) -> Track:
        """Persist a recognised track."""
        pass

    @abstractmethod
    async def get_track(self, track_id: str) -> Optional[Track]:
        """Find a track by its ID."""
        pass

    @abstractmethod
    async def update_track_album(self, track_id: str, album_id: Optional[str]) -> Track:
        """Set or clear the album link of a track and return the updated track."""
        pass

    @abstractmethod
    async def list_tracks(self, session_id: Optional[str] = None) -> List[Track]:
        """List tracks, optionally restricted to one session."""
        pass

    # Collection

    @abstractmethod
    async def add_album(self, album: Album) -> Album:
        """Add an album to the collection."""
        pass

    @abstractmethod
    async def get_album(self, album_id: str) -> Optional[Album]:
        """Find an album by its ID."""
        pass

    @abstractmethod
    async def list_active_albums(self) -> List[Album]:
        """List every album that is not archived."""
        pass

    # Session <-> album associations

    @abstractmethod
    async def ensure_session_album(self, session_id: str, album_id: str) -> bool:
        """Create the association if absent.

        Returns True when a new association was created, False when it
        already existed.
        """
        pass

    @abstractmethod
    async def list_session_albums(self, session_id: str) -> List[SessionAlbum]:
        """List albums associated with a session."""
        pass
