"""In-memory Store implementation for testing and development."""

from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from ...domain.entities import Album, AudioEvent, Session, SessionAlbum, Track
from ...domain.repositories import Store
from ...exceptions import StoreError


class InMemoryStore(Store):
    """Dictionary-backed store. Insertion order is preserved for listings."""

    def __init__(self):
        self._sessions: Dict[str, Session] = {}
        self._events: List[AudioEvent] = []
        self._tracks: Dict[str, Track] = {}
        self._albums: Dict[str, Album] = {}
        self._session_albums: Dict[Tuple[str, str], SessionAlbum] = {}

    async def create_session(self, started_at: datetime) -> Session:
        session = Session(started_at=started_at)
        self._sessions[session.id] = session
        return session

    async def update_session(
        self,
        session_id: str,
        *,
        ended_at: datetime,
        duration_seconds: int,
        event_count: int
    ) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            raise StoreError(f"Session not found: {session_id}")

        session.ended_at = ended_at
        session.duration_seconds = duration_seconds
        session.event_count = event_count
        return session

    async def get_session(self, session_id: str) -> Optional[Session]:
        return self._sessions.get(session_id)

    async def insert_event(self, event: AudioEvent) -> AudioEvent:
        self._events.append(event)
        return event

    async def list_events(self, session_id: Optional[str] = None) -> List[AudioEvent]:
        if session_id is None:
            return list(self._events)
        return [event for event in self._events if event.session_id == session_id]

    async def insert_track(self, track: Track) -> Track:
        self._tracks[track.id] = track
        return track

    async def get_track(self, track_id: str) -> Optional[Track]:
        return self._tracks.get(track_id)

    async def update_track_album(self, track_id: str, album_id: Optional[str]) -> Track:
        track = self._tracks.get(track_id)
        if track is None:
            raise StoreError(f"Track not found: {track_id}")

        updated = replace(track, album_id=album_id)
        self._tracks[track_id] = updated
        return updated

    async def list_tracks(self, session_id: Optional[str] = None) -> List[Track]:
        tracks = list(self._tracks.values())
        if session_id is None:
            return tracks
        return [track for track in tracks if track.session_id == session_id]

    async def add_album(self, album: Album) -> Album:
        self._albums[album.id] = album
        return album

    async def get_album(self, album_id: str) -> Optional[Album]:
        return self._albums.get(album_id)

    async def list_active_albums(self) -> List[Album]:
        return [album for album in self._albums.values() if not album.archived]

    async def ensure_session_album(self, session_id: str, album_id: str) -> bool:
        key = (session_id, album_id)
        if key in self._session_albums:
            return False
        self._session_albums[key] = SessionAlbum(session_id=session_id, album_id=album_id)
        return True

    async def list_session_albums(self, session_id: str) -> List[SessionAlbum]:
        return [link for link in self._session_albums.values() if link.session_id == session_id]
