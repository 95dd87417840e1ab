"""SQLite-backed Store.

Every call opens a short-lived connection on the store's worker thread, so
one store instance can be shared by all services of the process. Timestamps are stored as ISO-8601
text and metadata as JSON.
"""

import asyncio
import json
import logging
import sqlite3
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterator, List, Optional, TypeVar, Union

from ...domain.entities import (
    Album,
    AudioEvent,
    EventType,
    RecognitionSource,
    Session,
    SessionAlbum,
    Track,
)
from ...domain.repositories import Store
from ...exceptions import StoreError

logger = logging.getLogger(__name__)

T = TypeVar("T")

SCHEMA = """
    CREATE TABLE IF NOT EXISTS sessions (
        id TEXT PRIMARY KEY,
        started_at TEXT NOT NULL,
        ended_at TEXT,
        duration_seconds INTEGER NOT NULL DEFAULT 0,
        event_count INTEGER NOT NULL DEFAULT 0
    );

    CREATE TABLE IF NOT EXISTS audio_events (
        id TEXT PRIMARY KEY,
        session_id TEXT,
        event_type TEXT NOT NULL,
        timestamp TEXT NOT NULL,
        metadata TEXT,
        FOREIGN KEY (session_id) REFERENCES sessions(id)
    );

    CREATE TABLE IF NOT EXISTS albums (
        id TEXT PRIMARY KEY,
        title TEXT NOT NULL,
        artist TEXT NOT NULL,
        year INTEGER,
        archived INTEGER NOT NULL DEFAULT 0
    );

    CREATE TABLE IF NOT EXISTS tracks (
        id TEXT PRIMARY KEY,
        session_id TEXT NOT NULL,
        album_id TEXT,
        title TEXT NOT NULL,
        artist TEXT NOT NULL,
        album_name TEXT,
        album_art_url TEXT,
        year INTEGER,
        duration_seconds INTEGER,
        confidence REAL NOT NULL,
        recognition_source TEXT NOT NULL,
        isrc TEXT,
        metadata TEXT,
        recognized_at TEXT NOT NULL,
        FOREIGN KEY (session_id) REFERENCES sessions(id),
        FOREIGN KEY (album_id) REFERENCES albums(id)
    );

    CREATE TABLE IF NOT EXISTS session_albums (
        session_id TEXT NOT NULL,
        album_id TEXT NOT NULL,
        created_at TEXT NOT NULL,
        UNIQUE (session_id, album_id)
    );

    CREATE INDEX IF NOT EXISTS idx_events_session ON audio_events(session_id);
    CREATE INDEX IF NOT EXISTS idx_events_timestamp ON audio_events(timestamp);
    CREATE INDEX IF NOT EXISTS idx_tracks_session ON tracks(session_id);
"""

TRACK_COLUMNS = (
    "id, session_id, album_id, title, artist, album_name, album_art_url, year, "
    "duration_seconds, confidence, recognition_source, isrc, metadata, recognized_at"
)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _row_to_session(row: sqlite3.Row) -> Session:
    return Session(
        id=row["id"],
        started_at=datetime.fromisoformat(row["started_at"]),
        ended_at=_parse(row["ended_at"]),
        duration_seconds=row["duration_seconds"],
        event_count=row["event_count"],
    )


def _row_to_event(row: sqlite3.Row) -> AudioEvent:
    return AudioEvent(
        id=row["id"],
        event_type=EventType(row["event_type"]),
        session_id=row["session_id"],
        timestamp=datetime.fromisoformat(row["timestamp"]),
        metadata=json.loads(row["metadata"]) if row["metadata"] else {},
    )


def _row_to_album(row: sqlite3.Row) -> Album:
    return Album(
        id=row["id"],
        title=row["title"],
        artist=row["artist"],
        year=row["year"],
        archived=bool(row["archived"]),
    )


def _row_to_track(row: sqlite3.Row) -> Track:
    return Track(
        id=row["id"],
        session_id=row["session_id"],
        album_id=row["album_id"],
        title=row["title"],
        artist=row["artist"],
        album_name=row["album_name"],
        album_art_url=row["album_art_url"],
        year=row["year"],
        duration_seconds=row["duration_seconds"],
        confidence=row["confidence"],
        recognition_source=RecognitionSource(row["recognition_source"]),
        isrc=row["isrc"],
        metadata=json.loads(row["metadata"]) if row["metadata"] else {},
        recognized_at=datetime.fromisoformat(row["recognized_at"]),
    )


class SQLiteStore(Store):
    """Store persisted in a single SQLite database file.

    Queries run on a single worker thread, so writes keep the order in which
    they were awaited and the event loop is never blocked on disk I/O.
    """

    def __init__(self, db_path: Union[str, Path]):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="sqlite-store")
        self._init_database()

    def _init_database(self) -> None:
        """Create tables and indexes if they do not exist."""
        with self._connection() as conn:
            conn.executescript(SCHEMA)
        logger.debug(f"SQLite store ready at {self.db_path}")

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        """Open a connection, commit on success, always close.

        Any sqlite3 error is re-raised as StoreError.
        """
        try:
            conn = sqlite3.connect(self.db_path)
        except sqlite3.Error as e:
            raise StoreError(f"Cannot open database {self.db_path}: {e}") from e

        conn.row_factory = sqlite3.Row
        try:
            with conn:
                yield conn
        except sqlite3.Error as e:
            raise StoreError(f"Database operation failed: {e}") from e
        finally:
            conn.close()

    async def _run(self, fn: Callable[[], T]) -> T:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, fn)

    def close(self) -> None:
        """Wait for queued queries and stop the worker thread."""
        self._executor.shutdown(wait=True)

    # Sessions

    async def create_session(self, started_at: datetime) -> Session:
        session = Session(started_at=started_at)

        def _insert():
            with self._connection() as conn:
                conn.execute(
                    """INSERT INTO sessions (id, started_at, duration_seconds, event_count)
                       VALUES (?, ?, ?, ?)""",
                    (session.id, _iso(session.started_at), 0, 0)
                )

        await self._run(_insert)
        return session

    async def update_session(
        self,
        session_id: str,
        *,
        ended_at: datetime,
        duration_seconds: int,
        event_count: int
    ) -> Session:
        def _update():
            with self._connection() as conn:
                cursor = conn.execute(
                    """UPDATE sessions
                       SET ended_at = ?, duration_seconds = ?, event_count = ?
                       WHERE id = ?""",
                    (_iso(ended_at), duration_seconds, event_count, session_id)
                )
                if cursor.rowcount == 0:
                    raise StoreError(f"Session not found: {session_id}")

                return conn.execute("SELECT * FROM sessions WHERE id = ?", (session_id,)).fetchone()

        return _row_to_session(await self._run(_update))

    async def get_session(self, session_id: str) -> Optional[Session]:
        def _load():
            with self._connection() as conn:
                return conn.execute("SELECT * FROM sessions WHERE id = ?", (session_id,)).fetchone()

        row = await self._run(_load)
        return _row_to_session(row) if row else None

    # Domain events

    async def insert_event(self, event: AudioEvent) -> AudioEvent:
        def _insert():
            with self._connection() as conn:
                conn.execute(
                    """INSERT INTO audio_events (id, session_id, event_type, timestamp, metadata)
                       VALUES (?, ?, ?, ?, ?)""",
                    (
                        event.id,
                        event.session_id,
                        event.event_type.value,
                        _iso(event.timestamp),
                        json.dumps(event.metadata),
                    )
                )

        await self._run(_insert)
        return event

    async def list_events(self, session_id: Optional[str] = None) -> List[AudioEvent]:
        def _load():
            with self._connection() as conn:
                if session_id is None:
                    return conn.execute(
                        "SELECT * FROM audio_events ORDER BY timestamp, rowid"
                    ).fetchall()
                return conn.execute(
                    "SELECT * FROM audio_events WHERE session_id = ? ORDER BY timestamp, rowid",
                    (session_id,)
                ).fetchall()

        return [_row_to_event(row) for row in await self._run(_load)]

    # Tracks

    async def insert_track(self, track: Track) -> Track:
        def _insert():
            with self._connection() as conn:
                conn.execute(
                    f"""INSERT INTO tracks ({TRACK_COLUMNS})
                        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                    (
                        track.id,
                        track.session_id,
                        track.album_id,
                        track.title,
                        track.artist,
                        track.album_name,
                        track.album_art_url,
                        track.year,
                        track.duration_seconds,
                        track.confidence,
                        track.recognition_source.value,
                        track.isrc,
                        json.dumps(track.metadata),
                        _iso(track.recognized_at),
                    )
                )

        await self._run(_insert)
        return track

    async def get_track(self, track_id: str) -> Optional[Track]:
        def _load():
            with self._connection() as conn:
                return conn.execute(
                    f"SELECT {TRACK_COLUMNS} FROM tracks WHERE id = ?", (track_id,)
                ).fetchone()

        row = await self._run(_load)
        return _row_to_track(row) if row else None

    async def update_track_album(self, track_id: str, album_id: Optional[str]) -> Track:
        def _update():
            with self._connection() as conn:
                cursor = conn.execute(
                    "UPDATE tracks SET album_id = ? WHERE id = ?", (album_id, track_id)
                )
                if cursor.rowcount == 0:
                    raise StoreError(f"Track not found: {track_id}")

                return conn.execute(
                    f"SELECT {TRACK_COLUMNS} FROM tracks WHERE id = ?", (track_id,)
                ).fetchone()

        return _row_to_track(await self._run(_update))

    async def list_tracks(self, session_id: Optional[str] = None) -> List[Track]:
        def _load():
            with self._connection() as conn:
                if session_id is None:
                    return conn.execute(
                        f"SELECT {TRACK_COLUMNS} FROM tracks ORDER BY recognized_at, rowid"
                    ).fetchall()
                return conn.execute(
                    f"SELECT {TRACK_COLUMNS} FROM tracks WHERE session_id = ? "
                    "ORDER BY recognized_at, rowid",
                    (session_id,)
                ).fetchall()

        return [_row_to_track(row) for row in await self._run(_load)]

    # Collection

    async def add_album(self, album: Album) -> Album:
        def _insert():
            with self._connection() as conn:
                conn.execute(
                    """INSERT INTO albums (id, title, artist, year, archived)
                       VALUES (?, ?, ?, ?, ?)""",
                    (album.id, album.title, album.artist, album.year, int(album.archived))
                )

        await self._run(_insert)
        return album

    async def get_album(self, album_id: str) -> Optional[Album]:
        def _load():
            with self._connection() as conn:
                return conn.execute("SELECT * FROM albums WHERE id = ?", (album_id,)).fetchone()

        row = await self._run(_load)
        return _row_to_album(row) if row else None

    async def list_active_albums(self) -> List[Album]:
        def _load():
            with self._connection() as conn:
                return conn.execute(
                    "SELECT * FROM albums WHERE archived = 0 ORDER BY rowid"
                ).fetchall()

        return [_row_to_album(row) for row in await self._run(_load)]

    # Session <-> album associations

    async def ensure_session_album(self, session_id: str, album_id: str) -> bool:
        def _upsert():
            with self._connection() as conn:
                cursor = conn.execute(
                    """INSERT OR IGNORE INTO session_albums (session_id, album_id, created_at)
                       VALUES (?, ?, ?)""",
                    (session_id, album_id, datetime.now().isoformat())
                )
                return cursor.rowcount > 0

        return await self._run(_upsert)

    async def list_session_albums(self, session_id: str) -> List[SessionAlbum]:
        def _load():
            with self._connection() as conn:
                return conn.execute(
                    "SELECT * FROM session_albums WHERE session_id = ? ORDER BY rowid",
                    (session_id,)
                ).fetchall()

        return [
            SessionAlbum(
                session_id=row["session_id"],
                album_id=row["album_id"],
                created_at=datetime.fromisoformat(row["created_at"]),
            )
            for row in await self._run(_load)
        ]
