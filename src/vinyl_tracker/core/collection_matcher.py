"""Fuzzy matching of recognised tracks against the record collection.

Each non-archived album gets a composite score: 60% artist similarity plus
40% album-title similarity (normalized Levenshtein).

Thresholds:
- score >= 0.8: linked automatically (needs_confirmation=False)
- 0.5 <= score < 0.8: offered to the user for confirmation
- score < 0.5: discarded
"""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from ..domain.entities import Album, AlbumMatch, MatchType
from ..domain.repositories import Store
from ..utils.string_similarity import calculate_similarity

logger = logging.getLogger(__name__)

MIN_MATCH = 0.5
AUTO_LINK = 0.8
MAX_RESULTS = 5

ARTIST_WEIGHT = 0.6
ALBUM_WEIGHT = 0.4


@dataclass(frozen=True)
class TrackInput:
    """Artist and album as reported by the recogniser."""
    artist: str
    album: str = ""


def determine_match_type(artist_score: float, album_score: float) -> MatchType:
    """Tag which fields matched, based on the individual similarities."""
    artist_matched = artist_score >= MIN_MATCH
    album_matched = album_score >= MIN_MATCH

    if artist_matched and album_matched:
        return MatchType.ARTIST_AND_ALBUM
    if artist_matched:
        return MatchType.ARTIST
    return MatchType.ALBUM


def score_album(track: TrackInput, album: Album) -> Tuple[float, float, float]:
    """Return (composite, artist_score, album_score) for one album."""
    artist_score = calculate_similarity(track.artist, album.artist)
    album_score = calculate_similarity(track.album or "", album.title)
    composite = artist_score * ARTIST_WEIGHT + album_score * ALBUM_WEIGHT
    return composite, artist_score, album_score


def rank_albums(
    track: TrackInput,
    albums: Iterable[Album],
    threshold: float = MIN_MATCH
) -> List[AlbumMatch]:
    """Score albums and keep the best ones at or above ``threshold``.

    Results are sorted by descending confidence (ties keep input order) and
    truncated to MAX_RESULTS.
    """
    matches: List[AlbumMatch] = []

    for album in albums:
        composite, artist_score, album_score = score_album(track, album)
        if composite >= threshold:
            matches.append(AlbumMatch(
                album=album,
                confidence=composite,
                matched_on=determine_match_type(artist_score, album_score),
                needs_confirmation=composite < AUTO_LINK,
            ))

    matches.sort(key=lambda match: match.confidence, reverse=True)
    return matches[:MAX_RESULTS]


class CollectionMatcher:
    """Finds collection albums matching a recognised track."""

    def __init__(self, store: Store):
        self.store = store

    async def find_matches(
        self,
        track: TrackInput,
        threshold: float = MIN_MATCH
    ) -> List[AlbumMatch]:
        """Ranked matches (at most MAX_RESULTS) scoring at least ``threshold``."""
        logger.info(f"Searching matches for: '{track.artist}' - '{track.album}'")

        albums = await self.store.list_active_albums()
        if not albums:
            logger.info("Collection is empty")
            return []

        logger.debug(f"Comparing against {len(albums)} collection albums")
        matches = rank_albums(track, albums, threshold)

        if matches:
            best = matches[0]
            logger.info(
                f"Found {len(matches)} matches. "
                f"Best: '{best.album.title}' ({best.confidence * 100:.1f}%)"
            )
        else:
            logger.info("No match found")

        return matches

    async def find_best_match(self, track: TrackInput) -> Optional[AlbumMatch]:
        """The top match if it qualifies for automatic linking, else None."""
        matches = await self.find_matches(track, AUTO_LINK)
        return matches[0] if matches else None
