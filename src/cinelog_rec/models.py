import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

logger = logging.getLogger(__name__)

# TMDB movie genre table (list endpoints only return ids)
TMDB_GENRES = {
    28: 'Action',
    12: 'Adventure',
    16: 'Animation',
    35: 'Comedy',
    80: 'Crime',
    99: 'Documentary',
    18: 'Drama',
    10751: 'Family',
    14: 'Fantasy',
    36: 'History',
    27: 'Horror',
    10402: 'Music',
    9648: 'Mystery',
    10749: 'Romance',
    878: 'Science Fiction',
    10770: 'TV Movie',
    53: 'Thriller',
    10752: 'War',
    37: 'Western',
}
_GENRE_IDS = {name.lower(): genre_id for genre_id, name in TMDB_GENRES.items()}


def genre_name_for(genre_id: int) -> str | None:
    return TMDB_GENRES.get(genre_id)


def genre_id_for(name: str) -> int | None:
    """Case-insensitive lookup of a TMDB genre id by name."""
    if not name:
        return None
    return _GENRE_IDS.get(name.strip().lower())


def _parse_year(release_date: str | None) -> int | None:
    if not release_date:
        return None
    try:
        return int(release_date[:4])
    except ValueError:
        logger.debug(f"Unparseable release date '{release_date}'")
        return None


@dataclass
class Movie:
    id: int
    title: str
    genre_ids: list[int] = field(default_factory=list)
    genres: list[str] = field(default_factory=list)
    release_date: str | None = None
    runtime: int | None = None
    vote_average: float = 0.0
    overview: str = ""
    poster_path: str | None = None
    cast: list[str] = field(default_factory=list)
    directors: list[str] = field(default_factory=list)

    @property
    def year(self) -> int | None:
        return _parse_year(self.release_date)

    @property
    def decade(self) -> int | None:
        year = self.year
        return (year // 10) * 10 if year is not None else None

    @classmethod
    def from_tmdb(cls, payload: dict) -> "Movie":
        """
        Build a Movie from either a list result or a detail payload.

        List results (search, trending, discover) carry only `genre_ids`;
        detail payloads carry `genres` objects and, with
        append_to_response=credits, the cast and crew.
        """
        if payload.get('genres'):
            genre_ids = [g['id'] for g in payload['genres'] if 'id' in g]
            genres = [g['name'] for g in payload['genres'] if g.get('name')]
        else:
            genre_ids = list(payload.get('genre_ids') or [])
            genres = [TMDB_GENRES[g] for g in genre_ids if g in TMDB_GENRES]

        credits = payload.get('credits') or {}
        cast_entries = sorted(
            credits.get('cast') or [],
            key=lambda c: c.get('order', 0),
        )
        cast = [c['name'] for c in cast_entries if c.get('name')]
        directors = list(dict.fromkeys(
            c['name'] for c in credits.get('crew') or []
            if c.get('job') == 'Director' and c.get('name')
        ))

        return cls(
            id=int(payload['id']),
            title=payload.get('title') or payload.get('original_title') or '',
            genre_ids=genre_ids,
            genres=genres,
            release_date=payload.get('release_date') or None,
            runtime=payload.get('runtime') or None,
            vote_average=float(payload.get('vote_average') or 0.0),
            overview=payload.get('overview') or '',
            poster_path=payload.get('poster_path'),
            cast=cast,
            directors=directors,
        )


@dataclass
class MoviePage:
    page: int
    total_pages: int
    total_results: int
    results: list[Movie]

    @classmethod
    def from_tmdb(cls, payload: dict) -> "MoviePage":
        results = []
        for item in payload.get('results') or []:
            try:
                results.append(Movie.from_tmdb(item))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed catalog entry: {e}")
        return cls(
            page=int(payload.get('page') or 1),
            total_pages=int(payload.get('total_pages') or 0),
            total_results=int(payload.get('total_results') or len(results)),
            results=results,
        )


class WatchStatus(str, Enum):
    WATCHED = "watched"
    WATCHING = "watching"
    WANT_TO_WATCH = "want_to_watch"
    REMOVED = "removed"  # Tombstone; records are never hard-deleted


@dataclass
class WatchRecord:
    """A user's logged interaction with one movie."""
    user_id: str
    movie_id: int
    status: WatchStatus = WatchStatus.WATCHED
    rating: float | None = None
    review: str | None = None
    watched_at: datetime | None = None
    watch_count: int = 0
    tags: list[str] = field(default_factory=list)
    is_favorite: bool = False

    def __post_init__(self) -> None:
        self.status = WatchStatus(self.status)
        if self.rating is not None and not 1 <= self.rating <= 5:
            raise ValueError(f"Rating must be between 1 and 5 stars, got {self.rating}")
