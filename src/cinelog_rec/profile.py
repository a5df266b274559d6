import logging
from collections import defaultdict
from dataclasses import dataclass, field, asdict
from .models import Movie, WatchRecord, WatchStatus
from .config import (
    NEUTRAL_RATING_WEIGHT,
    DEFAULT_AVERAGE_RATING,
    DEFAULT_RUNTIME,
    CAST_CONSIDERED,
    TOP_GENRES,
    TOP_ACTORS,
    TOP_DIRECTORS,
    TOP_DECADES,
    FREQUENT_WATCHER_THRESHOLD,
    DEFAULT_GENRE_WEIGHTS,
    DEFAULT_DECADES,
)

logger = logging.getLogger(__name__)


@dataclass
class PreferenceProfile:
    """Aggregated user preferences derived from their watched history."""
    genres: dict[str, float] = field(default_factory=dict)
    decades: list[int] = field(default_factory=list)
    directors: list[str] = field(default_factory=list)
    actors: list[str] = field(default_factory=list)
    average_rating: float = DEFAULT_AVERAGE_RATING
    preferred_runtime: int = DEFAULT_RUNTIME
    watching_frequency: str = "casual"
    n_watched: int = 0
    n_rated: int = 0
    is_default: bool = False

    @property
    def favorite_genres(self) -> list[str]:
        return list(self.genres)


def default_profile() -> PreferenceProfile:
    """
    Fixed profile used when there is no watched history to learn from.

    Always non-empty so the scorer has something to match against.
    """
    return PreferenceProfile(
        genres=dict(DEFAULT_GENRE_WEIGHTS),
        decades=list(DEFAULT_DECADES),
        directors=[],
        actors=[],
        average_rating=DEFAULT_AVERAGE_RATING,
        preferred_runtime=DEFAULT_RUNTIME,
        watching_frequency="casual",
        is_default=True,
    )


def _rank(scores: dict, limit: int) -> list[tuple]:
    """
    Top entries by accumulated weight, descending.

    sorted() is stable and dicts keep insertion order, so ties stay in the
    order they were first encountered.
    """
    return sorted(scores.items(), key=lambda x: -x[1])[:limit]


def _accumulate(items, weight: float, scores: dict) -> None:
    for item in items:
        scores[item] += weight


def build_profile(
    records: list[WatchRecord],
    movies: dict[int, Movie],
) -> PreferenceProfile:
    """
    Build a preference profile from watched records and their movie metadata.

    Args:
        records: The user's watch records; only status == watched counts
        movies: Mapping movie id -> Movie for the watched movies

    Weighting:
    - Each watched movie contributes its user rating (1-5) as weight,
      or a neutral 3.5 when unrated.
    - The weight is added to each of the movie's genres, its release
      decade, its directors and its top-3 billed cast.

    Records whose movie is missing from `movies` (failed fetch) are skipped.
    With no watched records, or nothing left after skipping, the fixed
    default profile is returned.
    """
    watched = [r for r in records if r.status == WatchStatus.WATCHED]
    if not watched:
        return default_profile()

    scores = {
        'genre': defaultdict(float),
        'decade': defaultdict(float),
        'director': defaultdict(float),
        'actor': defaultdict(float),
    }
    rating_total = 0.0
    n_rated = 0
    runtime_total = 0
    n_aggregated = 0

    for record in watched:
        movie = movies.get(record.movie_id)
        if movie is None:
            logger.debug(f"No metadata for movie {record.movie_id}; skipping")
            continue

        weight = record.rating if record.rating is not None else NEUTRAL_RATING_WEIGHT

        _accumulate(movie.genres, weight, scores['genre'])
        _accumulate(movie.directors, weight, scores['director'])
        _accumulate(movie.cast[:CAST_CONSIDERED], weight, scores['actor'])

        decade = movie.decade
        if decade is not None:
            scores['decade'][decade] += weight

        if record.rating is not None:
            rating_total += record.rating
            n_rated += 1

        runtime_total += movie.runtime or DEFAULT_RUNTIME
        n_aggregated += 1

    if n_aggregated == 0:
        logger.warning(f"None of {len(watched)} watched movies could be analyzed; using default profile")
        return default_profile()

    profile = PreferenceProfile(
        genres=dict(_rank(scores['genre'], TOP_GENRES)),
        decades=[d for d, _ in _rank(scores['decade'], TOP_DECADES)],
        directors=[d for d, _ in _rank(scores['director'], TOP_DIRECTORS)],
        actors=[a for a, _ in _rank(scores['actor'], TOP_ACTORS)],
        average_rating=rating_total / n_rated if n_rated else DEFAULT_AVERAGE_RATING,
        preferred_runtime=round(runtime_total / n_aggregated),
        watching_frequency="frequent" if len(watched) > FREQUENT_WATCHER_THRESHOLD else "casual",
        n_watched=len(watched),
        n_rated=n_rated,
    )
    logger.debug(
        f"Built profile from {n_aggregated}/{len(watched)} movies: "
        f"top genres {list(profile.genres)[:3]}"
    )
    return profile


async def aggregate_preferences(records: list[WatchRecord], client) -> PreferenceProfile:
    """
    Fetch metadata for the watched records and reduce it into a profile.

    `client` is an open AsyncTMDBClient. Fetches fan out concurrently and a
    failed fetch only drops that movie from the aggregation.
    """
    watched_ids = [r.movie_id for r in records if r.status == WatchStatus.WATCHED]
    if not watched_ids:
        return default_profile()

    movies = await client.fetch_movies(watched_ids)
    return build_profile(records, movies)


def profile_to_dict(profile: PreferenceProfile) -> dict:
    return asdict(profile)


def profile_from_dict(data: dict) -> PreferenceProfile:
    """Rebuild a profile from profile_to_dict() output (e.g. JSON with string keys)."""
    return PreferenceProfile(
        genres={str(k): float(v) for k, v in (data.get('genres') or {}).items()},
        decades=[int(d) for d in data.get('decades') or []],
        directors=list(data.get('directors') or []),
        actors=list(data.get('actors') or []),
        average_rating=float(data.get('average_rating', DEFAULT_AVERAGE_RATING)),
        preferred_runtime=int(data.get('preferred_runtime', DEFAULT_RUNTIME)),
        watching_frequency=data.get('watching_frequency', "casual"),
        n_watched=int(data.get('n_watched', 0)),
        n_rated=int(data.get('n_rated', 0)),
        is_default=bool(data.get('is_default', False)),
    )
