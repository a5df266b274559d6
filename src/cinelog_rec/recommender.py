import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable

from .ai import GeminiClient, AIResult, TitleSuggestions, suggest_titles
from .database import load_watch_records
from .exceptions import MetadataUnavailable
from .models import Movie, WatchRecord, WatchStatus, genre_id_for
from .profile import PreferenceProfile, build_profile
from .tmdb import AsyncTMDBClient, poster_url
from .config import (
    SCORE_RATING_MAX,
    SCORE_GENRE_MULTIPLIER,
    SCORE_GENRE_CAP,
    SCORE_DECADE_BONUS,
    SCORE_POPULARITY_BOOST_CAP,
    SCORE_MIN,
    SCORE_MAX,
    SCORE_SECONDARY_POPULARITY,
    HIGHLY_RATED_THRESHOLD,
    MAX_REASONS,
    LOW_TRUST_DISCOUNT,
    DEFAULT_RECOMMENDATION_LIMIT,
    DEFAULT_AI_LIMIT,
    DEFAULT_CONTEXTUAL_LIMIT,
    GENRE_SOURCES,
    WATCHED_TITLES_IN_PROMPT,
    CONTEXT_PRESETS,
)

logger = logging.getLogger(__name__)


RuleFunc = Callable[
    ["ScoringEngine", Movie, PreferenceProfile],
    tuple[float, list[str]],
]


class ScoringEngine:
    """Composable scoring pipeline: each rule adds a delta and its reasons."""

    def __init__(self, rules: list[RuleFunc] | None = None, secondary_popularity: bool = SCORE_SECONDARY_POPULARITY):
        self.rules = rules if rules is not None else list(DEFAULT_RULES)
        self.secondary_popularity = secondary_popularity

    def score(self, movie: Movie, profile: PreferenceProfile) -> tuple[float, list[str]]:
        score = 0.0
        reasons: list[str] = []

        for rule in self.rules:
            delta, extra_reasons = rule(self, movie, profile)
            score += delta
            reasons.extend(extra_reasons)

        score = min(SCORE_MAX, max(SCORE_MIN, score))
        return score, reasons[:MAX_REASONS]


def _rating_rule(engine: ScoringEngine, movie: Movie, profile: PreferenceProfile) -> tuple[float, list[str]]:
    """Community rating on a 0-10 scale mapped onto 0-30."""
    return (movie.vote_average / 10) * SCORE_RATING_MAX, []


def _genre_rule(engine: ScoringEngine, movie: Movie, profile: PreferenceProfile) -> tuple[float, list[str]]:
    total = 0.0
    genre_reasons: list[str] = []
    for genre in movie.genres:
        weight = profile.genres.get(genre)
        if weight is not None:
            total += weight * SCORE_GENRE_MULTIPLIER
            genre_reasons.append(f"matches your preference for {genre}")
    return min(total, SCORE_GENRE_CAP), genre_reasons


def _decade_rule(engine: ScoringEngine, movie: Movie, profile: PreferenceProfile) -> tuple[float, list[str]]:
    decade = movie.decade
    if decade is not None and decade in profile.decades:
        return SCORE_DECADE_BONUS, [f"from your preferred {decade}s era"]
    return 0.0, []


def _popularity_rule(engine: ScoringEngine, movie: Movie, profile: PreferenceProfile) -> tuple[float, list[str]]:
    """Raw rating boost on top of the scaled rating term, plus the 'highly rated' reason."""
    boost = min(movie.vote_average, SCORE_POPULARITY_BOOST_CAP) if engine.secondary_popularity else 0.0
    popularity_reasons = ["highly rated"] if movie.vote_average >= HIGHLY_RATED_THRESHOLD else []
    return boost, popularity_reasons


DEFAULT_RULES: list[RuleFunc] = [
    _rating_rule,
    _genre_rule,
    _decade_rule,
    _popularity_rule,
]


def score_movie(
    movie: Movie,
    profile: PreferenceProfile,
    engine: ScoringEngine | None = None,
) -> tuple[float, list[str]]:
    """
    Score how well a movie fits a preference profile.

    Returns a score in [0, 100] and at most three human-readable reasons
    (genre matches first, then the decade match, then "highly rated").
    Pure and deterministic.
    """
    return (engine or ScoringEngine()).score(movie, profile)


@dataclass
class CandidateSource:
    """A pool of candidate movies produced by one discovery path."""
    name: str
    movies: list[Movie] = field(default_factory=list)
    personalized: bool = True


@dataclass
class ScoredCandidate:
    movie_id: int
    score: float
    reasons: list[str]
    source: str
    movie: Movie | None = None

    def to_dict(self) -> dict:
        data = {
            'movie_id': self.movie_id,
            'score': round(self.score, 2),
            'reasons': list(self.reasons),
            'source': self.source,
        }
        if self.movie is not None:
            data.update({
                'title': self.movie.title,
                'year': self.movie.year,
                'genres': list(self.movie.genres),
                'vote_average': self.movie.vote_average,
                'poster_url': poster_url(self.movie.poster_path),
            })
        return data


def assemble(
    sources: Iterable[CandidateSource],
    profile: PreferenceProfile,
    exclude_ids: Iterable[int] = (),
    limit: int = DEFAULT_RECOMMENDATION_LIMIT,
    engine: ScoringEngine | None = None,
) -> list[ScoredCandidate]:
    """
    Merge candidate pools into one ranked, deduplicated list.

    Excluded ids are dropped before scoring. Candidates from non-personalized
    pools have their score multiplied by 0.7. When a movie appears in several
    pools the higher-scored occurrence is kept (the earlier one on an exact
    tie) and it holds the position where it was first seen, so equal scores
    rank in the order the pools produced them.
    """
    if limit < 0:
        raise ValueError(f"limit must be >= 0, got {limit}")

    engine = engine or ScoringEngine()
    excluded = set(exclude_ids)
    best: dict[int, ScoredCandidate] = {}
    n_seen = 0

    for source in sources:
        for movie in source.movies:
            n_seen += 1
            if movie.id in excluded:
                continue

            score, reasons = engine.score(movie, profile)
            if not source.personalized:
                score *= LOW_TRUST_DISCOUNT

            current = best.get(movie.id)
            if current is None or score > current.score:
                best[movie.id] = ScoredCandidate(
                    movie_id=movie.id,
                    score=score,
                    reasons=reasons,
                    source=source.name,
                    movie=movie,
                )

    ranked = sorted(best.values(), key=lambda c: -c.score)[:limit]
    logger.debug(f"Assembled {len(ranked)} of {len(best)} unique candidates ({n_seen} seen)")
    return ranked


@dataclass
class AIRecommendations:
    candidates: list[ScoredCandidate]
    reasoning: str
    used_fallback: bool


class RecommendationEngine:
    """
    Orchestrates one recommendation request: load history, aggregate the
    profile, gather candidate pools concurrently, then assemble.

    `tmdb` must be an open AsyncTMDBClient. `ai` may be None, in which case
    the AI pool is left out of `recommend` and `ai_recommend` resolves the
    static fallback titles.
    """

    def __init__(
        self,
        tmdb: AsyncTMDBClient,
        ai: GeminiClient | None = None,
        engine: ScoringEngine | None = None,
    ):
        self.tmdb = tmdb
        self.ai = ai
        self.engine = engine or ScoringEngine()

    async def load_profile(self, user_id: str) -> tuple[PreferenceProfile, list[WatchRecord], dict[int, Movie]]:
        records = load_watch_records(user_id, status=WatchStatus.WATCHED)
        movies = await self.tmdb.fetch_movies([r.movie_id for r in records]) if records else {}
        profile = build_profile(records, movies)
        logger.info(
            f"Profile for {user_id}: {len(records)} watched, "
            f"{'default' if profile.is_default else 'learned'} preferences"
        )
        return profile, records, movies

    async def _genre_pool(self, genre: str) -> CandidateSource:
        genre_id = genre_id_for(genre)
        if genre_id is None:
            logger.debug(f"No catalog genre id for '{genre}'")
            return CandidateSource(f"genre:{genre}", [], personalized=True)
        page = await self.tmdb.discover_by_genre(genre_id)
        return CandidateSource(f"genre:{genre}", page.results, personalized=True)

    async def _trending_pool(self) -> CandidateSource:
        page = await self.tmdb.trending("week")
        return CandidateSource("trending", page.results, personalized=False)

    async def _popular_pool(self) -> CandidateSource:
        """Low-trust last resort for when every other pool came back empty."""
        try:
            page = await self.tmdb.popular()
        except MetadataUnavailable as e:
            logger.warning(f"Popular fallback pool failed: {e}")
            return CandidateSource("popular", [], personalized=False)
        return CandidateSource("popular", page.results, personalized=False)

    async def _resolve_title(self, title: str) -> Movie | None:
        page = await self.tmdb.search_movies(title)
        return page.results[0] if page.results else None

    async def _ai_pool(
        self,
        profile: PreferenceProfile,
        watched_titles: list[str],
        context: str | None,
    ) -> tuple[CandidateSource, AIResult[TitleSuggestions]]:
        result = await suggest_titles(self.ai, profile, watched_titles, context)
        if not result.ok:
            logger.warning(f"Using fallback AI suggestions: {result.error}")

        resolved = await asyncio.gather(
            *(self._resolve_title(title) for title in result.value.titles),
            return_exceptions=True,
        )
        movies = []
        for title, movie in zip(result.value.titles, resolved):
            if isinstance(movie, Exception):
                logger.warning(f"Could not resolve suggested title '{title}': {type(movie).__name__}: {movie}")
            elif movie is None:
                logger.debug(f"No catalog match for suggested title '{title}'")
            else:
                movies.append(movie)

        return CandidateSource("ai", movies, personalized=True), result

    @staticmethod
    def _watched_titles(records: list[WatchRecord], movies: dict[int, Movie]) -> list[str]:
        titles = [movies[r.movie_id].title for r in records if r.movie_id in movies]
        return titles[:WATCHED_TITLES_IN_PROMPT]

    async def recommend(
        self,
        user_id: str,
        limit: int = DEFAULT_RECOMMENDATION_LIMIT,
        include_ai: bool = True,
        context: str | None = None,
    ) -> list[ScoredCandidate]:
        if limit < 0:
            raise ValueError(f"limit must be >= 0, got {limit}")

        profile, records, movies = await self.load_profile(user_id)

        pools = [self._genre_pool(genre) for genre in profile.favorite_genres[:GENRE_SOURCES]]
        pools.append(self._trending_pool())
        use_ai = include_ai and self.ai is not None
        if use_ai:
            pools.append(self._ai_pool(profile, self._watched_titles(records, movies), context))

        results = await asyncio.gather(*pools, return_exceptions=True)

        sources: list[CandidateSource] = []
        for result in results:
            if isinstance(result, Exception):
                logger.warning(f"Candidate pool failed: {type(result).__name__}: {result}")
                continue
            if isinstance(result, tuple):
                result = result[0]
            sources.append(result)

        if not any(source.movies for source in sources):
            logger.info(f"All candidate pools empty for {user_id}; falling back to popular movies")
            sources.append(await self._popular_pool())

        watched_ids = {r.movie_id for r in records}
        return assemble(sources, profile, exclude_ids=watched_ids, limit=limit, engine=self.engine)

    async def ai_recommend(
        self,
        user_id: str,
        context: str | None = None,
        limit: int = DEFAULT_AI_LIMIT,
    ) -> AIRecommendations:
        """Recommendations from AI-suggested titles only, with the model's reasoning."""
        if limit < 0:
            raise ValueError(f"limit must be >= 0, got {limit}")

        profile, records, movies = await self.load_profile(user_id)
        source, result = await self._ai_pool(profile, self._watched_titles(records, movies), context)
        sources = [source]
        if not source.movies:
            logger.info(f"No AI suggestions resolved for {user_id}; falling back to popular movies")
            sources.append(await self._popular_pool())

        candidates = assemble(
            sources,
            profile,
            exclude_ids={r.movie_id for r in records},
            limit=limit,
            engine=self.engine,
        )
        return AIRecommendations(
            candidates=candidates,
            reasoning=result.value.reasoning,
            used_fallback=not result.ok,
        )

    async def contextual_recommend(
        self,
        user_id: str,
        occasion: str,
        limit: int = DEFAULT_CONTEXTUAL_LIMIT,
    ) -> AIRecommendations:
        if occasion not in CONTEXT_PRESETS:
            raise ValueError(f"Unknown occasion '{occasion}'. Choose from: {', '.join(CONTEXT_PRESETS)}")
        return await self.ai_recommend(user_id, context=CONTEXT_PRESETS[occasion], limit=limit)
