import logging
from typing import Iterable

from pydantic import ValidationError

from .ai import (
    GeminiClient,
    AIResult,
    ContentAnalysis,
    FALLBACK_CONTENT_ANALYSIS,
    build_content_prompt,
    request_structured,
)
from .config import SEVERITY_LEVELS
from .database import load_content_analysis, store_content_analysis
from .models import Movie

logger = logging.getLogger(__name__)


async def analyze_movie_content(
    movie: Movie,
    ai_client: GeminiClient | None,
    use_cache: bool = True,
) -> AIResult[ContentAnalysis]:
    """
    Micro-genres, themes and content warnings for a movie.

    Successful analyses are stored and reused; fallbacks are never cached so
    a later call can retry the AI.
    """
    if use_cache:
        cached = load_content_analysis(movie.id)
        if cached is not None:
            try:
                return AIResult.success(ContentAnalysis.model_validate(cached))
            except ValidationError as e:
                logger.warning(f"Discarding stale analysis for movie {movie.id}: {e.error_count()} errors")

    result = await request_structured(
        ai_client,
        build_content_prompt(movie),
        ContentAnalysis,
        FALLBACK_CONTENT_ANALYSIS,
    )
    if result.ok:
        store_content_analysis(movie.id, result.value.model_dump(by_alias=True))
    else:
        logger.info(f"Content analysis for '{movie.title}' fell back to defaults: {result.error}")
    return result


def severity_level(severity: str) -> int:
    try:
        return SEVERITY_LEVELS[severity]
    except KeyError:
        raise ValueError(f"Unknown severity '{severity}'. Choose from: {', '.join(SEVERITY_LEVELS)}") from None


def filter_by_content_preferences(
    movies: Iterable[Movie],
    analyses: dict[int, ContentAnalysis],
    avoided: Iterable[str],
    max_severity: str = "mild",
) -> list[Movie]:
    """
    Drop movies carrying an avoided warning type above the tolerated severity.

    A warning of an avoided type at or below `max_severity` is tolerated.
    Movies with no analysis pass through.
    """
    threshold = severity_level(max_severity)
    avoided = set(avoided)
    kept = []

    for movie in movies:
        analysis = analyses.get(movie.id)
        if analysis is not None and any(
            w.type in avoided and severity_level(w.severity) > threshold
            for w in analysis.content_warnings
        ):
            logger.debug(f"Filtered '{movie.title}' by content preferences")
            continue
        kept.append(movie)

    return kept
