"""
Configuration constants for the cinelog recommender.

This module centralizes all magic numbers and configurable parameters.
Values can be overridden via environment variables.
"""
import os
import logging
from pathlib import Path

logger = logging.getLogger(__name__)


def _get_float_env(key: str, default: float, min_val: float = 0) -> float:
    """
    Safely parse float from environment variable with validation.

    Args:
        key: Environment variable name
        default: Default value if not set or invalid
        min_val: Minimum allowed value

    Returns:
        Validated float value
    """
    try:
        val = float(os.environ.get(key, default))
        if val < min_val:
            logger.warning(f"{key}={val} is below minimum {min_val}, using {min_val}")
            return min_val
        return val
    except ValueError:
        logger.warning(f"Invalid {key}='{os.environ.get(key)}', using default {default}")
        return default


def _get_int_env(key: str, default: int, min_val: int = 1) -> int:
    """
    Safely parse integer from environment variable with validation.

    Args:
        key: Environment variable name
        default: Default value if not set or invalid
        min_val: Minimum allowed value

    Returns:
        Validated integer value
    """
    try:
        val = int(os.environ.get(key, default))
        if val < min_val:
            logger.warning(f"{key}={val} is below minimum {min_val}, using {min_val}")
            return min_val
        return val
    except ValueError:
        logger.warning(f"Invalid {key}='{os.environ.get(key)}', using default {default}")
        return default


def _get_bool_env(key: str, default: bool) -> bool:
    """Parse a boolean flag ("1/0", "true/false", "yes/no", "on/off")."""
    raw = os.environ.get(key)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    logger.warning(f"Invalid {key}='{raw}', using default {default}")
    return default


# Database Configuration
DB_PATH = Path(os.environ.get("CINELOG_DB", "data/cinelog.db"))

# Metadata catalog (TMDB)
TMDB_API_KEY = os.environ.get("TMDB_API_KEY", "")
TMDB_BASE_URL = os.environ.get("TMDB_BASE_URL", "https://api.themoviedb.org/3")
TMDB_IMAGE_BASE_URL = "https://image.tmdb.org/t/p"
HTTP_TIMEOUT = _get_float_env("CINELOG_HTTP_TIMEOUT", 10.0, min_val=1.0)
DEFAULT_MAX_CONCURRENT = _get_int_env("CINELOG_MAX_CONCURRENT", 5, min_val=1)

# Generative text endpoint (Gemini)
GEMINI_API_KEY = os.environ.get("GEMINI_API_KEY", "")
GEMINI_MODEL = os.environ.get("CINELOG_GEMINI_MODEL", "gemini-2.0-flash")
GEMINI_BASE_URL = os.environ.get(
    "GEMINI_BASE_URL", "https://generativelanguage.googleapis.com/v1beta"
)
AI_TIMEOUT = _get_float_env("CINELOG_AI_TIMEOUT", 30.0, min_val=1.0)

# Preference aggregation
NEUTRAL_RATING_WEIGHT = 3.5  # Contribution weight of an unrated watched movie
DEFAULT_AVERAGE_RATING = 3.5
DEFAULT_RUNTIME = 120        # Minutes, used when a movie has no runtime
CAST_CONSIDERED = 3          # Top-billed cast members per movie
TOP_GENRES = 5
TOP_ACTORS = 5
TOP_DIRECTORS = 3
TOP_DECADES = 3
FREQUENT_WATCHER_THRESHOLD = 20

# Default profile for users with no watched history
DEFAULT_GENRE_WEIGHTS = {
    'Drama': 4.0,
    'Action': 3.0,
    'Comedy': 3.0,
}
DEFAULT_DECADES = [2010, 2000]

# Scorer weights (components sum to at most 100)
SCORE_RATING_MAX = 30.0
SCORE_GENRE_MULTIPLIER = 5.0
SCORE_GENRE_CAP = 40.0
SCORE_DECADE_BONUS = 20.0
SCORE_POPULARITY_BOOST_CAP = 10.0
SCORE_MIN = 0.0
SCORE_MAX = 100.0
HIGHLY_RATED_THRESHOLD = 7.0
MAX_REASONS = 3

# Popularity is counted twice (scaled term + raw boost) in the reference scoring.
# Set CINELOG_SECONDARY_POPULARITY=0 to score with the scaled term only.
SCORE_SECONDARY_POPULARITY = _get_bool_env("CINELOG_SECONDARY_POPULARITY", True)

# Recommendation assembly
LOW_TRUST_DISCOUNT = 0.7     # Multiplier for candidates from non-personalized pools
DEFAULT_RECOMMENDATION_LIMIT = _get_int_env("CINELOG_RECOMMENDATION_LIMIT", 20, min_val=1)
DEFAULT_AI_LIMIT = 10
DEFAULT_CONTEXTUAL_LIMIT = 8
GENRE_SOURCES = 3            # Favorite genres turned into discovery pools
WATCHED_TITLES_IN_PROMPT = 10

# Occasion presets forwarded to the AI as extra context
CONTEXT_PRESETS = {
    'date_night': 'romantic movies perfect for a date night',
    'family_time': 'family-friendly movies everyone can enjoy',
    'solo_binge': 'engaging movies perfect for solo viewing',
    'weekend_marathon': 'binge-worthy movie series or trilogies',
}

# Fallback AI suggestions
FALLBACK_TITLES = ['The Shawshank Redemption', 'Inception', 'Pulp Fiction']
FALLBACK_REASONING = 'Fallback recommendations due to AI service error.'

# Conversation sessions
SESSION_TTL_SECONDS = _get_float_env("CINELOG_SESSION_TTL", 3600.0, min_val=1.0)
SESSION_MAX_ENTRIES = _get_int_env("CINELOG_SESSION_MAX", 256, min_val=1)
SESSION_HISTORY_WINDOW = 10  # Messages included in each prompt
SESSION_PERSIST_MESSAGES = 20  # Messages kept in durable storage

# Social discovery
COMPATIBILITY_GENRE_WEIGHT = 0.8
COMPATIBILITY_DECADE_WEIGHT = 0.2
COMPATIBILITY_SIMILAR = 0.7
COMPATIBILITY_COMPLEMENTARY = 0.4

# Content analysis severities (ordered)
SEVERITY_LEVELS = {
    'mild': 1,
    'moderate': 2,
    'severe': 3,
}

# Year in review milestone thresholds
MILESTONE_MOVIES = 100
MILESTONE_HOURS = 200
MILESTONE_RATINGS = 50
MILESTONE_REVIEWS = 10
