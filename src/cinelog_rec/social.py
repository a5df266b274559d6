import logging
from dataclasses import dataclass, field
from typing import Iterable

import numpy as np

from .config import (
    COMPATIBILITY_GENRE_WEIGHT,
    COMPATIBILITY_DECADE_WEIGHT,
    COMPATIBILITY_SIMILAR,
    COMPATIBILITY_COMPLEMENTARY,
)
from .profile import PreferenceProfile

logger = logging.getLogger(__name__)


@dataclass
class Compatibility:
    score: float
    shared_genres: list[str] = field(default_factory=list)
    style: str = "conflicting"


@dataclass
class FollowSuggestion:
    user_id: str
    compatibility: Compatibility


def taste_vector(profile: PreferenceProfile, genres: list[str]) -> np.ndarray:
    """Genre-affinity vector over a fixed genre ordering; absent genres are 0."""
    return np.array([profile.genres.get(g, 0.0) for g in genres], dtype=float)


def _cosine(a: np.ndarray, b: np.ndarray) -> float:
    norm = np.linalg.norm(a) * np.linalg.norm(b)
    if norm == 0:
        return 0.0
    return float(np.dot(a, b) / norm)


def _style_for(score: float) -> str:
    if score >= COMPATIBILITY_SIMILAR:
        return "similar"
    if score >= COMPATIBILITY_COMPLEMENTARY:
        return "complementary"
    return "conflicting"


def taste_compatibility(a: PreferenceProfile, b: PreferenceProfile) -> Compatibility:
    """
    How closely two users' tastes line up, in [0, 1].

    Blends the cosine similarity of the genre-affinity vectors (80%) with the
    Jaccard overlap of preferred decades (20%).
    """
    genres = list(dict.fromkeys([*a.genres, *b.genres]))
    genre_similarity = _cosine(taste_vector(a, genres), taste_vector(b, genres)) if genres else 0.0

    decades_a, decades_b = set(a.decades), set(b.decades)
    union = decades_a | decades_b
    decade_overlap = len(decades_a & decades_b) / len(union) if union else 0.0

    score = COMPATIBILITY_GENRE_WEIGHT * genre_similarity + COMPATIBILITY_DECADE_WEIGHT * decade_overlap
    score = float(np.clip(score, 0.0, 1.0))

    return Compatibility(
        score=score,
        shared_genres=[g for g in a.genres if g in b.genres],
        style=_style_for(score),
    )


def suggest_follows(
    user_id: str,
    profiles: dict[str, PreferenceProfile],
    following: Iterable[str] = (),
    limit: int = 5,
) -> list[FollowSuggestion]:
    """
    Rank other users by taste compatibility with `user_id`.

    The user themselves, users already followed, and users with no learned
    preferences (default profile) are left out.
    """
    if limit < 0:
        raise ValueError(f"limit must be >= 0, got {limit}")

    own = profiles.get(user_id)
    if own is None:
        logger.debug(f"No profile for {user_id}; no follow suggestions")
        return []

    skip = set(following) | {user_id}
    suggestions = []
    for other_id, other in profiles.items():
        if other_id in skip or other.is_default:
            continue
        suggestions.append(FollowSuggestion(other_id, taste_compatibility(own, other)))

    suggestions.sort(key=lambda s: -s.compatibility.score)
    return suggestions[:limit]
