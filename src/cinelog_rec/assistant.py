import asyncio
import logging
from dataclasses import dataclass, field

from .ai import (
    GeminiClient,
    AssistantReply,
    SuggestedMovie,
    FALLBACK_ASSISTANT_REPLY,
    build_assistant_prompt,
    request_structured,
)
from .config import SESSION_HISTORY_WINDOW
from .models import Movie
from .profile import PreferenceProfile
from .recommender import RecommendationEngine
from .sessions import SessionStore
from .tmdb import AsyncTMDBClient

logger = logging.getLogger(__name__)


@dataclass
class AssistantResponse:
    message: str
    suggestions: list[Movie] = field(default_factory=list)
    actions: list[str] = field(default_factory=list)
    follow_up: str | None = None
    used_fallback: bool = False


def profile_summary(profile: PreferenceProfile) -> dict:
    """Compact view of a profile for prompts."""
    return {
        'favorite_genres': profile.favorite_genres,
        'decades': [f"{d}s" for d in profile.decades],
        'directors': profile.directors,
        'average_rating': round(profile.average_rating, 1),
        'watching_frequency': profile.watching_frequency,
    }


class ConversationalAssistant:
    """
    Chat front end over the AI endpoint.

    Each turn is appended to the user's session, the last few messages are
    replayed into the prompt, and movies the model mentions are resolved
    against the catalog.
    """

    def __init__(
        self,
        ai: GeminiClient | None,
        tmdb: AsyncTMDBClient,
        store: SessionStore | None = None,
    ):
        self.ai = ai
        self.tmdb = tmdb
        self.store = store if store is not None else SessionStore()
        self._engine = RecommendationEngine(tmdb, ai)

    async def _resolve(self, suggestion: SuggestedMovie) -> Movie | None:
        page = await self.tmdb.search_movies(suggestion.title)
        if not page.results:
            return None
        if suggestion.year is not None:
            for movie in page.results:
                if movie.year == suggestion.year:
                    return movie
        return page.results[0]

    async def _resolve_all(self, suggestions: list[SuggestedMovie]) -> list[Movie]:
        resolved = await asyncio.gather(
            *(self._resolve(s) for s in suggestions),
            return_exceptions=True,
        )
        movies = []
        for suggestion, movie in zip(suggestions, resolved):
            if isinstance(movie, Exception):
                logger.warning(f"Could not resolve '{suggestion.title}': {type(movie).__name__}: {movie}")
            elif movie is not None:
                movies.append(movie)
        return movies

    async def process_message(
        self,
        user_id: str,
        message: str,
        session_id: str = "default",
    ) -> AssistantResponse:
        if not message or not message.strip():
            raise ValueError("Message must be a non-empty string")

        session = self.store.get(user_id, session_id)
        history = [f"{m.role}: {m.content}" for m in session.messages[-SESSION_HISTORY_WINDOW:]]
        session.add_message("user", message.strip())

        profile, _, _ = await self._engine.load_profile(user_id)
        prompt = build_assistant_prompt(profile_summary(profile), history, message.strip())
        result = await request_structured(self.ai, prompt, AssistantReply, FALLBACK_ASSISTANT_REPLY)

        if result.ok:
            reply = result.value
            suggestions = await self._resolve_all(reply.recommendations)
            response = AssistantResponse(
                message=reply.response,
                suggestions=suggestions,
                actions=list(reply.actions),
                follow_up=reply.follow_up,
            )
            session.last_recommendations = [m.id for m in suggestions]
        else:
            logger.warning(f"Assistant reply fell back: {result.error}")
            text = result.raw_text.strip() if result.raw_text and result.raw_text.strip() else result.value.response
            response = AssistantResponse(message=text, used_fallback=True)

        session.add_message("assistant", response.message)
        self.store.save(session)
        return response
