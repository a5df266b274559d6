"""
Client and helpers for the generative text endpoint.

Every AI-backed call site declares a pydantic schema for the JSON it expects
and a static fallback value. `request_structured` returns an `AIResult`
that either carries the validated payload or the fallback plus the reason
the call degraded, so callers never have to trust free-form model output.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Generic, Literal, Optional, TypeVar

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .config import (
    GEMINI_API_KEY,
    GEMINI_MODEL,
    GEMINI_BASE_URL,
    AI_TIMEOUT,
    FALLBACK_TITLES,
    FALLBACK_REASONING,
)
from .exceptions import AIResponseUnparseable, AIServiceUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

_JSON_OBJECT = re.compile(r"\{.*\}", re.S)
_TRAILING_YEAR = re.compile(r"\s*\((?:19|20)\d{2}\)\s*$")


@dataclass
class AIResult(Generic[T]):
    """Outcome of an AI call: the validated value, or the fallback and why."""
    value: T
    ok: bool
    error: str | None = None
    raw_text: str | None = None

    @classmethod
    def success(cls, value: T, raw_text: str | None = None) -> "AIResult[T]":
        return cls(value=value, ok=True, raw_text=raw_text)

    @classmethod
    def fallback(cls, default: T, error: str, raw_text: str | None = None) -> "AIResult[T]":
        return cls(value=default.model_copy(deep=True), ok=False, error=error, raw_text=raw_text)


class TitleSuggestions(BaseModel):
    titles: list[str] = Field(min_length=1)
    reasoning: str = ""

    @field_validator("titles")
    @classmethod
    def _clean_titles(cls, titles: list[str]) -> list[str]:
        # Models often append "(1994)"; the catalog search wants the bare title
        cleaned = [_TRAILING_YEAR.sub("", t).strip() for t in titles if t and t.strip()]
        cleaned = list(dict.fromkeys(cleaned))
        if not cleaned:
            raise ValueError("no usable titles")
        return cleaned


class ContentWarning(BaseModel):
    type: Literal[
        "violence",
        "language",
        "sexual_content",
        "substance_use",
        "disturbing_content",
        "flashing_lights",
    ]
    severity: Literal["mild", "moderate", "severe"]
    description: str = ""


class ContentAnalysis(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    micro_genres: list[str] = Field(default_factory=list, alias="microGenres")
    content_warnings: list[ContentWarning] = Field(default_factory=list, alias="contentWarnings")
    themes: list[str] = Field(default_factory=list)
    mood: str = "neutral"
    complexity: int = Field(default=5, ge=1, le=10)
    visual_style: str = Field(default="standard", alias="visualStyle")
    pacing: str = "moderate"


class SuggestedMovie(BaseModel):
    title: str = Field(min_length=1)
    year: Optional[int] = None
    reason: str = ""
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)


class AssistantReply(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    response: str = Field(min_length=1)
    recommendations: list[SuggestedMovie] = Field(default_factory=list)
    actions: list[str] = Field(default_factory=list)
    follow_up: Optional[str] = Field(default=None, alias="followUp")


FALLBACK_SUGGESTIONS = TitleSuggestions(titles=FALLBACK_TITLES, reasoning=FALLBACK_REASONING)

FALLBACK_CONTENT_ANALYSIS = ContentAnalysis(
    micro_genres=["General Entertainment"],
    content_warnings=[],
    themes=["Entertainment", "Storytelling"],
    mood="neutral",
    complexity=5,
    visual_style="standard",
    pacing="moderate",
)

FALLBACK_ASSISTANT_REPLY = AssistantReply(
    response="I apologize, but I encountered an error. Could you please try again?",
)


def extract_json(text: str | None) -> dict:
    """
    Pull the JSON object out of free-form model output.

    Tolerates prose before/after the object and markdown code fences.
    """
    if not text:
        raise AIResponseUnparseable("empty response")

    match = _JSON_OBJECT.search(text)
    if not match:
        raise AIResponseUnparseable("no JSON object found in response")

    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise AIResponseUnparseable(f"invalid JSON: {e}") from e

    if not isinstance(parsed, dict):
        raise AIResponseUnparseable(f"expected a JSON object, got {type(parsed).__name__}")
    return parsed


class GeminiClient:
    """Async client for a Gemini-style generateContent endpoint."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str = GEMINI_MODEL,
        base_url: str = GEMINI_BASE_URL,
        timeout: float = AI_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key if api_key is not None else GEMINI_API_KEY
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport
        self.client: httpx.AsyncClient | None = None

    def _new_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    async def __aenter__(self):
        self.client = self._new_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self.client:
            await self.client.aclose()
            self.client = None
        return False

    async def generate(self, prompt: str) -> str:
        """
        Send a prompt and return the generated text.

        Can be called inside the async context manager (shared connection) or
        standalone (a temporary client is created and closed).
        """
        if not self.api_key:
            raise AIServiceUnavailable("GEMINI_API_KEY not set")

        if self.client:
            return await self._generate_with_client(self.client, prompt)

        async with self._new_client() as temp_client:
            return await self._generate_with_client(temp_client, prompt)

    async def _generate_with_client(self, client: httpx.AsyncClient, prompt: str) -> str:
        url = f"{self.base_url}/models/{self.model}:generateContent"
        payload = {"contents": [{"parts": [{"text": prompt}]}]}

        try:
            resp = await client.post(url, params={"key": self.api_key}, json=payload)
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise AIServiceUnavailable(f"HTTP {e.response.status_code} from AI endpoint") from e
        except httpx.HTTPError as e:
            raise AIServiceUnavailable(f"AI request failed: {type(e).__name__}: {e}") from e

        try:
            data = resp.json()
            parts = data["candidates"][0]["content"]["parts"]
            text = "".join(part.get("text", "") for part in parts)
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise AIResponseUnparseable(f"unexpected response envelope: {e}") from e

        if not text.strip():
            raise AIResponseUnparseable("response contained no text")
        return text


async def request_structured(
    client: GeminiClient | None,
    prompt: str,
    schema: type[T],
    fallback: T,
) -> AIResult[T]:
    """Generate, extract and validate; any failure yields the fallback."""
    if client is None:
        return AIResult.fallback(fallback, "AI client disabled")

    raw_text = None
    try:
        raw_text = await client.generate(prompt)
        value = schema.model_validate(extract_json(raw_text))
    except AIServiceUnavailable as e:
        logger.warning(f"AI service unavailable for {schema.__name__}: {e}")
        return AIResult.fallback(fallback, str(e))
    except AIResponseUnparseable as e:
        logger.warning(f"Unparseable AI response for {schema.__name__}: {e}")
        return AIResult.fallback(fallback, str(e), raw_text)
    except ValidationError as e:
        logger.warning(f"AI response failed {schema.__name__} validation: {e.error_count()} errors")
        return AIResult.fallback(fallback, f"validation failed: {e.error_count()} errors", raw_text)

    return AIResult.success(value, raw_text)


def build_suggestion_prompt(profile, watched_titles: list[str], context: str | None = None) -> str:
    decades = ", ".join(f"{d}s" for d in profile.decades)
    lines = [
        "Recommend 15 movies for this viewer. Avoid movies they have already watched.",
        f"Favorite genres: {', '.join(profile.genres)}",
        f"Average rating given: {profile.average_rating:.1f}/5",
        f"Preferred decades: {decades}",
        f"Favorite directors: {', '.join(profile.directors)}",
        f"Favorite actors: {', '.join(profile.actors)}",
        f"Preferred runtime: ~{profile.preferred_runtime} minutes",
        f"Viewing style: {profile.watching_frequency}",
        "Recently watched:",
        *watched_titles,
    ]
    if context:
        lines.append(f"Additional context: {context}")
    lines.append('Reply with JSON only: {"titles": ["Title", ...], "reasoning": "2-3 sentences"}')
    return "\n".join(lines)


def build_content_prompt(movie) -> str:
    year = movie.year or "unknown year"
    return "\n".join([
        f'Analyze the content of the movie "{movie.title}" ({year}).',
        f"Overview: {movie.overview}",
        f"Genres: {', '.join(movie.genres)}",
        f"Runtime: {movie.runtime} minutes",
        "Reply with JSON only, shaped as:",
        '{"microGenres": [], "contentWarnings": [{"type": "violence", "severity": "moderate", '
        '"description": ""}], "themes": [], "mood": "", "complexity": 5, '
        '"visualStyle": "", "pacing": ""}',
        "Warning types: violence, language, sexual_content, substance_use, "
        "disturbing_content, flashing_lights. Severity: mild, moderate, severe.",
    ])


def build_assistant_prompt(profile_summary: dict, history: list[str], message: str) -> str:
    return "\n".join([
        "You are a friendly movie recommendation assistant.",
        f"User preferences: {json.dumps(profile_summary)}",
        "Conversation so far:",
        *history,
        f'Current message: "{message}"',
        'Reply with JSON only: {"response": "", "recommendations": [{"title": "", "year": 2020, '
        '"reason": "", "confidence": 0.8}], "actions": [], "followUp": ""}',
    ])


async def suggest_titles(
    client: GeminiClient | None,
    profile,
    watched_titles: list[str],
    context: str | None = None,
) -> AIResult[TitleSuggestions]:
    prompt = build_suggestion_prompt(profile, watched_titles, context)
    return await request_structured(client, prompt, TitleSuggestions, FALLBACK_SUGGESTIONS)
