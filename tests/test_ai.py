import json

import httpx
import pytest
from pydantic import ValidationError

from cinelog_rec import ai
from cinelog_rec.exceptions import AIResponseUnparseable, AIServiceUnavailable
from cinelog_rec.models import Movie
from cinelog_rec.profile import default_profile


def _gemini_envelope(text):
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


def test_extract_json_tolerates_prose_and_fences():
    text = 'Here you go:\n```json\n{"titles": ["Heat"], "reasoning": "tense"}\n```\nEnjoy!'

    assert ai.extract_json(text) == {"titles": ["Heat"], "reasoning": "tense"}


@pytest.mark.parametrize("text", [None, "", "no braces here", "{not: valid json}", "[1, 2]"])
def test_extract_json_rejects_unusable_text(text):
    with pytest.raises(AIResponseUnparseable):
        ai.extract_json(text)


def test_title_suggestions_strip_years_and_duplicates():
    parsed = ai.TitleSuggestions.model_validate({"titles": ["Heat (1995)", "Heat", " ", "Alien"]})

    assert parsed.titles == ["Heat", "Alien"]
    assert parsed.reasoning == ""


def test_content_analysis_accepts_camel_case_and_validates():
    analysis = ai.ContentAnalysis.model_validate({
        "microGenres": ["Neo-noir"],
        "contentWarnings": [{"type": "violence", "severity": "severe", "description": "shootouts"}],
        "complexity": 7,
        "visualStyle": "gritty",
    })

    assert analysis.micro_genres == ["Neo-noir"]
    assert analysis.content_warnings[0].severity == "severe"
    assert analysis.model_dump(by_alias=True)["visualStyle"] == "gritty"

    with pytest.raises(ValidationError):
        ai.ContentAnalysis.model_validate({"complexity": 11})


@pytest.mark.asyncio
async def test_gemini_generate_posts_prompt_and_reads_text():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=_gemini_envelope("hello"))

    async with ai.GeminiClient(api_key="g", model="m1", transport=httpx.MockTransport(handler)) as client:
        text = await client.generate("prompt text")

    assert text == "hello"
    assert "/models/m1:generateContent" in seen["url"]
    assert "key=g" in seen["url"]
    assert seen["body"]["contents"][0]["parts"][0]["text"] == "prompt text"


@pytest.mark.asyncio
async def test_gemini_generate_without_context_manager_uses_temp_client():
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json=_gemini_envelope("ok")))

    assert await ai.GeminiClient(api_key="g", transport=transport).generate("p") == "ok"


@pytest.mark.asyncio
async def test_gemini_missing_key_is_unavailable():
    with pytest.raises(AIServiceUnavailable):
        await ai.GeminiClient(api_key="").generate("p")


@pytest.mark.asyncio
@pytest.mark.parametrize("response, error", [
    (httpx.Response(503, text="overloaded"), AIServiceUnavailable),
    (httpx.Response(200, json={"candidates": []}), AIResponseUnparseable),
    (httpx.Response(200, json=_gemini_envelope("   ")), AIResponseUnparseable),
])
async def test_gemini_failures_are_typed(response, error):
    transport = httpx.MockTransport(lambda request: response)

    with pytest.raises(error):
        await ai.GeminiClient(api_key="g", transport=transport).generate("p")


@pytest.mark.asyncio
async def test_request_structured_success(fake_ai):
    client = fake_ai(text='{"titles": ["Alien (1979)"], "reasoning": "space horror"}')

    result = await ai.request_structured(client, "p", ai.TitleSuggestions, ai.FALLBACK_SUGGESTIONS)

    assert result.ok
    assert result.value.titles == ["Alien"]
    assert result.error is None


@pytest.mark.asyncio
@pytest.mark.parametrize("text", [
    "I can't help with that.",
    '{"titles": []}',
    '{"reasoning": "missing titles"}',
    '{"titles": ["Heat"',
])
async def test_request_structured_falls_back_on_bad_output(fake_ai, text):
    result = await ai.request_structured(fake_ai(text=text), "p", ai.TitleSuggestions, ai.FALLBACK_SUGGESTIONS)

    assert not result.ok
    assert result.value.titles == ["The Shawshank Redemption", "Inception", "Pulp Fiction"]
    assert result.raw_text == text


@pytest.mark.asyncio
async def test_request_structured_falls_back_when_unreachable_or_disabled(fake_ai):
    down = await ai.request_structured(
        fake_ai(error=AIServiceUnavailable("timeout")), "p", ai.TitleSuggestions, ai.FALLBACK_SUGGESTIONS
    )
    disabled = await ai.request_structured(None, "p", ai.TitleSuggestions, ai.FALLBACK_SUGGESTIONS)

    assert not down.ok and down.error == "timeout"
    assert not disabled.ok
    assert disabled.value.reasoning == "Fallback recommendations due to AI service error."


@pytest.mark.asyncio
async def test_fallback_value_is_a_copy(fake_ai):
    result = await ai.request_structured(None, "p", ai.TitleSuggestions, ai.FALLBACK_SUGGESTIONS)
    result.value.titles.append("Mutated")

    assert "Mutated" not in ai.FALLBACK_SUGGESTIONS.titles


def test_suggestion_prompt_includes_profile_and_context():
    prompt = ai.build_suggestion_prompt(default_profile(), ["Heat", "Alien"], context="rainy day")

    assert "Drama, Action, Comedy" in prompt
    assert "2010s, 2000s" in prompt
    assert "Heat" in prompt and "Alien" in prompt
    assert "Additional context: rainy day" in prompt


def test_content_prompt_mentions_movie():
    movie = Movie(id=1, title="Alien", genres=["Horror"], release_date="1979-05-25", runtime=117)

    prompt = ai.build_content_prompt(movie)

    assert '"Alien" (1979)' in prompt
    assert "contentWarnings" in prompt
