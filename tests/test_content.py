import importlib
import json

import pytest

from cinelog_rec.ai import ContentAnalysis
from cinelog_rec.models import Movie

ANALYSIS_JSON = json.dumps({
    "microGenres": ["Heist thriller"],
    "contentWarnings": [
        {"type": "violence", "severity": "moderate", "description": "gunfights"},
        {"type": "language", "severity": "mild", "description": ""},
    ],
    "themes": ["Obsession"],
    "mood": "tense",
    "complexity": 6,
    "visualStyle": "cool blues",
    "pacing": "deliberate",
})


@pytest.fixture
def content(fresh_db):
    import cinelog_rec.content as content

    return importlib.reload(content)


def _movie(movie_id=949, title="Heat"):
    return Movie(id=movie_id, title=title, genres=["Crime"], release_date="1995-12-15", runtime=170)


@pytest.mark.asyncio
async def test_analysis_is_cached_after_success(content, fresh_db, fake_ai):
    client = fake_ai(text=ANALYSIS_JSON)

    first = await content.analyze_movie_content(_movie(), client)
    second = await content.analyze_movie_content(_movie(), client)

    assert first.ok and second.ok
    assert second.value.micro_genres == ["Heist thriller"]
    assert len(client.prompts) == 1
    assert fresh_db.load_content_analysis(949)["visualStyle"] == "cool blues"


@pytest.mark.asyncio
async def test_use_cache_false_asks_again(content, fresh_db, fake_ai):
    client = fake_ai(text=ANALYSIS_JSON)

    await content.analyze_movie_content(_movie(), client)
    await content.analyze_movie_content(_movie(), client, use_cache=False)

    assert len(client.prompts) == 2


@pytest.mark.asyncio
async def test_fallback_analysis_is_not_cached(content, fresh_db, fake_ai):
    result = await content.analyze_movie_content(_movie(), fake_ai(text="not json"))

    assert not result.ok
    assert result.value.micro_genres == ["General Entertainment"]
    assert result.value.themes == ["Entertainment", "Storytelling"]
    assert result.value.complexity == 5
    assert fresh_db.load_content_analysis(949) is None


@pytest.mark.asyncio
async def test_stale_cached_analysis_is_replaced(content, fresh_db, fake_ai):
    fresh_db.store_content_analysis(949, {"complexity": 42})

    result = await content.analyze_movie_content(_movie(), fake_ai(text=ANALYSIS_JSON))

    assert result.ok
    assert fresh_db.load_content_analysis(949)["complexity"] == 6


def test_filter_by_content_preferences(content):
    violent, calm, unknown = _movie(1, "Violent"), _movie(2, "Calm"), _movie(3, "Unknown")
    analyses = {
        1: ContentAnalysis.model_validate(json.loads(ANALYSIS_JSON)),
        2: ContentAnalysis(),
    }

    kept = content.filter_by_content_preferences([violent, calm, unknown], analyses, avoided={"violence"})
    assert [m.id for m in kept] == [2, 3]

    tolerant = content.filter_by_content_preferences(
        [violent, calm], analyses, avoided={"violence"}, max_severity="moderate"
    )
    assert [m.id for m in tolerant] == [1, 2]

    other_type = content.filter_by_content_preferences([violent], analyses, avoided={"flashing_lights"})
    assert [m.id for m in other_type] == [1]


def test_unknown_severity_is_rejected(content):
    with pytest.raises(ValueError):
        content.filter_by_content_preferences([], {}, avoided=(), max_severity="extreme")
