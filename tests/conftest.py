import importlib
import sys
from pathlib import Path

import pytest

# Ensure the package under test is importable without installation
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))


@pytest.fixture
def fresh_config(monkeypatch, tmp_path):
    """
    Reload config with a temporary database path to keep tests isolated.
    """
    db_path = tmp_path / "test.db"
    monkeypatch.setenv("CINELOG_DB", str(db_path))
    import cinelog_rec.config as config

    importlib.reload(config)
    return config


@pytest.fixture
def fresh_db(monkeypatch, tmp_path):
    """
    Reload config/database modules with a temp DB and cleanly close the pool after use.
    """
    db_path = tmp_path / "test.db"
    monkeypatch.setenv("CINELOG_DB", str(db_path))

    import cinelog_rec.config as config
    import cinelog_rec.database as database

    importlib.reload(config)
    importlib.reload(database)
    database.init_db()

    yield database
    database.close_pool()


class FakeCatalog:
    """
    Stand-in for AsyncTMDBClient backed by dicts.

    `movies` maps id -> Movie for fetches; `genre_pages` maps genre id ->
    list of Movie; `search_results` maps query -> list of Movie. Any key in
    `failing` (an id, "trending", "popular", a genre id or a query) raises.
    """

    def __init__(self, movies=None, genre_pages=None, trending=None, popular=None, search_results=None, failing=()):
        self.movies = movies or {}
        self.genre_pages = genre_pages or {}
        self.trending_movies = trending or []
        self.popular_movies = popular or []
        self.search_results = search_results or {}
        self.failing = set(failing)
        self.calls = []

    def _page(self, results):
        from cinelog_rec.models import MoviePage

        return MoviePage(page=1, total_pages=1, total_results=len(results), results=list(results))

    def _check(self, key):
        if key in self.failing:
            from cinelog_rec.exceptions import MetadataUnavailable

            raise MetadataUnavailable(f"boom: {key}")

    async def fetch_movie(self, movie_id):
        self.calls.append(("movie", movie_id))
        self._check(movie_id)
        return self.movies.get(movie_id)

    async def fetch_movies(self, movie_ids):
        self.calls.append(("movies", tuple(movie_ids)))
        return {
            m: self.movies[m]
            for m in dict.fromkeys(movie_ids)
            if m in self.movies and m not in self.failing
        }

    async def discover_by_genre(self, genre_id, page=1):
        self.calls.append(("discover", genre_id))
        self._check(genre_id)
        return self._page(self.genre_pages.get(genre_id, []))

    async def trending(self, window="week"):
        self.calls.append(("trending", window))
        self._check("trending")
        return self._page(self.trending_movies)

    async def popular(self, page=1):
        self.calls.append(("popular", page))
        self._check("popular")
        return self._page(self.popular_movies)

    async def search_movies(self, text, page=1):
        self.calls.append(("search", text))
        self._check(text)
        return self._page(self.search_results.get(text, []))


class FakeAI:
    """Stand-in for GeminiClient returning canned text, or raising `error`."""

    def __init__(self, text=None, error=None):
        self.text = text
        self.error = error
        self.prompts = []

    async def generate(self, prompt):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.text


@pytest.fixture
def fake_catalog():
    return FakeCatalog


@pytest.fixture
def fake_ai():
    return FakeAI
