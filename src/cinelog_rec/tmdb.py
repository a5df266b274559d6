import asyncio
import logging

import httpx

from .config import (
    TMDB_API_KEY,
    TMDB_BASE_URL,
    TMDB_IMAGE_BASE_URL,
    HTTP_TIMEOUT,
    DEFAULT_MAX_CONCURRENT,
)
from .exceptions import MetadataUnavailable
from .models import Movie, MoviePage

logger = logging.getLogger(__name__)

USER_AGENT = "cinelog-rec/1.0"
TRENDING_WINDOWS = ("day", "week")


def validate_movie_id(movie_id) -> int:
    """Movie ids are positive integers assigned by the catalog."""
    if isinstance(movie_id, bool) or not isinstance(movie_id, int) or movie_id <= 0:
        raise ValueError(f"Movie id must be a positive integer, got {movie_id!r}")
    return movie_id


def validate_query(text: str | None, page: int = 1) -> str:
    if not text or not text.strip():
        raise ValueError("Search query must be a non-empty string")
    if page < 1:
        raise ValueError(f"Page must be >= 1, got {page}")
    return text.strip()


def poster_url(poster_path: str | None, size: str = "w500") -> str | None:
    if not poster_path:
        return None
    return f"{TMDB_IMAGE_BASE_URL}/{size}{poster_path}"


def _decode(resp: httpx.Response, endpoint: str) -> dict | None:
    """Shared response handling for sync and async clients. 404 means NotFound."""
    if resp.status_code == 404:
        return None
    try:
        resp.raise_for_status()
    except httpx.HTTPStatusError as e:
        raise MetadataUnavailable(f"HTTP {resp.status_code} on {endpoint}") from e
    try:
        data = resp.json()
    except ValueError as e:
        raise MetadataUnavailable(f"Invalid JSON from {endpoint}: {e}") from e
    if not isinstance(data, dict):
        raise MetadataUnavailable(f"Unexpected payload type from {endpoint}: {type(data).__name__}")
    return data


def _movie_from_payload(data: dict, movie_id: int) -> Movie:
    try:
        return Movie.from_tmdb(data)
    except (KeyError, TypeError, ValueError) as e:
        raise MetadataUnavailable(f"Malformed movie payload for {movie_id}: {e}") from e


def _page_from_payload(data: dict | None, endpoint: str) -> MoviePage:
    if data is None:
        raise MetadataUnavailable(f"Listing not found: {endpoint}")
    return MoviePage.from_tmdb(data)


class TMDBClient:
    """
    Synchronous client for the movie metadata catalog.

    Each call makes a single attempt. Movies fetched by id are memoized on the
    instance, so one client per request never refetches the same movie.
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str = TMDB_BASE_URL,
        timeout: float = HTTP_TIMEOUT,
        transport: httpx.BaseTransport | None = None,
    ):
        self.api_key = api_key if api_key is not None else TMDB_API_KEY
        if not self.api_key:
            logger.warning("TMDB_API_KEY not set; catalog requests will likely be rejected")
        self.client = httpx.Client(
            base_url=base_url,
            headers={"User-Agent": USER_AGENT},
            timeout=timeout,
            transport=transport,
        )
        self._movies: dict[int, Movie | None] = {}

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def _get(self, endpoint: str, params: dict | None = None) -> dict | None:
        params = dict(params or {})
        params["api_key"] = self.api_key
        try:
            resp = self.client.get(endpoint, params=params)
        except httpx.HTTPError as e:
            logger.error(f"Catalog request error on {endpoint}: {type(e).__name__}: {e}")
            raise MetadataUnavailable(f"Request to {endpoint} failed: {e}") from e
        return _decode(resp, endpoint)

    def fetch_movie(self, movie_id: int) -> Movie | None:
        """Fetch one movie with credits. Returns None when the catalog has no such id."""
        validate_movie_id(movie_id)
        if movie_id in self._movies:
            return self._movies[movie_id]

        data = self._get(f"/movie/{movie_id}", {"append_to_response": "credits"})
        movie = _movie_from_payload(data, movie_id) if data is not None else None
        self._movies[movie_id] = movie
        return movie

    def search_movies(self, text: str, page: int = 1) -> MoviePage:
        query = validate_query(text, page)
        return _page_from_payload(self._get("/search/movie", {"query": query, "page": page}), "/search/movie")

    def trending(self, window: str = "week") -> MoviePage:
        if window not in TRENDING_WINDOWS:
            raise ValueError(f"Trending window must be one of {TRENDING_WINDOWS}")
        endpoint = f"/trending/movie/{window}"
        return _page_from_payload(self._get(endpoint), endpoint)

    def popular(self, page: int = 1) -> MoviePage:
        return _page_from_payload(self._get("/movie/popular", {"page": page}), "/movie/popular")

    def discover_by_genre(self, genre_id: int, page: int = 1) -> MoviePage:
        params = {
            "with_genres": genre_id,
            "sort_by": "vote_average.desc",
            "vote_count.gte": 100,
            "page": page,
        }
        return _page_from_payload(self._get("/discover/movie", params), "/discover/movie")

    def close(self):
        self.client.close()


class AsyncTMDBClient:
    """Async catalog client for fanning out movie fetches with bounded concurrency."""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str = TMDB_BASE_URL,
        timeout: float = HTTP_TIMEOUT,
        max_concurrent: int = DEFAULT_MAX_CONCURRENT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key if api_key is not None else TMDB_API_KEY
        if not self.api_key:
            logger.warning("TMDB_API_KEY not set; catalog requests will likely be rejected")
        self.base_url = base_url
        self.timeout = timeout
        self.transport = transport
        self.semaphore = asyncio.Semaphore(max_concurrent)
        self.client: httpx.AsyncClient | None = None
        self._movies: dict[int, Movie | None] = {}
        self._inflight: dict[int, asyncio.Task] = {}

    async def __aenter__(self):
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"User-Agent": USER_AGENT},
            timeout=self.timeout,
            transport=self.transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self.client:
            await self.client.aclose()
            self.client = None
        return False

    async def _get(self, endpoint: str, params: dict | None = None) -> dict | None:
        if not self.client:
            raise RuntimeError("AsyncTMDBClient must be used as an async context manager")

        params = dict(params or {})
        params["api_key"] = self.api_key
        async with self.semaphore:
            try:
                resp = await self.client.get(endpoint, params=params)
            except httpx.HTTPError as e:
                logger.error(f"Catalog request error on {endpoint}: {type(e).__name__}: {e}")
                raise MetadataUnavailable(f"Request to {endpoint} failed: {e}") from e
        return _decode(resp, endpoint)

    async def fetch_movie(self, movie_id: int) -> Movie | None:
        """Fetch one movie with credits. Returns None when the catalog has no such id."""
        validate_movie_id(movie_id)
        if movie_id in self._movies:
            return self._movies[movie_id]

        # Concurrent callers asking for the same id share one request
        task = self._inflight.get(movie_id)
        if task is None:
            task = asyncio.ensure_future(self._fetch_movie_uncached(movie_id))
            self._inflight[movie_id] = task
        try:
            return await task
        finally:
            self._inflight.pop(movie_id, None)

    async def _fetch_movie_uncached(self, movie_id: int) -> Movie | None:
        data = await self._get(f"/movie/{movie_id}", {"append_to_response": "credits"})
        movie = _movie_from_payload(data, movie_id) if data is not None else None
        self._movies[movie_id] = movie
        return movie

    async def fetch_movies(self, movie_ids: list[int]) -> dict[int, Movie]:
        """
        Fetch many movies concurrently.

        Failures and unknown ids are logged and skipped; the result only holds
        movies that were fetched successfully.
        """
        unique_ids = list(dict.fromkeys(movie_ids))
        results = await asyncio.gather(
            *(self.fetch_movie(movie_id) for movie_id in unique_ids),
            return_exceptions=True,
        )

        movies: dict[int, Movie] = {}
        failed = 0
        for movie_id, result in zip(unique_ids, results):
            if isinstance(result, Exception):
                logger.warning(f"Skipping movie {movie_id}: {type(result).__name__}: {result}")
                failed += 1
            elif result is None:
                logger.debug(f"Movie {movie_id} not found in catalog")
                failed += 1
            else:
                movies[movie_id] = result

        if failed:
            logger.info(f"Fetched {len(movies)}/{len(unique_ids)} movies ({failed} skipped)")
        return movies

    async def search_movies(self, text: str, page: int = 1) -> MoviePage:
        query = validate_query(text, page)
        data = await self._get("/search/movie", {"query": query, "page": page})
        return _page_from_payload(data, "/search/movie")

    async def trending(self, window: str = "week") -> MoviePage:
        if window not in TRENDING_WINDOWS:
            raise ValueError(f"Trending window must be one of {TRENDING_WINDOWS}")
        endpoint = f"/trending/movie/{window}"
        return _page_from_payload(await self._get(endpoint), endpoint)

    async def popular(self, page: int = 1) -> MoviePage:
        return _page_from_payload(await self._get("/movie/popular", {"page": page}), "/movie/popular")

    async def discover_by_genre(self, genre_id: int, page: int = 1) -> MoviePage:
        params = {
            "with_genres": genre_id,
            "sort_by": "vote_average.desc",
            "vote_count.gte": 100,
            "page": page,
        }
        return _page_from_payload(await self._get("/discover/movie", params), "/discover/movie")
