"""Cached copy of the movie catalog and favorite membership queries."""

from __future__ import annotations

import logging
from datetime import datetime

from ..models import Movie, User
from .movie_api import MovieApiClient

logger = logging.getLogger(__name__)


class CatalogCache:
    """Last fetched full movie list.

    Membership questions are answered against the user's favorite ids alone;
    the catalog only decides which movies exist and in what order they are
    listed.
    """

    def __init__(self, api: MovieApiClient):
        self._api = api
        self._movies: tuple[Movie, ...] = ()
        self._index: dict[str, Movie] = {}
        self.refreshed_at: datetime | None = None

    @property
    def movies(self) -> tuple[Movie, ...]:
        return self._movies

    @property
    def is_loaded(self) -> bool:
        return self.refreshed_at is not None

    async def refresh(self, token: str | None) -> tuple[Movie, ...]:
        """Replace the cache wholesale; on failure the previous list is kept."""

        try:
            movies = await self._api.list_movies(token)
        except Exception:
            logger.warning("Catalog refresh failed, keeping %s cached movies", len(self._movies))
            raise
        self._movies = tuple(movies)
        self._index = {movie.id: movie for movie in self._movies}
        self.refreshed_at = datetime.utcnow()
        logger.info("Catalog refreshed with %s movies", len(self._movies))
        return self._movies

    def get(self, movie_id: str) -> Movie | None:
        return self._index.get(movie_id)

    @staticmethod
    def is_favorite(user: User | None, movie_id: str) -> bool:
        if user is None:
            return False
        return user.has_favorite(movie_id)

    def favorites_of(self, user: User | None) -> list[Movie]:
        """Return favorite movies in catalog order."""

        if user is None:
            return []
        favorites = set(user.favorite_movie_ids)
        return [movie for movie in self._movies if movie.id in favorites]

    def stale_favorites(self, user: User | None) -> list[str]:
        """Favorite ids the current catalog does not know about."""

        if user is None or not self.is_loaded:
            return []
        return [
            movie_id
            for movie_id in user.favorite_movie_ids
            if movie_id not in self._index
        ]
