"""Composition of the reconciliation services behind one client object."""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any, AsyncIterator, Mapping

import httpx

from .config import Settings
from .database import Database
from .errors import AuthError
from .models import Director, Genre, Movie, User
from .services.account import AccountService
from .services.catalog import CatalogCache
from .services.favorites import FavoritesReconciler
from .services.movie_api import MovieApiClient
from .services.profile import ProfileDraft, ProfileEditor
from .services.results import Outcome, ResultChannel
from .services.session_store import SessionStore
from .storage import DatabaseKeyValueStore, KeyValueStore, MemoryKeyValueStore

logger = logging.getLogger(__name__)


class FlixClient:
    """Entry point the UI layer talks to.

    Mutating operations return an :class:`Outcome` that is also published on
    :attr:`results`; read operations raise the typed errors from
    :mod:`app.errors`.
    """

    def __init__(self, settings: Settings, api: MovieApiClient, store: KeyValueStore):
        self.settings = settings
        self.api = api
        self.results = ResultChannel()
        self.sessions = SessionStore(store, key=settings.session_key)
        self.catalog = CatalogCache(api)
        self.favorites = FavoritesReconciler(
            api, self.sessions, self.results, duration_ms=settings.feedback_duration_ms
        )
        self.profile = ProfileEditor(
            api,
            self.sessions,
            self.results,
            duration_ms=settings.profile_feedback_duration_ms,
        )
        self.accounts = AccountService(
            api, self.sessions, self.results, duration_ms=settings.feedback_duration_ms
        )

    async def start(self) -> None:
        session = await self.sessions.load()
        if session is not None:
            logger.info("Restored session for %s", session.user.username)

    @property
    def current_user(self) -> User | None:
        return self.sessions.current_user()

    async def login(self, username: str, password: str) -> Outcome:
        return await self.accounts.login(username, password)

    async def register(self, details: Mapping[str, Any]) -> Outcome:
        return await self.accounts.register(details)

    async def logout(self) -> Outcome:
        return await self.accounts.logout()

    async def refresh_user(self) -> Outcome:
        return await self.accounts.refresh_user()

    async def delete_account(self) -> Outcome:
        return await self.accounts.delete_account()

    async def toggle_favorite(self, movie_id: str) -> Outcome:
        return await self.favorites.toggle_favorite(movie_id)

    def is_favorite(self, movie_id: str) -> bool:
        return self.catalog.is_favorite(self.sessions.current_user(), movie_id)

    def favorites_of(self) -> list[Movie]:
        return self.catalog.favorites_of(self.sessions.current_user())

    def begin_edit(self) -> ProfileDraft:
        user = self._require_user()
        return self.profile.begin_edit(user)

    def has_changes(self, draft: ProfileDraft) -> bool:
        return self.profile.has_changes(draft.live, draft.original)

    async def save_profile(self, draft: ProfileDraft) -> Outcome:
        return await self.profile.save(draft)

    async def movies(self, *, refresh: bool = False) -> tuple[Movie, ...]:
        self._require_user()
        if refresh or not self.catalog.is_loaded:
            await self.catalog.refresh(self._token())
        return self.catalog.movies

    async def movie(self, title: str) -> Movie:
        self._require_user()
        return await self.api.get_movie(title, self._token())

    async def director(self, name: str) -> Director:
        self._require_user()
        return await self.api.get_director(name, self._token())

    async def genre(self, name: str) -> Genre:
        self._require_user()
        return await self.api.get_genre(name, self._token())

    def _require_user(self) -> User:
        user = self.sessions.current_user()
        if user is None:
            raise AuthError()
        return user

    def _token(self) -> str | None:
        session = self.sessions.current
        return session.token if session is not None else None


@asynccontextmanager
async def open_client(
    settings: Settings,
    *,
    http_client: httpx.AsyncClient | None = None,
    store: KeyValueStore | None = None,
) -> AsyncIterator[FlixClient]:
    """Build a started client, owning whatever resources it had to create."""

    async with AsyncExitStack() as exit_stack:
        if http_client is None:
            http_client = await exit_stack.enter_async_context(
                httpx.AsyncClient(
                    base_url=str(settings.movie_api_url),
                    timeout=httpx.Timeout(
                        settings.request_timeout_seconds,
                        connect=settings.connect_timeout_seconds,
                    ),
                )
            )
        if store is None:
            if settings.session_backend == "database":
                database = Database(settings.database_url)
                exit_stack.push_async_callback(database.dispose)
                await database.create_all()
                store = DatabaseKeyValueStore(database.session_factory)
            else:
                store = MemoryKeyValueStore()

        client = FlixClient(settings, MovieApiClient(settings, http_client), store)
        await client.start()
        yield client
