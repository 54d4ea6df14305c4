"""Confirmed add/remove of favorite movies reconciled into the session."""

from __future__ import annotations

import logging
from enum import Enum

from ..errors import (
    AuthError,
    AuthorizationError,
    ConcurrentOperationError,
    FlixSyncError,
)
from ..models import User
from .movie_api import MovieApiClient
from .results import Failure, Outcome, ResultChannel, Success
from .session_store import SessionStore

logger = logging.getLogger(__name__)

ADDED_MESSAGE = "Movie added to favorites"
REMOVED_MESSAGE = "Movie removed from favorites"


class FavoriteState(str, Enum):
    """Lifecycle of one (user, movie) toggle."""

    IDLE = "idle"
    PENDING = "pending"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


class FavoritesReconciler:
    """Apply favorite toggles only after the remote service confirms them.

    The add/remove decision and the write-back both derive from the snapshot
    taken when the toggle starts. Overlapping toggles for the same movie are
    rejected; overlapping writes from other operations are last-writer-wins.
    """

    def __init__(
        self,
        api: MovieApiClient,
        sessions: SessionStore,
        results: ResultChannel,
        *,
        duration_ms: int = 2_000,
    ):
        self._api = api
        self._sessions = sessions
        self._results = results
        self._duration_ms = duration_ms
        self._states: dict[tuple[str, str], FavoriteState] = {}

    def state(self, username: str, movie_id: str) -> FavoriteState:
        return self._states.get((username, movie_id), FavoriteState.IDLE)

    def is_pending(self, username: str, movie_id: str) -> bool:
        return self.state(username, movie_id) is FavoriteState.PENDING

    async def toggle_favorite(self, movie_id: str) -> Outcome:
        session = self._sessions.current
        if session is None:
            return self._fail(AuthError())

        snapshot = session.user.model_copy(deep=True)
        token = session.token
        key = (snapshot.username, movie_id)
        if self.is_pending(*key):
            logger.info("Rejecting toggle of %s for %s: already pending", movie_id, key[0])
            return self._fail(ConcurrentOperationError())

        adding = not snapshot.has_favorite(movie_id)
        self._states[key] = FavoriteState.PENDING
        try:
            return await self._reconcile(snapshot, token, movie_id, adding)
        finally:
            # Cancellation or an unexpected error must not lock the movie.
            if self._states.get(key) is FavoriteState.PENDING:
                self._states[key] = FavoriteState.ROLLED_BACK

    async def _reconcile(
        self, snapshot: User, token: str | None, movie_id: str, adding: bool
    ) -> Outcome:
        key = (snapshot.username, movie_id)
        try:
            if adding:
                await self._api.add_favorite(snapshot.username, movie_id, token)
            else:
                await self._api.remove_favorite(snapshot.username, movie_id, token)
        except AuthorizationError as exc:
            self._states[key] = FavoriteState.ROLLED_BACK
            logger.warning("Credential rejected while toggling %s", movie_id)
            await self._sessions.invalidate(snapshot.username, token)
            return self._fail(exc)
        except FlixSyncError as exc:
            self._states[key] = FavoriteState.ROLLED_BACK
            logger.warning("Favorite toggle of %s rolled back: %s", movie_id, exc.message)
            return self._fail(exc, prefix="Could not update favorites: ")

        updated = (
            snapshot.with_favorite(movie_id)
            if adding
            else snapshot.without_favorite(movie_id)
        )
        try:
            await self._write_back(updated)
        except Exception:
            self._states[key] = FavoriteState.ROLLED_BACK
            logger.exception("Could not persist favorites after toggling %s", movie_id)
            return self._fail(FlixSyncError("Could not save favorites locally."))

        self._states[key] = FavoriteState.COMMITTED
        logger.info(
            "%s %s for %s", "Added" if adding else "Removed", movie_id, snapshot.username
        )
        return self._results.publish(
            Success(
                ADDED_MESSAGE if adding else REMOVED_MESSAGE,
                payload=updated,
                duration_ms=self._duration_ms,
            )
        )

    async def _write_back(self, user: User) -> None:
        current = self._sessions.current
        if current is None or current.user.username != user.username:
            # Logged out or switched accounts while the call was in flight.
            logger.info("Discarding favorite write-back for %s", user.username)
            return
        await self._sessions.save(user, current.token)

    def _fail(self, error: FlixSyncError, *, prefix: str = "") -> Outcome:
        return self._results.publish(
            Failure(f"{prefix}{error.message}", error=error, duration_ms=self._duration_ms)
        )
