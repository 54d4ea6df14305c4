from __future__ import annotations

import asyncio
import json

import pytest

from app.errors import (
    AuthError,
    AuthorizationError,
    ConcurrentOperationError,
    TransportError,
)
from app.services.catalog import CatalogCache
from app.services.favorites import FavoriteState, FavoritesReconciler
from app.services.results import Failure, ResultChannel, Success

from conftest import TOKEN, FakeMovieService


@pytest.fixture
def reconciler(api, sessions, results) -> FavoritesReconciler:
    return FavoritesReconciler(api, sessions, results)


async def _persisted_favorites(store) -> list[str]:
    return json.loads(await store.get("session"))["user"]["FavoriteMovies"]


@pytest.mark.anyio("asyncio")
async def test_toggle_adds_then_removes(
    reconciler, sessions, store, results: ResultChannel, user_factory, service
) -> None:
    await sessions.save(user_factory(), TOKEN)

    added = await reconciler.toggle_favorite("m3")

    assert isinstance(added, Success)
    assert added.message == "Movie added to favorites"
    assert CatalogCache.is_favorite(sessions.current_user(), "m3")
    assert await _persisted_favorites(store) == ["m1", "m2", "m3"]
    assert reconciler.state("al", "m3") is FavoriteState.COMMITTED
    assert results.take() is added

    removed = await reconciler.toggle_favorite("m3")

    assert removed.message == "Movie removed from favorites"
    assert not CatalogCache.is_favorite(sessions.current_user(), "m3")
    assert await _persisted_favorites(store) == ["m1", "m2"]
    assert [request.method for request in service.requests] == ["POST", "DELETE"]
    assert service.requests[0].url.path == "/users/al/movies/m3"


@pytest.mark.anyio("asyncio")
async def test_remote_failure_leaves_session_untouched(
    reconciler, sessions, store, user_factory, service: FakeMovieService
) -> None:
    await sessions.save(user_factory(), TOKEN)
    service.fail("DELETE", "/users/al/movies/m1", 500, json_body={"message": "Database down"})

    outcome = await reconciler.toggle_favorite("m1")

    assert isinstance(outcome, Failure)
    assert isinstance(outcome.error, TransportError)
    assert outcome.reason.endswith("Database down")
    assert reconciler.state("al", "m1") is FavoriteState.ROLLED_BACK
    assert sessions.current_user().favorite_movie_ids == ["m1", "m2"]
    assert await _persisted_favorites(store) == ["m1", "m2"]


@pytest.mark.anyio("asyncio")
async def test_toggle_without_session_fails_without_network(
    reconciler, service: FakeMovieService
) -> None:
    outcome = await reconciler.toggle_favorite("m1")

    assert isinstance(outcome, Failure)
    assert isinstance(outcome.error, AuthError)
    assert service.requests == []


@pytest.mark.anyio("asyncio")
async def test_rejected_credential_ends_session(
    reconciler, sessions, store, user_factory
) -> None:
    await sessions.save(user_factory(), "expired")

    outcome = await reconciler.toggle_favorite("m3")

    assert isinstance(outcome.error, AuthorizationError)
    assert sessions.current is None
    assert await store.get("session") is None


class GatedApi:
    """Favorite API stub whose calls wait until released."""

    def __init__(self) -> None:
        self.release = asyncio.Event()
        self.calls: list[tuple[str, str]] = []

    async def add_favorite(self, username: str, movie_id: str, token: str | None):
        self.calls.append(("add", movie_id))
        await self.release.wait()
        return None

    async def remove_favorite(self, username: str, movie_id: str, token: str | None):
        self.calls.append(("remove", movie_id))
        await self.release.wait()
        return None


@pytest.mark.anyio("asyncio")
async def test_second_toggle_for_same_movie_is_rejected(sessions, user_factory) -> None:
    api = GatedApi()
    results = ResultChannel()
    reconciler = FavoritesReconciler(api, sessions, results)  # type: ignore[arg-type]
    await sessions.save(user_factory(), TOKEN)

    first = asyncio.create_task(reconciler.toggle_favorite("m3"))
    await asyncio.sleep(0)
    assert reconciler.is_pending("al", "m3")

    second = await reconciler.toggle_favorite("m3")

    assert isinstance(second, Failure)
    assert isinstance(second.error, ConcurrentOperationError)
    assert second.reason == "Toggle already in progress."

    api.release.set()
    outcome = await first

    assert isinstance(outcome, Success)
    assert api.calls == [("add", "m3")]
    assert sessions.current_user().favorite_movie_ids == ["m1", "m2", "m3"]


@pytest.mark.anyio("asyncio")
async def test_toggles_on_different_movies_may_overlap(sessions, user_factory) -> None:
    api = GatedApi()
    reconciler = FavoritesReconciler(api, sessions, ResultChannel())  # type: ignore[arg-type]
    await sessions.save(user_factory(), TOKEN)

    tasks = [
        asyncio.create_task(reconciler.toggle_favorite("m3")),
        asyncio.create_task(reconciler.toggle_favorite("m1")),
    ]
    await asyncio.sleep(0)
    api.release.set()
    outcomes = await asyncio.gather(*tasks)

    assert all(outcome.ok for outcome in outcomes)
    assert sorted(api.calls) == [("add", "m3"), ("remove", "m1")]


@pytest.mark.anyio("asyncio")
async def test_logout_during_toggle_discards_write_back(sessions, store, user_factory) -> None:
    api = GatedApi()
    reconciler = FavoritesReconciler(api, sessions, ResultChannel())  # type: ignore[arg-type]
    await sessions.save(user_factory(), TOKEN)

    task = asyncio.create_task(reconciler.toggle_favorite("m3"))
    await asyncio.sleep(0)
    await sessions.clear()
    api.release.set()
    await task

    assert sessions.current is None
    assert await store.get("session") is None


@pytest.mark.anyio("asyncio")
async def test_overlapping_writes_keep_the_last_snapshot(sessions, store, user_factory) -> None:
    api = GatedApi()
    reconciler = FavoritesReconciler(api, sessions, ResultChannel())  # type: ignore[arg-type]
    await sessions.save(user_factory(), TOKEN)

    tasks = [
        asyncio.create_task(reconciler.toggle_favorite("m3")),
        asyncio.create_task(reconciler.toggle_favorite("m1")),
    ]
    await asyncio.sleep(0)
    api.release.set()
    await asyncio.gather(*tasks)

    # Both toggles started from [m1, m2]; the removal finished last.
    assert sessions.current_user().favorite_movie_ids == ["m2"]
    assert await _persisted_favorites(store) == ["m2"]


@pytest.mark.anyio("asyncio")
async def test_unreadable_confirmation_body_still_commits(
    reconciler, sessions, store, user_factory, service: FakeMovieService
) -> None:
    await sessions.save(user_factory(), TOKEN)
    service.respond(
        "POST",
        "/users/al/movies/m3",
        200,
        json_body={"Username": "al", "FavoriteMovies": "m3"},
    )

    outcome = await reconciler.toggle_favorite("m3")

    assert isinstance(outcome, Success)
    assert reconciler.state("al", "m3") is FavoriteState.COMMITTED
    assert await _persisted_favorites(store) == ["m1", "m2", "m3"]


@pytest.mark.anyio("asyncio")
async def test_cancelled_toggle_does_not_lock_the_movie(sessions, user_factory) -> None:
    api = GatedApi()
    reconciler = FavoritesReconciler(api, sessions, ResultChannel())  # type: ignore[arg-type]
    await sessions.save(user_factory(), TOKEN)

    task = asyncio.create_task(reconciler.toggle_favorite("m3"))
    await asyncio.sleep(0)
    assert reconciler.is_pending("al", "m3")

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert reconciler.state("al", "m3") is FavoriteState.ROLLED_BACK
    assert sessions.current_user().favorite_movie_ids == ["m1", "m2"]

    api.release.set()
    retry = await reconciler.toggle_favorite("m3")

    assert isinstance(retry, Success)
    assert sessions.current_user().favorite_movie_ids == ["m1", "m2", "m3"]


class RejectingGatedApi(GatedApi):
    """Gated stub that rejects the credential once released."""

    async def add_favorite(self, username: str, movie_id: str, token: str | None):
        await super().add_favorite(username, movie_id, token)
        raise AuthorizationError()


@pytest.mark.anyio("asyncio")
async def test_stale_rejection_keeps_newer_session(sessions, store, user_factory) -> None:
    api = RejectingGatedApi()
    reconciler = FavoritesReconciler(api, sessions, ResultChannel())  # type: ignore[arg-type]
    await sessions.save(user_factory(), "old")

    task = asyncio.create_task(reconciler.toggle_favorite("m3"))
    await asyncio.sleep(0)
    await sessions.save(user_factory(_id="u2", Username="bo", FavoriteMovies=[]), "fresh")
    api.release.set()
    outcome = await task

    assert isinstance(outcome.error, AuthorizationError)
    assert reconciler.state("al", "m3") is FavoriteState.ROLLED_BACK
    assert sessions.current_username() == "bo"
    assert sessions.current.token == "fresh"
    persisted = json.loads(await store.get("session"))
    assert persisted["token"] == "fresh"
    assert persisted["user"]["Username"] == "bo"


@pytest.mark.anyio("asyncio")
async def test_write_back_uses_the_current_credential(sessions, store, user_factory) -> None:
    api = GatedApi()
    reconciler = FavoritesReconciler(api, sessions, ResultChannel())  # type: ignore[arg-type]
    await sessions.save(user_factory(), "old")

    task = asyncio.create_task(reconciler.toggle_favorite("m3"))
    await asyncio.sleep(0)
    await sessions.save(user_factory(), "renewed")
    api.release.set()
    await task

    assert sessions.current.token == "renewed"
    assert json.loads(await store.get("session"))["token"] == "renewed"
    assert await _persisted_favorites(store) == ["m1", "m2", "m3"]
