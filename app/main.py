"""Entry point for the FastAPI companion app exposing the client core."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, Iterable

import httpx
from fastapi import Body, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from .client import FlixClient, open_client
from .config import Settings, settings as default_settings
from .errors import (
    AuthError,
    AuthorizationError,
    ConcurrentOperationError,
    FlixSyncError,
    TransportError,
    ValidationError,
)
from .models import Movie, ProfileEdit, User
from .services.results import Outcome, Success
from .storage import KeyValueStore

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app: FastAPI


class Credentials(BaseModel):
    """Login form body."""

    model_config = ConfigDict(populate_by_name=True)

    username: str = Field(default="", alias="Username")
    password: str = Field(default="", alias="Password")


def create_app(
    settings: Settings | None = None,
    *,
    http_client: httpx.AsyncClient | None = None,
    store: KeyValueStore | None = None,
) -> FastAPI:
    resolved = settings or default_settings

    @asynccontextmanager
    async def lifespan(fastapi_app: FastAPI):
        async with open_client(resolved, http_client=http_client, store=store) as client:
            fastapi_app.state.client = client
            yield

    fastapi_app = FastAPI(
        title=resolved.app_name,
        description="Session-reconciling client for the movie catalog service",
        version="1.0.0",
        lifespan=lifespan,
    )

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["*"],
    )

    register_routes(fastapi_app)
    return fastapi_app


def get_client(app: FastAPI) -> FlixClient:
    client = getattr(app.state, "client", None)
    if not isinstance(client, FlixClient):
        raise RuntimeError("Client not initialised")
    return client


def status_for(error: FlixSyncError | None) -> int:
    if isinstance(error, (AuthError, AuthorizationError)):
        return 401
    if isinstance(error, ValidationError):
        return 400
    if isinstance(error, ConcurrentOperationError):
        return 409
    if isinstance(error, TransportError):
        # Missing catalog records stay missing for the caller.
        return 404 if error.status_code == 404 else 502
    return 500


def serialise(payload: Any) -> Any:
    if isinstance(payload, User):
        return payload.to_wire()
    if isinstance(payload, BaseModel):
        return payload.model_dump(by_alias=True, mode="json")
    if isinstance(payload, (list, tuple)):
        return [serialise(entry) for entry in payload]
    return payload


def outcome_response(outcome: Outcome, *, success_status: int = 200) -> JSONResponse:
    body: dict[str, Any] = {
        "ok": outcome.ok,
        "message": outcome.message,
        "durationMs": outcome.duration_ms,
    }
    if isinstance(outcome, Success):
        body["data"] = serialise(outcome.payload)
        return JSONResponse(body, status_code=success_status)
    body["error"] = type(outcome.error).__name__ if outcome.error else None
    return JSONResponse(body, status_code=status_for(outcome.error))


def movie_listing(client: FlixClient, movies: Iterable[Movie]) -> list[dict[str, Any]]:
    listing = []
    for movie in movies:
        entry = serialise(movie)
        entry["isFavorite"] = client.is_favorite(movie.id)
        listing.append(entry)
    return listing


def register_routes(fastapi_app: FastAPI) -> None:
    async def _read(operation):
        sessions = get_client(fastapi_app).sessions
        session = sessions.current
        try:
            return await operation
        except FlixSyncError as exc:
            if isinstance(exc, AuthorizationError) and session is not None:
                await sessions.invalidate(session.user.username, session.token)
            raise HTTPException(status_code=status_for(exc), detail=exc.message) from exc

    @fastapi_app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    @fastapi_app.post("/api/session")
    async def login(credentials: Credentials) -> JSONResponse:
        client = get_client(fastapi_app)
        outcome = await client.login(credentials.username, credentials.password)
        return outcome_response(outcome)

    @fastapi_app.get("/api/session")
    async def current_session() -> dict[str, Any]:
        user = get_client(fastapi_app).current_user
        if user is None:
            raise HTTPException(status_code=401, detail=AuthError.default_message)
        return {"user": user.to_wire()}

    @fastapi_app.delete("/api/session")
    async def logout() -> JSONResponse:
        return outcome_response(await get_client(fastapi_app).logout())

    @fastapi_app.post("/api/users")
    async def register(details: dict[str, Any] = Body(...)) -> JSONResponse:
        outcome = await get_client(fastapi_app).register(details)
        return outcome_response(outcome, success_status=201)

    @fastapi_app.get("/api/movies")
    async def list_movies(refresh: bool = False) -> dict[str, Any]:
        client = get_client(fastapi_app)
        movies = await _read(client.movies(refresh=refresh))
        return {"movies": movie_listing(client, movies)}

    @fastapi_app.get("/api/movies/{title}")
    async def movie_details(title: str) -> dict[str, Any]:
        client = get_client(fastapi_app)
        movie = await _read(client.movie(title))
        entry = serialise(movie)
        entry["isFavorite"] = client.is_favorite(movie.id)
        return entry

    @fastapi_app.get("/api/directors/{name}")
    async def director_details(name: str) -> dict[str, Any]:
        return serialise(await _read(get_client(fastapi_app).director(name)))

    @fastapi_app.get("/api/genres/{name}")
    async def genre_details(name: str) -> dict[str, Any]:
        return serialise(await _read(get_client(fastapi_app).genre(name)))

    @fastapi_app.get("/api/favorites")
    async def favorites() -> dict[str, Any]:
        client = get_client(fastapi_app)
        user = client.current_user
        if user is None:
            raise HTTPException(status_code=401, detail=AuthError.default_message)
        if not client.catalog.is_loaded:
            await _read(client.movies())
        return {
            "movies": movie_listing(client, client.favorites_of()),
            "stale": client.catalog.stale_favorites(user),
        }

    @fastapi_app.post("/api/favorites/{movie_id}/toggle")
    async def toggle_favorite(movie_id: str) -> JSONResponse:
        outcome = await get_client(fastapi_app).toggle_favorite(movie_id)
        return outcome_response(outcome)

    @fastapi_app.get("/api/profile")
    async def profile(refresh: bool = False) -> JSONResponse:
        client = get_client(fastapi_app)
        if refresh:
            return outcome_response(await client.refresh_user())
        user = client.current_user
        if user is None:
            raise HTTPException(status_code=401, detail=AuthError.default_message)
        return JSONResponse({"user": user.to_wire()})

    @fastapi_app.put("/api/profile")
    async def update_profile(edit: ProfileEdit) -> JSONResponse:
        client = get_client(fastapi_app)
        try:
            draft = client.begin_edit()
        except AuthError as exc:
            raise HTTPException(status_code=401, detail=exc.message) from exc
        edit.apply_to(draft.live)
        return outcome_response(await client.save_profile(draft))

    @fastapi_app.delete("/api/profile")
    async def delete_profile() -> JSONResponse:
        return outcome_response(await get_client(fastapi_app).delete_account())


app = create_app()


if __name__ == "__main__":  # pragma: no cover - manual execution
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=default_settings.server_host,
        port=default_settings.server_port,
        reload=default_settings.environment == "development",
    )
