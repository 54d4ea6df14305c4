"""Pytest configuration and test helpers."""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, Callable

import httpx
import pytest


# Ensure the application package is importable when running tests without an
# editable install. This mirrors the expected runtime layout where ``app`` sits
# at the project root.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.config import Settings  # noqa: E402
from app.services.movie_api import MovieApiClient  # noqa: E402
from app.services.results import ResultChannel  # noqa: E402
from app.services.session_store import SessionStore  # noqa: E402
from app.storage import MemoryKeyValueStore  # noqa: E402

TOKEN = "token-123"


def movie_payload(movie_id: str, title: str) -> dict[str, Any]:
    return {
        "_id": movie_id,
        "Title": title,
        "Description": f"{title} description",
        "Director": {"Name": "Jane Doe", "Bio": "Director bio"},
        "Genre": {"Name": "Drama", "Description": "Serious stories"},
        "ImagePath": f"https://img.example.com/{movie_id}.jpg",
        "Featured": False,
    }


class FakeMovieService:
    """In-memory stand-in for the remote catalog service."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.token = TOKEN
        self.users: dict[str, dict[str, Any]] = {
            "al": {
                "_id": "u1",
                "Username": "al",
                "Email": "a@x.com",
                "Birthday": "1990-05-01T00:00:00.000Z",
                "FavoriteMovies": ["m1", "m2"],
                "Password": "$2b$10$hashed",
            }
        }
        self.passwords = {"al": "secret"}
        self.movies = [
            movie_payload("m1", "Arrival"),
            movie_payload("m2", "Brazil"),
            movie_payload("m3", "Casablanca"),
            movie_payload("m4", "Dune"),
        ]
        self._failures: dict[tuple[str, str], httpx.Response | Exception] = {}

    def fail(
        self,
        method: str,
        path: str,
        status: int = 500,
        *,
        json_body: Any = None,
        error: Exception | None = None,
    ) -> None:
        self._failures[(method, path)] = error or httpx.Response(
            status, json=json_body if json_body is not None else {"message": "Server exploded"}
        )

    def respond(self, method: str, path: str, status: int, *, json_body: Any) -> None:
        """Answer ``method path`` with a canned response instead of the simulation."""

        self.fail(method, path, status, json_body=json_body)

    def calls(self, method: str | None = None) -> list[httpx.Request]:
        return [
            request
            for request in self.requests
            if method is None or request.method == method
        ]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        method, path = request.method, request.url.path
        failure = self._failures.get((method, path))
        if isinstance(failure, Exception):
            raise failure
        if failure is not None:
            return failure

        if method == "POST" and path == "/login":
            return self._login(request)
        if method == "POST" and path == "/users":
            return self._register(request)

        if request.headers.get("Authorization") != f"Bearer {self.token}":
            return httpx.Response(401, text="Unauthorized")

        parts = [part for part in path.split("/") if part]
        if parts == ["movies"]:
            return httpx.Response(200, json=self.movies)
        if len(parts) == 2 and parts[0] == "movies":
            for movie in self.movies:
                if movie["Title"] == parts[1]:
                    return httpx.Response(200, json=movie)
            return httpx.Response(404, json={"message": "Movie not found"})
        if len(parts) == 3 and parts[:2] == ["movies", "directors"]:
            return httpx.Response(200, json={"Name": parts[2], "Bio": "Bio"})
        if len(parts) == 3 and parts[:2] == ["movies", "genre"]:
            return httpx.Response(200, json={"Name": parts[2], "Description": "Genre"})
        if parts and parts[0] == "users" and len(parts) >= 2:
            user = self.users.get(parts[1])
            if user is None:
                return httpx.Response(404, json={"message": "User not found"})
            if len(parts) == 4 and parts[2] == "movies":
                return self._favorite(method, user, parts[3])
            if method == "GET":
                return httpx.Response(200, json=user)
            if method == "PUT":
                return self._update(parts[1], request)
            if method == "DELETE":
                del self.users[parts[1]]
                return httpx.Response(200, text=f"{parts[1]} was deleted.")
        return httpx.Response(404, json={"message": "Not found"})

    def _login(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        username = body.get("Username")
        if self.passwords.get(username) != body.get("Password"):
            return httpx.Response(400, json={"message": "Incorrect username or password."})
        return httpx.Response(200, json={"user": self.users[username], "token": self.token})

    def _register(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        username = body.get("Username")
        if username in self.users:
            return httpx.Response(400, text=f"{username} already exists")
        user = {**body, "_id": f"u{len(self.users) + 1}", "FavoriteMovies": []}
        self.users[username] = user
        self.passwords[username] = body.get("Password")
        return httpx.Response(201, json=user)

    def _favorite(self, method: str, user: dict[str, Any], movie_id: str) -> httpx.Response:
        favorites = list(user["FavoriteMovies"])
        if method == "POST" and movie_id not in favorites:
            favorites.append(movie_id)
        elif method == "DELETE":
            favorites = [favorite for favorite in favorites if favorite != movie_id]
        user["FavoriteMovies"] = favorites
        return httpx.Response(200, json=user)

    def _update(self, username: str, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        user = {**self.users.pop(username), **body}
        if "Password" in body:
            self.passwords[user["Username"]] = body["Password"]
            user["Password"] = "$2b$10$rehashed"
        self.users[user["Username"]] = user
        return httpx.Response(200, json=user)


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO tests to run on asyncio without requiring trio."""

    return "asyncio"


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, SESSION_BACKEND="memory")  # type: ignore[call-arg]


@pytest.fixture
def service() -> FakeMovieService:
    return FakeMovieService()


@pytest.fixture
def http_client(service: FakeMovieService) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        transport=httpx.MockTransport(service), base_url="https://api.example.com"
    )


@pytest.fixture
def api(settings: Settings, http_client: httpx.AsyncClient) -> MovieApiClient:
    return MovieApiClient(settings, http_client)


@pytest.fixture
def store() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def sessions(store: MemoryKeyValueStore) -> SessionStore:
    return SessionStore(store)


@pytest.fixture
def results() -> ResultChannel:
    return ResultChannel()


@pytest.fixture
def user_factory() -> Callable[..., Any]:
    from app.models import User

    def _build(**overrides: Any) -> User:
        data: dict[str, Any] = {
            "_id": "u1",
            "Username": "al",
            "Email": "a@x.com",
            "Birthday": "1990-05-01",
            "FavoriteMovies": ["m1", "m2"],
        }
        data.update(overrides)
        return User.model_validate(data)

    return _build
