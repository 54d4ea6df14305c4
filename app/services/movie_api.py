"""Utilities for communicating with the movie catalog API."""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import httpx
from pydantic import ValidationError as PydanticValidationError

from ..config import Settings
from ..errors import (
    AuthError,
    AuthorizationError,
    FlixSyncError,
    TransportError,
    ValidationError,
)
from ..models import Director, Genre, LoginResult, Movie, User, UserRegistration

logger = logging.getLogger(__name__)

UNEXPECTED_RESPONSE = "Unexpected response from the movie service"


class MovieApiClient:
    """Thin wrapper around the movie catalog HTTP API.

    Every response shape quirk of the service is normalised here so the
    reconciliation layer only ever sees the canonical models.
    """

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient):
        self._settings = settings
        self._client = http_client

    def _headers(self, token: str | None = None) -> dict[str, str]:
        headers = {"User-Agent": f"{self._settings.app_name} (flixsync)"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def login(self, username: str, password: str) -> LoginResult:
        """Exchange credentials for a user record and bearer token."""

        data = await self._request(
            "POST",
            "/login",
            json={"Username": username, "Password": password},
            rejected=AuthError,
            invalid=AuthError,
        )
        if not isinstance(data, dict):
            raise TransportError(UNEXPECTED_RESPONSE)
        try:
            return LoginResult.from_payload(data)
        except (ValueError, PydanticValidationError) as exc:
            logger.warning("Malformed login response: %s", exc)
            raise TransportError(UNEXPECTED_RESPONSE) from exc

    async def register(self, details: UserRegistration) -> User:
        data = await self._request(
            "POST", "/users", json=details.to_wire(), invalid=ValidationError
        )
        return self._require_user(data)

    async def list_movies(self, token: str | None) -> list[Movie]:
        """Fetch the full catalog, skipping entries that fail validation."""

        data = await self._request("GET", "/movies", token=token)
        if not isinstance(data, list):
            logger.warning("Unexpected movie list structure: %s", type(data).__name__)
            raise TransportError(UNEXPECTED_RESPONSE)
        movies: list[Movie] = []
        for entry in data:
            if not isinstance(entry, dict):
                continue
            try:
                movies.append(Movie.model_validate(entry))
            except PydanticValidationError as exc:
                logger.warning(
                    "Skipping malformed movie %s: %s",
                    entry.get("_id") or entry.get("Title"),
                    exc.error_count(),
                )
        return movies

    async def get_movie(self, title: str, token: str | None) -> Movie:
        data = await self._request("GET", f"/movies/{quote(title, safe='')}", token=token)
        return self._validate(Movie, data)

    async def get_director(self, name: str, token: str | None) -> Director:
        data = await self._request(
            "GET", f"/movies/directors/{quote(name, safe='')}", token=token
        )
        return self._validate(Director, data)

    async def get_genre(self, name: str, token: str | None) -> Genre:
        data = await self._request(
            "GET", f"/movies/genre/{quote(name, safe='')}", token=token
        )
        return self._validate(Genre, data)

    async def get_user(self, username: str, token: str | None) -> User:
        data = await self._request("GET", self._user_path(username), token=token)
        return self._require_user(data)

    async def add_favorite(
        self, username: str, movie_id: str, token: str | None
    ) -> User | None:
        data = await self._request(
            "POST", self._favorite_path(username, movie_id), token=token
        )
        return self._optional_user(data)

    async def remove_favorite(
        self, username: str, movie_id: str, token: str | None
    ) -> User | None:
        data = await self._request(
            "DELETE", self._favorite_path(username, movie_id), token=token
        )
        return self._optional_user(data)

    async def update_user(
        self, username: str, payload: dict[str, Any], token: str | None
    ) -> User | None:
        """Send a profile update addressed by the user's current username."""

        data = await self._request(
            "PUT",
            self._user_path(username),
            token=token,
            json=payload,
            invalid=ValidationError,
        )
        return self._optional_user(data)

    async def delete_user(self, username: str, token: str | None) -> dict[str, str]:
        data = await self._request("DELETE", self._user_path(username), token=token)
        if isinstance(data, dict) and isinstance(data.get("message"), str):
            return {"message": data["message"]}
        if isinstance(data, str) and data.strip():
            return {"message": data.strip()}
        return {"message": f"{username} was deleted."}

    async def _request(
        self,
        method: str,
        path: str,
        *,
        token: str | None = None,
        json: Any = None,
        rejected: type[FlixSyncError] = AuthorizationError,
        invalid: type[FlixSyncError] | None = None,
    ) -> Any:
        try:
            response = await self._client.request(
                method, path, headers=self._headers(token), json=json
            )
        except httpx.HTTPError as exc:
            logger.warning("Request %s %s failed: %s", method, path, exc)
            raise TransportError(
                f"Could not reach the movie service ({exc.__class__.__name__})"
            ) from exc

        if response.status_code >= 400:
            message = self._error_message(response)
            logger.warning(
                "Movie service rejected %s %s with %s: %s",
                method,
                path,
                response.status_code,
                message,
            )
            if response.status_code in {401, 403}:
                raise rejected(message)
            if invalid is not None and response.status_code in {400, 422}:
                raise invalid(message)
            raise TransportError(message, response.status_code)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            # Some endpoints answer with plain text confirmations.
            return response.text

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            for key in ("message", "error"):
                value = body.get(key)
                if isinstance(value, str) and value.strip():
                    return value.strip()
            errors = body.get("errors")
            if isinstance(errors, list):
                messages = [
                    str(entry.get("msg"))
                    for entry in errors
                    if isinstance(entry, dict) and entry.get("msg")
                ]
                if messages:
                    return "; ".join(messages)
        text = response.text.strip()
        if text and body is None:
            return text
        return response.reason_phrase or f"HTTP {response.status_code}"

    @staticmethod
    def _user_path(username: str) -> str:
        return f"/users/{quote(username, safe='')}"

    @classmethod
    def _favorite_path(cls, username: str, movie_id: str) -> str:
        return f"{cls._user_path(username)}/movies/{quote(movie_id, safe='')}"

    @staticmethod
    def _validate(model: Any, data: Any) -> Any:
        if not isinstance(data, dict):
            raise TransportError(UNEXPECTED_RESPONSE)
        try:
            return model.model_validate(data)
        except PydanticValidationError as exc:
            logger.warning("Malformed %s payload: %s", model.__name__, exc)
            raise TransportError(UNEXPECTED_RESPONSE) from exc

    @classmethod
    def _require_user(cls, data: Any) -> User:
        user: User = cls._validate(User, data)
        return user.without_password()

    @staticmethod
    def _optional_user(data: Any) -> User | None:
        if not isinstance(data, dict):
            return None
        try:
            return User.model_validate(data).without_password()
        except PydanticValidationError:
            logger.debug("Response body is not a user record, ignoring")
            return None
