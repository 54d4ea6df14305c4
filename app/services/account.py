"""Session lifecycle: login, registration, logout and account removal."""

from __future__ import annotations

import logging
from typing import Any, Mapping

from pydantic import ValidationError as PydanticValidationError

from ..errors import AuthError, AuthorizationError, FlixSyncError, ValidationError
from ..models import UserRegistration
from ..utils import is_blank
from .movie_api import MovieApiClient
from .results import Failure, Outcome, ResultChannel, Success
from .session_store import SessionStore

logger = logging.getLogger(__name__)


class AccountService:
    """Create, refresh and destroy the session through the catalog service."""

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

    async def login(self, username: str, password: str) -> Outcome:
        if is_blank(username) or is_blank(password):
            return self._fail(ValidationError("Username and password are required."))
        try:
            result = await self._api.login(username.strip(), password)
        except AuthError as exc:
            logger.info("Login rejected for %s", username)
            return self._fail(exc, prefix="Login failed: ")
        except FlixSyncError as exc:
            return self._fail(exc, prefix="Login failed. Please try again later: ")

        try:
            session = await self._sessions.save(result.user, result.token)
        except Exception:
            logger.exception("Could not persist the session for %s", username)
            return self._fail(FlixSyncError("Could not save the session locally."))
        logger.info("Logged in as %s", session.user.username)
        return self._succeed("Login successful!", session.user)

    async def register(self, details: Mapping[str, Any] | UserRegistration) -> Outcome:
        """Create an account; the caller logs in separately afterwards."""

        try:
            registration = (
                details
                if isinstance(details, UserRegistration)
                else UserRegistration.model_validate(details)
            )
        except PydanticValidationError as exc:
            fields = ", ".join(
                str(error["loc"][-1]) for error in exc.errors() if error.get("loc")
            )
            return self._fail(ValidationError(f"Invalid registration fields: {fields}"))
        if is_blank(registration.username) or is_blank(registration.password):
            return self._fail(ValidationError("Username and password are required."))

        try:
            user = await self._api.register(registration)
        except FlixSyncError as exc:
            logger.info("Registration rejected for %s: %s", registration.username, exc.message)
            return self._fail(exc, prefix="Registration failed: ")
        logger.info("Registered %s", user.username)
        return self._succeed("User registration successful!", user)

    async def logout(self) -> Outcome:
        username = self._sessions.current_username()
        try:
            await self._sessions.clear()
        except Exception:
            logger.exception("Could not remove the persisted session")
            return self._fail(FlixSyncError("Could not clear the session locally."))
        if username:
            logger.info("Logged out %s", username)
        return self._succeed("Logged out", None)

    async def refresh_user(self) -> Outcome:
        """Replace the session user with the service's current record."""

        session = self._sessions.current
        if session is None:
            return self._fail(AuthError())
        username, token = session.user.username, session.token
        try:
            user = await self._api.get_user(username, token)
        except AuthorizationError as exc:
            await self._sessions.invalidate(username, token)
            return self._fail(exc)
        except FlixSyncError as exc:
            logger.warning("Could not refresh %s: %s", username, exc.message)
            return self._fail(exc)

        current = self._sessions.current
        if current is None or current.user.username != username:
            logger.info("Session changed while refreshing %s, discarding result", username)
            return self._succeed("User refreshed", user)
        try:
            session = await self._sessions.save(user, current.token)
        except Exception:
            logger.exception("Could not persist the refreshed user %s", username)
            return self._fail(FlixSyncError("Could not save the session locally."))
        return self._succeed("User refreshed", session.user)

    async def delete_account(self) -> Outcome:
        session = self._sessions.current
        if session is None:
            return self._fail(AuthError())
        username, token = session.user.username, session.token
        try:
            response = await self._api.delete_user(username, token)
        except AuthorizationError as exc:
            await self._sessions.invalidate(username, token)
            return self._fail(exc)
        except FlixSyncError as exc:
            logger.warning("Could not delete %s: %s", username, exc.message)
            return self._fail(exc, prefix="Could not delete account: ")

        current_username = self._sessions.current_username()
        if current_username is not None and current_username != username:
            logger.info("Session changed while deleting %s, keeping it", username)
        else:
            try:
                await self._sessions.clear()
            except Exception:
                logger.exception("Could not remove the persisted session for %s", username)
                return self._fail(
                    FlixSyncError("Account deleted but the session could not be cleared.")
                )
        logger.info("Deleted account %s", username)
        return self._succeed(response["message"], None)

    def _succeed(self, message: str, payload: Any) -> Outcome:
        return self._results.publish(
            Success(message, payload=payload, duration_ms=self._duration_ms)
        )

    def _fail(self, error: FlixSyncError, *, prefix: str = "") -> Outcome:
        return self._results.publish(
            Failure(f"{prefix}{error.message}", error=error, duration_ms=self._duration_ms)
        )
