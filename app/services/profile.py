"""Diff-based profile editing reconciled into the session."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from ..errors import AuthError, AuthorizationError, FlixSyncError, ValidationError
from ..models import User
from ..utils import is_blank
from .movie_api import MovieApiClient
from .results import Failure, Outcome, ResultChannel, Success
from .session_store import SessionStore

logger = logging.getLogger(__name__)

NO_CHANGES_MESSAGE = "No changes to save"
UPDATED_MESSAGE = "Update successful"


@dataclass
class ProfileDraft:
    """The snapshot an edit started from alongside the editable copy."""

    original: User
    live: User


class ProfileEditor:
    """Build partial updates from edited profile fields and reconcile the result."""

    def __init__(
        self,
        api: MovieApiClient,
        sessions: SessionStore,
        results: ResultChannel,
        *,
        duration_ms: int = 5_000,
    ):
        self._api = api
        self._sessions = sessions
        self._results = results
        self._duration_ms = duration_ms

    @staticmethod
    def begin_edit(user: User) -> ProfileDraft:
        original = user.without_password()
        return ProfileDraft(original=original, live=original.model_copy(deep=True))

    @staticmethod
    def has_changes(edited: User, original: User) -> bool:
        if not is_blank(edited.password):
            return True
        return (
            edited.username != original.username
            or edited.email != original.email
            or edited.birthday != original.birthday
        )

    @staticmethod
    def build_payload(edited: User) -> dict[str, Any]:
        """Return the outbound update body.

        A blank password is never sent so the stored one is not overwritten
        with an empty value.
        """

        payload: dict[str, Any] = {
            "Username": edited.username,
            "Email": edited.email,
            "Birthday": edited.birthday.isoformat() if edited.birthday else None,
            "FavoriteMovies": list(edited.favorite_movie_ids),
        }
        if not is_blank(edited.password):
            payload["Password"] = edited.password
        return payload

    async def save(self, draft: ProfileDraft) -> Outcome:
        if not self.has_changes(draft.live, draft.original):
            return self._results.publish(
                Success(NO_CHANGES_MESSAGE, payload=draft.live, duration_ms=self._duration_ms)
            )
        if is_blank(draft.live.username) or is_blank(draft.live.email):
            return self._fail(ValidationError("Username and email are required."))

        session = self._sessions.current
        if session is None:
            return self._fail(AuthError())

        # The service addresses users by username, so a rename must target
        # the name the account currently has.
        target = draft.original.username
        token = session.token
        try:
            returned = await self._api.update_user(
                target, self.build_payload(draft.live), token
            )
        except AuthorizationError as exc:
            logger.warning("Credential rejected while updating %s", target)
            await self._sessions.invalidate(session.user.username, token)
            return self._fail(exc)
        except FlixSyncError as exc:
            logger.warning("Profile update for %s failed: %s", target, exc.message)
            return self._fail(exc, prefix="Update failed: ")

        merged = self._merge(draft.live, returned)
        current = self._sessions.current
        if current is not None and current.user.username == target:
            try:
                # A re-login mid-flight may have issued a fresh credential.
                await self._sessions.save(merged, current.token)
            except Exception:
                logger.exception("Could not persist the updated profile for %s", target)
                return self._fail(FlixSyncError("Could not save the profile locally."))
        else:
            logger.info("Session changed during profile update of %s, not persisting", target)

        draft.original = merged
        draft.live = merged.model_copy(deep=True)
        logger.info("Profile updated for %s", merged.username)
        return self._results.publish(
            Success(UPDATED_MESSAGE, payload=merged, duration_ms=self._duration_ms)
        )

    @staticmethod
    def _merge(edited: User, returned: User | None) -> User:
        """Overlay the fields the service sent back onto the edited copy."""

        merged = edited.without_password()
        if returned is None:
            return merged
        update = {
            name: getattr(returned, name)
            for name in returned.model_fields_set
            if name != "password"
        }
        return merged.model_copy(update=update, deep=True)

    def _fail(self, error: FlixSyncError, *, prefix: str = "") -> Outcome:
        return self._results.publish(
            Failure(f"{prefix}{error.message}", error=error, duration_ms=self._duration_ms)
        )
