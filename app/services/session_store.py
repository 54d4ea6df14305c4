"""Single owner of the persisted session."""

from __future__ import annotations

import json
import logging

from pydantic import ValidationError as PydanticValidationError

from ..models import Session, User
from ..storage import KeyValueStore

logger = logging.getLogger(__name__)


class SessionStore:
    """Holds the current user and credential, backed by a key-value store.

    User and token are written together as one JSON record under a single
    key so other components never observe one without the other. Callers
    receive snapshots and write back whole replacement users.
    """

    def __init__(self, store: KeyValueStore, *, key: str = "session"):
        self._store = store
        self._key = key
        self._session: Session | None = None

    @property
    def current(self) -> Session | None:
        return self._session

    def current_username(self) -> str | None:
        if self._session is None:
            return None
        return self._session.user.username

    def current_user(self) -> User | None:
        if self._session is None:
            return None
        return self._session.user.model_copy(deep=True)

    async def load(self) -> Session | None:
        """Return the persisted session, treating anything unreadable as absent."""

        try:
            raw = await self._store.get(self._key)
        except Exception:
            logger.exception("Could not read the persisted session")
            raw = None
        self._session = self._parse(raw)
        return self._session

    async def save(self, user: User, token: str | None) -> Session:
        session = Session(user=user.without_password(), token=token)
        await self._store.set(self._key, json.dumps(session.to_storage()))
        self._session = session
        return session

    async def replace_user(self, user: User) -> Session:
        """Swap the user wholesale while keeping the current credential."""

        token = self._session.token if self._session is not None else None
        return await self.save(user, token)

    async def clear(self) -> None:
        self._session = None
        await self._store.delete(self._key)

    def owns(self, username: str, token: str | None) -> bool:
        """True if the current session still belongs to ``username``/``token``."""

        session = self._session
        return (
            session is not None
            and session.user.username == username
            and session.token == token
        )

    async def invalidate(self, username: str, token: str | None) -> bool:
        """Clear the session only if it is the one a rejected call was made with."""

        if not self.owns(username, token):
            logger.info("Ignoring stale credential rejection for %s", username)
            return False
        await self.clear()
        return True

    def _parse(self, raw: str | None) -> Session | None:
        if not raw:
            return None
        try:
            data = json.loads(raw)
        except ValueError:
            logger.warning("Discarding persisted session that is not valid JSON")
            return None
        if not isinstance(data, dict):
            logger.warning("Discarding persisted session with unexpected structure")
            return None
        try:
            return Session.model_validate(data)
        except PydanticValidationError as exc:
            logger.warning("Discarding invalid persisted session: %s", exc.error_count())
            return None
