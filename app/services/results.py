"""Terminal outcomes of reconciliation operations and their delivery."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Union

from ..errors import FlixSyncError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Success:
    """The operation completed and local state reflects it."""

    message: str
    payload: Any = None
    duration_ms: int = 2_000

    ok = True


@dataclass(frozen=True, slots=True)
class Failure:
    """The operation failed; ``error`` carries the typed cause."""

    reason: str
    error: FlixSyncError | None = None
    duration_ms: int = 2_000

    ok = False

    @property
    def message(self) -> str:
        return self.reason


Outcome = Union[Success, Failure]
Listener = Callable[[Outcome], None]


class ResultChannel:
    """Single-shot feedback surface consumed by the UI layer.

    Each published outcome is handed to every subscriber and kept as the
    pending outcome until ``take`` consumes it. Publishing again replaces
    any unconsumed outcome; nothing is buffered beyond the latest one.
    """

    def __init__(self) -> None:
        self._listeners: list[Listener] = []
        self._pending: Outcome | None = None

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def publish(self, outcome: Outcome) -> Outcome:
        self._pending = outcome
        for listener in list(self._listeners):
            try:
                listener(outcome)
            except Exception:  # pragma: no cover - listener bugs must not break callers
                logger.exception("Result listener failed for %r", outcome)
        return outcome

    def take(self) -> Outcome | None:
        """Return the pending outcome once, then forget it."""

        outcome, self._pending = self._pending, None
        return outcome

    @property
    def pending(self) -> Outcome | None:
        return self._pending
