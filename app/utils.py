"""Utility helpers for the flixsync client."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Mapping


def pick_field(payload: Mapping[str, Any], *names: str) -> Any:
    """Return the first present, non-null value among ``names``."""

    for name in names:
        value = payload.get(name)
        if value is not None:
            return value
    return None


def parse_birthday(value: Any) -> date | None:
    """Normalise the service's birthday representations to a ``date``.

    The catalog service stores birthdays as full ISO datetimes
    (``1990-05-01T00:00:00.000Z``) but accepts plain dates on write.
    """

    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise ValueError("Birthday must be an ISO date string")
    text = value.strip()
    if not text:
        return None
    return date.fromisoformat(text[:10])


def is_blank(value: str | None) -> bool:
    return value is None or not value.strip()
