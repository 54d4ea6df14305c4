"""Error taxonomy shared by the transport boundary and the reconcilers."""

from __future__ import annotations


class FlixSyncError(Exception):
    """Base class for every failure surfaced by the client core."""

    default_message = "Something bad happened: please try again later."

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class AuthError(FlixSyncError):
    """Credentials were rejected or no session exists for a write."""

    default_message = "You need to log in first."


class AuthorizationError(FlixSyncError):
    """The stored credential was rejected by an authenticated call."""

    default_message = "Your session has expired, please log in again."


class ValidationError(FlixSyncError):
    """Malformed or missing required fields."""

    default_message = "Some of the submitted fields are invalid."


class TransportError(FlixSyncError):
    """Network or server failure talking to the catalog service."""

    def __init__(self, message: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ConcurrentOperationError(FlixSyncError):
    """A toggle for the same movie is already in flight."""

    default_message = "Toggle already in progress."
