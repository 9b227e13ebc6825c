"""Error taxonomy surfaced to callers of playshelf operations."""

from __future__ import annotations

from typing import Any


class PlayshelfError(Exception):
    """Base class for errors reported to the caller.

    ``status`` is the HTTP status class a web front-end should answer with;
    the CLI derives its exit code from it.
    """

    status = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message}


class InvalidInput(PlayshelfError):
    status = 400


class Unauthenticated(PlayshelfError):
    status = 401


class NotFound(PlayshelfError):
    status = 404


class SyncFailed(PlayshelfError):
    """The remote library could not be fetched; nothing was reconciled."""

    status = 500


class ConfigurationError(PlayshelfError):
    status = 500
