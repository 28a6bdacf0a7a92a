"""
Error taxonomy shared by the sync worker and its collaborators.
"""
from __future__ import annotations

from typing import Optional

TOO_MANY_REQUESTS = 429


class TressError(Exception):
    """Base class for every error raised by the feed pipeline."""


class TransportError(TressError):
    """Network-level failure (connection, timeout, HTTP error status)."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        """Connection failures, timeouts, 5xx and 429 may succeed later; other 4xx will not."""
        if self.status_code is None:
            return True
        return self.status_code >= 500 or self.status_code == TOO_MANY_REQUESTS


class ParseError(TressError):
    """Neither the Atom nor the RSS interpretation of a document succeeded."""

    def __init__(self, atom_error: Exception, rss_error: Exception) -> None:
        super().__init__(f"not a feed document (atom: {atom_error}; rss: {rss_error})")
        self.atom_error = atom_error
        self.rss_error = rss_error


class ConflictError(TressError):
    """A unique constraint rejected the row (expected dedup signal)."""


class PersistenceError(TressError):
    """Any storage failure other than a unique-key conflict."""


class DeliveryError(TressError):
    """Push service rejected a message with something other than 410 Gone."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
