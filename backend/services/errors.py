"""
Exception types shared by the ingestion pipeline and its collaborators.
"""
from typing import Optional


class NewsTrackerError(Exception):
    """Base class for all tracker errors"""


class ConfigurationError(NewsTrackerError):
    """Required credentials or settings are missing. Not retried."""


class GeneratorError(NewsTrackerError):
    """The news generator call failed (transport error or non-success status)."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class MalformedResponse(NewsTrackerError):
    """Generator replied, but the content is not the expected JSON object."""


class PersistenceError(NewsTrackerError):
    """A document store write failed."""
