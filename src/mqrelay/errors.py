"""Exception hierarchy for the relay.

Every error raised by :mod:`mqrelay` derives from :class:`RelayError`, so a
caller that does not care about the specific failure can catch just that.
"""

from __future__ import annotations

from typing import Optional


class RelayError(Exception):
    """Base class for all relay errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} ({self.details})"
        return self.message


class ConfigurationError(RelayError):
    """A required setting is missing or a supplied value is invalid."""


class ConnectError(RelayError):
    """The broker session could not be established. Fatal at startup."""


class ConnectionLostError(RelayError):
    """An established broker session dropped unexpectedly."""


class PublishError(RelayError):
    """The broker rejected a publish, or the session was not available."""


class ValidationError(RelayError):
    """Caller input was rejected before it reached the broker."""


class DecodeError(RelayError):
    """An inbound payload could not be decoded into text."""
