"""Exception hierarchy for camrelay."""

from __future__ import annotations


class RelayError(Exception):
    """Base class for relay errors."""


class SettingError(RelayError, ValueError):
    """A configuration value failed validation.

    Attributes:
        name: Setting that was rejected (e.g. ``"fps"``).
        value: The rejected value as received.
    """

    def __init__(self, name: str, value: object, message: str) -> None:
        super().__init__(message)
        self.name = name
        self.value = value


class CaptureError(RelayError):
    """A capture source failed to read, encode or configure frames."""


class RelayNotRunningError(RelayError):
    """The relay server did not start or is no longer running."""
