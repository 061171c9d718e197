"""
Error taxonomy shared across the guide.

Only permission denial and invalid input are meant to reach the user as explicit
signals; everything else is recovered locally by the component that hit it
(catalog fallback, transient location errors, model passthrough).
"""

from __future__ import annotations

from enum import Enum


class LocationErrorKind(str, Enum):
    PERMISSION_DENIED = "permission_denied"
    POSITION_UNAVAILABLE = "position_unavailable"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"

    @classmethod
    def from_code(cls, code: int | None) -> "LocationErrorKind":
        """Map W3C geolocation error codes (1, 2, 3) onto the taxonomy."""
        return {
            1: cls.PERMISSION_DENIED,
            2: cls.POSITION_UNAVAILABLE,
            3: cls.TIMEOUT,
        }.get(code, cls.UNKNOWN)

    @property
    def is_fatal(self) -> bool:
        return self is LocationErrorKind.PERMISSION_DENIED


_LOCATION_MESSAGES = {
    LocationErrorKind.PERMISSION_DENIED: "Location access denied by user",
    LocationErrorKind.POSITION_UNAVAILABLE: "Location information unavailable",
    LocationErrorKind.TIMEOUT: "Location request timed out",
    LocationErrorKind.UNKNOWN: "An unknown error occurred while retrieving location",
}


class LocationError(Exception):
    """A positioning failure, delivered to tracker subscribers as a notification."""

    def __init__(self, kind: LocationErrorKind, message: str | None = None):
        self.kind = kind
        super().__init__(message or _LOCATION_MESSAGES[kind])


class ValidationError(ValueError):
    """Coordinates (or other raw input) outside what the guide accepts."""


class CatalogIngestionError(Exception):
    """The attraction source returned something the catalog cannot use."""


class ModelInvocationError(Exception):
    """The language-model call failed; `reason` is a short machine-readable tag."""

    def __init__(self, reason: str, message: str | None = None):
        self.reason = reason
        super().__init__(message or reason)


class ConversationBusyError(RuntimeError):
    """A second utterance was submitted while a model call is still in flight."""
