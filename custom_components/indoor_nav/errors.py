"""
Domain exceptions for the indoor navigation core.

These errors carry no Home Assistant types; the integration layer converts
them at its edge.
"""
from __future__ import annotations

import enum


class IndoorNavError(Exception):
    """Base exception for indoor navigation operations."""


class ValidationError(IndoorNavError):
    """Raised when a location id is not part of the catalog."""

    def __init__(self, location_id: str, what: str = "location"):
        self.location_id = location_id
        super().__init__(f"Invalid {what}: {location_id}")


class TransitionRejected(IndoorNavError):
    """Raised when a checkpoint jump is physically implausible."""

    def __init__(self, from_location_id: str, to_location_id: str):
        self.from_location_id = from_location_id
        self.to_location_id = to_location_id
        super().__init__(
            "Invalid location transition detected "
            f"({from_location_id} -> {to_location_id}). Please scan a valid tag."
        )


class NoRouteFound(IndoorNavError):
    """Raised when no path connects two locations."""

    def __init__(self, origin: str, destination: str, reason: str | None = None):
        self.origin = origin
        self.destination = destination
        self.reason = reason
        msg = f"No route found from {origin} to {destination}"
        if reason:
            msg += f". {reason}"
        super().__init__(msg)


class DecodeError(IndoorNavError):
    """Raised when tag payload bytes cannot be decoded."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Failed to decode tag payload: {reason}")


class PayloadError(IndoorNavError):
    """Raised when a payload cannot be represented on a tag."""


class CatalogError(IndoorNavError):
    """Raised when a location catalog is malformed."""


class ReaderErrorKind(enum.StrEnum):
    """Classification of tag reader failures."""

    HARDWARE_UNAVAILABLE = "hardware_unavailable"
    PERMISSION_DENIED = "permission_denied"
    READER_DISABLED = "reader_disabled"
    SCAN_TIMEOUT = "scan_timeout"
    TAG_READ_ERROR = "tag_read_error"
    UNKNOWN = "unknown"


class ReaderError(IndoorNavError):
    """Raised or reported by a tag reader when scanning fails."""

    def __init__(self, message: str, kind: ReaderErrorKind = ReaderErrorKind.UNKNOWN):
        self.kind = kind
        super().__init__(message)
