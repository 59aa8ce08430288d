"""Exception taxonomy for the load harness.

Only ``ConfigurationError`` and ``ThresholdViolation`` ever escape to the
process entry point. ``TransportError`` and ``ResponseParseError`` are raised
close to the HTTP layer and absorbed before they can end a worker loop.

All exceptions accept a human-readable message. ``str(exception)`` returns the
message unchanged.
"""

from __future__ import annotations


class HarnessError(Exception):
    """Base exception for load harness errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)


class ConfigurationError(HarnessError, ValueError):
    """Raised when the run configuration is invalid or cannot be loaded."""


class TransportError(HarnessError):
    """Raised when a request fails before a response is received."""


class ResponseParseError(HarnessError):
    """Raised when a response payload is missing, malformed or of the wrong shape."""


class ThresholdViolation(HarnessError):
    """Raised at run end when one or more thresholds did not hold."""

    def __init__(self, message: str, failed: list | None = None) -> None:
        super().__init__(message)
        self.failed = failed or []
