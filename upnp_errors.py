"""
Errors raised by the DLNA cast client.
Caller-initiated operations raise these; background activity logs them instead.
"""
from __future__ import annotations


class CastError(Exception):
    """Base class for every cast failure; str(err) is shown to the user."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ProbeFailed(CastError):
    """Device description could not be fetched."""


class InvalidDescription(CastError):
    """Device description was fetched but is not a usable UPnP document."""


class ServiceResolutionFailed(CastError):
    """Service list for a device could not be resolved on connect."""


class NotConnected(CastError):
    """A command was sent to a device without resolved services."""


class SoapRequestFailed(CastError):
    def __init__(self, status: int | None, detail: str = "") -> None:
        message = f"SOAP request failed: {status}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)
        self.status = status


class ProxyRequestFailed(CastError):
    def __init__(self, status: int | None, detail: str = "") -> None:
        message = f"Proxy request failed: {status}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)
        self.status = status


class Timeout(CastError):
    """A network call did not complete within the configured timeout."""


class NoActiveSession(CastError):
    """Stop was requested while nothing is being cast."""
