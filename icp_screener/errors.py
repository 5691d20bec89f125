"""Exception types shared across the screening pipeline."""

from __future__ import annotations


class ScreenerError(Exception):
    """Base class for errors raised by the screener."""

    def as_error_dict(self) -> dict:
        return {"error": str(self)}


class InvalidInput(ScreenerError):
    """Raised for input that cannot be screened (no resolvable domain, bad file)."""


class UpstreamError(ScreenerError):
    """An upstream provider call failed for good."""

    def __init__(
        self,
        provider: str,
        message: str,
        status_code: int | None = None,
        attempts: int = 1,
    ):
        self.provider = provider
        self.message = message
        self.status_code = status_code
        self.attempts = attempts
        super().__init__(message)


class UpstreamTimeout(UpstreamError):
    """A single upstream call exceeded its wall-clock timeout."""
