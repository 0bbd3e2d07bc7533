"""Exception types shared across the scraper."""

from __future__ import annotations


class CartScoutError(Exception):
    """Base class for all scraper errors."""


class TransientNavigationError(CartScoutError):
    """A navigation timed out or returned a temporary non-200 status."""

    def __init__(self, url: str, *, status: int | None = None, reason: str | None = None) -> None:
        self.url = url
        self.status = status
        detail = reason or (f"HTTP {status}" if status is not None else "navigation failed")
        super().__init__(f"{detail}: {url}")


class BlockDetectedError(CartScoutError):
    """The session has been flagged (captcha page, 403/424/429)."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"BLOCK_DETECTED: {reason}")


class ExtractionFatalError(CartScoutError):
    """The product view cannot be used at all (login wall, empty name)."""

    def __init__(self, url: str, reason: str) -> None:
        self.url = url
        self.reason = reason
        super().__init__(f"{reason}: {url}")


class RemoteServiceError(CartScoutError):
    """A completion-service call failed or returned unusable output."""


class CompletionTimeoutError(RemoteServiceError):
    """The client-side timeout fired before the service answered."""


class MalformedResponseError(RemoteServiceError):
    """The service answered with text that does not match the expected shape."""


class ResidualScriptError(RemoteServiceError):
    """A translation still carries characters from the source script."""


class TiersExhaustedError(RemoteServiceError):
    """Every model tier failed for a request."""


class PersistenceError(CartScoutError):
    """Creating a catalog record failed."""


class PersistenceBlockedError(PersistenceError):
    """Writes are categorically refused (network allow-list, read-only role)."""
