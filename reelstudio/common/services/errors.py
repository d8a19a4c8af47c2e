"""Errors raised by the generation pipeline and translated to HTTP by the routes."""

from typing import Optional


class NotFoundError(LookupError):
    """A team-scoped resource does not exist."""


class QuotaExceededError(Exception):
    """The team's plan has no video left for the current period."""

    def __init__(self, current_usage: int, limit: Optional[int]) -> None:
        super().__init__("Quota exceeded")
        self.current_usage = current_usage
        self.limit = limit


class ProviderError(Exception):
    """An outbound provider call failed; ``details`` carries the provider's text verbatim."""

    def __init__(self, message: str, details: Optional[str] = None) -> None:
        super().__init__(message)
        self.details = details
