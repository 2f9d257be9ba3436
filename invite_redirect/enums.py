"""Shared enums for the invite redirect service.

This module defines all status and state enums used across the codebase.
Using enums instead of string literals provides type safety and prevents typos.
"""

from enum import StrEnum

__all__ = ["HealthStatus", "IncrementMode", "RedirectOutcome", "IncrementStatus"]


class HealthStatus(StrEnum):
    """Health check status values."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


class IncrementMode(StrEnum):
    """How the click counter update is executed relative to the response."""

    SYNC = "sync"
    DETACHED = "detached"

    @classmethod
    def from_str(cls, value: str) -> "IncrementMode":
        """Safely parse from string, falling back to SYNC for unknown values."""
        try:
            return cls(value.strip().lower())
        except (ValueError, AttributeError):
            return cls.SYNC


class RedirectOutcome(StrEnum):
    """Terminal outcomes of a redirect request."""

    REDIRECT = "redirect"
    NOT_FOUND = "not_found"
    STORE_ERROR = "store_error"


class IncrementStatus(StrEnum):
    """Click increment results for metrics."""

    SUCCESS = "success"
    FAILURE = "failure"
