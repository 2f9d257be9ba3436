"""Custom exception classes for the invite redirect service.

Only conditions that end in a 500 are exceptions. A path that does not resolve
or a pool with no usable code is reported as ``None`` by the component that
detects it, and a failed click increment never leaves the usage recorder.
"""

__all__ = [
    "InviteRedirectError",
    "ConfigurationError",
    "ServiceInitializationError",
    "StoreFetchFailure",
]


class InviteRedirectError(Exception):
    """Base exception for all invite redirect errors."""

    pass


class ConfigurationError(InviteRedirectError):
    """Raised when a required setting is absent after all sources are exhausted."""

    pass


class ServiceInitializationError(InviteRedirectError):
    """Raised when the shared resources cannot be built, e.g. unusable settings."""

    pass


class StoreFetchFailure(InviteRedirectError):
    """Raised when reading an invite pool record from the store fails."""

    def __init__(self, table_name: str, sort_key: str):
        """Initialize the exception.

        Args:
            table_name: The table the read was issued against.
            sort_key: The sort key of the record being read.
        """
        self.table_name = table_name
        self.sort_key = sort_key
        super().__init__(f"Failed to read invite pool '{sort_key}' from table '{table_name}'")
