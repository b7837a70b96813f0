"""Custom exception types for consistent error handling."""


class DiscoveryError(Exception):
    """Base class for errors raised by the discovery engine."""


class NotFoundError(DiscoveryError):
    """Raised when a requester, target, or session id does not resolve."""


class InvalidInputError(DiscoveryError):
    """Raised when request input validation fails."""


class ConcurrencyConflictError(DiscoveryError):
    """Raised by a store when a concurrent update lost a race.

    Stores retry this internally; it is never surfaced to callers.
    """


class StoreUnavailableError(DiscoveryError):
    """Raised when the storage backend fails or is unavailable."""
