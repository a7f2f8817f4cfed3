"""Domain errors."""


class ValidationError(ValueError):
    """Raised when a dose event is malformed."""


class ConcurrencyConflict(RuntimeError):
    """Raised when a transition precondition no longer holds."""


class StoreUnavailable(RuntimeError):
    """Raised when the event store cannot be queried in time."""
