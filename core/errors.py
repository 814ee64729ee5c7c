# core/errors.py


class TrackingError(Exception):
    """Base class for errors surfaced by the live tracking engine."""


class InvalidInput(TrackingError):
    """Malformed identifiers or missing required fields. Nothing was mutated."""


class InvalidTransition(TrackingError):
    """The activity cannot move to the requested status."""


class NotFound(TrackingError):
    pass


class TransientStoreFailure(TrackingError):
    """The store did not acknowledge a call (error or timeout)."""


class ServiceUnavailable(TransientStoreFailure):
    """Store retries were exhausted."""
