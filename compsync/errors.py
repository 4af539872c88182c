"""
Shared error types.

Kept in a separate module so the store, the workflow model and the API all
raise and catch the same exception classes.
"""


class CompSyncError(Exception):
    """Base class for service errors."""


class PersistenceError(CompSyncError):
    """Raised when the durable snapshot could not be read or written."""


class InvalidTransitionError(CompSyncError):
    """Raised when a requested status change is not the next workflow stage."""
