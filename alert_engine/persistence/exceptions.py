"""Persistence layer exceptions.

All persistence exceptions inherit from PersistenceError so callers can catch
every storage failure with a single except clause. TransientStorageError marks
failures that are worth retrying (locks, busy timeouts, dropped connections).
"""


class PersistenceError(Exception):
    """Base exception for all persistence layer errors."""

    pass


class DatabaseConnectionError(PersistenceError):
    """Raised when database connection or initialization fails.

    Examples:
    - Invalid database URL format
    - Database file not accessible
    - Database not initialized before use
    """

    pass


class RecordNotFoundError(PersistenceError):
    """Raised when a required database record is not found.

    Optional lookups return None instead of raising this.
    """

    pass


class DataIntegrityError(PersistenceError):
    """Raised when a database constraint violation occurs."""

    pass


class TransientStorageError(PersistenceError):
    """Raised for retryable storage failures (lock timeouts, busy database)."""

    pass


class LedgerTimeoutError(TransientStorageError):
    """Raised when a dispatch ledger claim does not complete within its timeout."""

    pass
