"""Persistence layer backed by SQLAlchemy (SQLite by default).

Public API:
    # Database initialization and session management
    - init_database(database_url, busy_timeout_seconds) -> None
    - get_session() -> ContextManager[Session]
    - close_database() -> None
    - get_engine() -> Engine

    # Repositories
    - CriteriaRepository, ListingSnapshotRepository, DispatchRecordRepository,
      NotificationRepository, DeliveryFailureRepository, DeadLetterRepository,
      FeedStatusRepository

    # Exceptions
    - PersistenceError and its subclasses

Example usage:
    >>> from alert_engine.persistence import init_database, get_session, CriteriaRepository
    >>> init_database("sqlite:///./data/alert_engine.db")
    >>> with get_session() as session:
    ...     active = CriteriaRepository(session).list_active()
"""

from .database import close_database, get_engine, get_session, init_database
from .exceptions import (
    DatabaseConnectionError,
    DataIntegrityError,
    LedgerTimeoutError,
    PersistenceError,
    RecordNotFoundError,
    TransientStorageError,
)
from .repositories import (
    CriteriaRepository,
    DeadLetterRepository,
    DeliveryFailureRepository,
    DispatchRecordRepository,
    FeedStatusRepository,
    ListingSnapshotRepository,
    NotificationRepository,
)

__all__ = [
    "init_database",
    "get_session",
    "close_database",
    "get_engine",
    "CriteriaRepository",
    "ListingSnapshotRepository",
    "DispatchRecordRepository",
    "NotificationRepository",
    "DeliveryFailureRepository",
    "DeadLetterRepository",
    "FeedStatusRepository",
    "PersistenceError",
    "DatabaseConnectionError",
    "RecordNotFoundError",
    "DataIntegrityError",
    "TransientStorageError",
    "LedgerTimeoutError",
]
