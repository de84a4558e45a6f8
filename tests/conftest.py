"""Shared pytest fixtures."""

import pytest

from alert_engine.logging.context import clear_log_context
from alert_engine.persistence import close_database, init_database


@pytest.fixture
def database():
    """In-memory database for single-threaded tests."""
    init_database("sqlite:///:memory:")
    yield
    close_database()


@pytest.fixture
def file_database(tmp_path):
    """File-backed database shared by worker threads."""
    init_database(f"sqlite:///{tmp_path / 'alerts.db'}", busy_timeout_seconds=10)
    yield
    close_database()


@pytest.fixture(autouse=True)
def reset_log_context():
    clear_log_context()
    yield
    clear_log_context()
