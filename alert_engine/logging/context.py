"""Scoped logging context backed by contextvars.

Fields pushed here (event_id, listing_id, criteria_id, ...) are attached to
every record emitted inside the scope by ContextualFilter. Each worker thread
starts with an empty context.
"""

from contextvars import ContextVar, Token
from typing import Any, Dict, Optional

LogContextVar: ContextVar[Dict[str, Any]] = ContextVar("alert_engine_log_context", default={})


def get_log_context() -> Dict[str, Any]:
    """Return a copy of the fields currently in scope."""
    return dict(LogContextVar.get())


def push_log_context(**fields: Any) -> Token:
    """Merge fields into the current context; returns a token for pop_log_context()."""
    merged = {**LogContextVar.get(), **fields}
    return LogContextVar.set(merged)


def pop_log_context(token: Token) -> None:
    """Restore the context captured by push_log_context()."""
    LogContextVar.reset(token)


def clear_log_context() -> None:
    """Drop all context fields (used by tests)."""
    LogContextVar.set({})


class log_context:
    """Context manager that scopes logging fields.

    Example:
        >>> with log_context(event_id="e-1", listing_id="ad-42"):
        ...     logger.info("Matching listing")
    """

    def __init__(self, **fields: Any):
        self.fields = fields
        self.token: Optional[Token] = None

    def __enter__(self) -> "log_context":
        self.token = push_log_context(**self.fields)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if self.token is not None:
            pop_log_context(self.token)
            self.token = None
        return False
