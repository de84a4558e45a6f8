"""Run statistics and per-event outcomes for the engine."""

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional


class EventState(str, Enum):
    """Processing states of one listing event."""

    RECEIVED = "received"
    MATCHING = "matching"
    CLAIMING = "claiming"
    DISPATCHED = "dispatched"
    SKIPPED = "skipped"
    DONE = "done"


@dataclass
class EventOutcome:
    """What happened to one listing event.

    Attributes:
        event_id: Event identifier
        listing_id: Listing the event is about
        state: Last state reached (DONE on success)
        evaluated: Whether the matcher ran
        skip_reason: Why evaluation was skipped (unchanged, not_visible)
        matched: Criteria ids the listing matched
        claimed: Criteria ids newly claimed and notified
        duplicates: Criteria ids already claimed earlier
        notification_ids: Notifications created for the claimed pairs
        requeued: The event was scheduled for another attempt
        dead_lettered: The event was moved to the dead-letter table
        error: Failure description, if any
    """

    event_id: str
    listing_id: str
    state: EventState = EventState.RECEIVED
    evaluated: bool = False
    skip_reason: Optional[str] = None
    matched: List[str] = field(default_factory=list)
    claimed: List[str] = field(default_factory=list)
    duplicates: List[str] = field(default_factory=list)
    notification_ids: List[str] = field(default_factory=list)
    requeued: bool = False
    dead_lettered: bool = False
    error: Optional[str] = None


@dataclass
class RescanResult:
    """Outcome of one periodic re-scan pass."""

    listings_scanned: int = 0
    criteria_count: int = 0
    matched: int = 0
    claimed: int = 0
    duplicates: int = 0
    errors: int = 0
    cancelled: bool = False


class EngineStats:
    """Thread-safe counters shared by queue, workers, coordinator and retry paths."""

    FIELDS = (
        "received",
        "evaluated",
        "unchanged",
        "matched",
        "claimed",
        "duplicates",
        "notified",
        "requeued",
        "dead_lettered",
        "dropped",
        "errors",
    )

    def __init__(self):
        self._lock = threading.Lock()
        self._counters: Dict[str, int] = {name: 0 for name in self.FIELDS}

    def increment(self, name: str, amount: int = 1) -> None:
        if name not in self._counters:
            raise KeyError(f"Unknown engine stat: {name}")
        with self._lock:
            self._counters[name] += amount

    def get(self, name: str) -> int:
        with self._lock:
            return self._counters[name]

    def snapshot(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._counters)

    def __getattr__(self, name: str) -> int:
        if name in EngineStats.FIELDS:
            return self.get(name)
        raise AttributeError(name)
