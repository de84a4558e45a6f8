"""Engine runtime: queue, workers, coordinator, retries and re-scan.

This module provides:
- AlertEngineService: wires every part together and owns its lifecycle
- EngineCoordinator: per-event state machine (match, claim, notify)
- BoundedEventQueue / WorkerPool: bounded intake and concurrent processing
- EventRetryHandler: requeue with backoff, dead letters and re-drive
- PeriodicRescan: catch-up matching for new or re-activated criteria
"""

from .coordinator import EngineCoordinator, load_active_criteria
from .exceptions import EngineError, QueueClosedError
from .models import EngineStats, EventOutcome, EventState, RescanResult
from .queue import BoundedEventQueue
from .rescan import PeriodicRescan
from .retry import EventRetryHandler
from .service import AlertEngineService, build_channels, build_source
from .workers import WorkerPool

__all__ = [
    "AlertEngineService",
    "EngineCoordinator",
    "load_active_criteria",
    "BoundedEventQueue",
    "WorkerPool",
    "EventRetryHandler",
    "PeriodicRescan",
    "EngineStats",
    "EventOutcome",
    "EventState",
    "RescanResult",
    "EngineError",
    "QueueClosedError",
    "build_channels",
    "build_source",
]
