"""Additional validation utilities for configuration."""

import warnings
from typing import Any, Dict, List, Optional

from .duration import DurationParseError, parse_duration


def _seconds_or_none(value: str) -> Optional[int]:
    # Invalid durations are reported by model validation, not here
    try:
        return parse_duration(value)
    except DurationParseError:
        return None


def check_for_warnings(config_dict: Dict[str, Any]) -> List[str]:
    """
    Check configuration for potential issues and return warnings.

    Args:
        config_dict: Raw configuration dictionary

    Returns:
        List of warning messages
    """
    warning_messages = []

    feed = config_dict.get("listing_feed") or {}
    if isinstance(feed, dict):
        if feed.get("enabled") is False:
            warning_messages.append(
                "listing_feed is disabled; only re-scans and manual runs will find matches"
            )
        poll_interval = feed.get("poll_interval")
        if isinstance(poll_interval, str) and _seconds_or_none(poll_interval) in range(1, 10):
            warning_messages.append(
                f"Short poll_interval ({poll_interval}) may overload the listing feed"
            )

    engine = config_dict.get("engine") or {}
    if isinstance(engine, dict):
        if engine.get("overflow_policy") == "drop_oldest":
            warning_messages.append(
                "overflow_policy 'drop_oldest' discards events under load; "
                "dropped listings are only recovered by the periodic re-scan"
            )
        workers = engine.get("workers")
        if isinstance(workers, int) and workers > 16:
            warning_messages.append(
                f"Large worker count ({workers}) may cause SQLite lock contention"
            )

    rescan = config_dict.get("rescan") or {}
    if isinstance(rescan, dict) and rescan.get("enabled") is False:
        warning_messages.append(
            "rescan is disabled; newly created or reactivated criteria will only "
            "match future listing changes"
        )

    delivery = config_dict.get("delivery") or {}
    if isinstance(delivery, dict):
        email = delivery.get("email") or {}
        if isinstance(email, dict) and email.get("enabled") and not email.get("recipients"):
            warning_messages.append(
                "Email channel is enabled but no recipients are configured; "
                "every email delivery will fail permanently"
            )

    return warning_messages


def emit_warnings(warning_messages: List[str]) -> None:
    """Emit warning messages using Python's warnings module."""
    for message in warning_messages:
        warnings.warn(message, UserWarning, stacklevel=2)
