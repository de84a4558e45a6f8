"""Structured logging helpers for the alert engine."""

import logging
from typing import Optional, Union


class ComponentLoggerAdapter(logging.LoggerAdapter):
    """LoggerAdapter that merges a default component into each call's extra."""

    def process(self, msg, kwargs):
        # Fields passed on the call win over the adapter defaults
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


def get_logger(
    name: str, component: Optional[str] = None
) -> Union[logging.Logger, ComponentLoggerAdapter]:
    """Get a logger, optionally tagging every record with a component field.

    Args:
        name: Logger name (typically __name__)
        component: Component identifier injected into all records

    Example:
        >>> logger = get_logger(__name__, component="engine")
        >>> logger.info("Event received", extra={"event": "engine.event.received"})
    """
    logger = logging.getLogger(name)

    if component:
        return ComponentLoggerAdapter(logger, {"component": component})

    return logger
