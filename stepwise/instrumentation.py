"""
Observability hooks for workflow and step execution.

Events are published by name (e.g. 'stepwise.step.complete') with a payload
dict. Subscribers register for an exact name or a compiled regex.
"""

import logging
import re
import threading
from typing import Any, Callable, Dict, List, Optional, Pattern, Tuple, Union

logger = logging.getLogger(__name__)

Handler = Callable[[str, Dict[str, Any]], None]

_subscribers: List[Tuple[Union[str, Pattern[str]], Handler]] = []
_lock = threading.Lock()


def subscribe(pattern: Union[str, Pattern[str]], handler: Handler) -> Handler:
    """
    Register a handler for events matching pattern.

    Args:
        pattern: Exact event name, or compiled regex searched against names
        handler: Called with (event_name, payload)

    Returns:
        The handler, for use with unsubscribe()
    """
    with _lock:
        _subscribers.append((pattern, handler))
    return handler


def unsubscribe(handler: Handler) -> None:
    """Remove every registration of handler."""
    with _lock:
        _subscribers[:] = [(p, h) for p, h in _subscribers if h is not handler]


def instrument(name: str, payload: Optional[Dict[str, Any]] = None) -> None:
    """
    Publish an event to matching subscribers.

    A failing subscriber is logged and skipped; it never affects the run.
    """
    payload = payload or {}
    with _lock:
        subscribers = list(_subscribers)

    for pattern, handler in subscribers:
        if not _matches(pattern, name):
            continue
        try:
            handler(name, payload)
        except Exception as e:
            logger.warning(f"Instrumentation subscriber failed for {name}: {e}")


def _matches(pattern: Union[str, Pattern[str]], name: str) -> bool:
    if isinstance(pattern, str):
        return pattern == name
    return pattern.search(name) is not None


def log_events(event_logger: Optional[logging.Logger] = None) -> Handler:
    """Subscribe a handler that logs step and workflow events at debug level."""
    target = event_logger or logger

    def handler(name: str, payload: Dict[str, Any]) -> None:
        target.debug(f"{name}: {payload}")

    return subscribe(re.compile(r'^stepwise\.(workflow|step)\.'), handler)
