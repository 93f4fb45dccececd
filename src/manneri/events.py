"""Typed events emitted by the detector.

Handlers run synchronously in subscription order, so delivery order follows
the causal order of the ``process`` calls that emitted the events.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from loguru import logger

from .models import StorageData


class EventType(str, Enum):
    """Events a host can subscribe to."""

    PATTERN_DETECTED = "pattern_detected"
    INTERVENTION_TRIGGERED = "intervention_triggered"
    TOPIC_CHANGED = "topic_changed"
    SIMILARITY_CALCULATED = "similarity_calculated"
    CONFIG_UPDATED = "config_updated"
    STORAGE_CLEANED = "storage_cleaned"
    SAVE_SUCCESS = "save_success"
    SAVE_ERROR = "save_error"
    LOAD_SUCCESS = "load_success"
    LOAD_ERROR = "load_error"
    CLEANUP_COMPLETED = "cleanup_completed"
    CLEANUP_ERROR = "cleanup_error"


@dataclass(frozen=True)
class TopicChange:
    """Payload of ``topic_changed``."""

    old_topics: tuple[str, ...]
    new_topics: tuple[str, ...]


@dataclass(frozen=True)
class SimilarityCalculated:
    """Payload of ``similarity_calculated``."""

    score: float
    threshold: float


@dataclass(frozen=True)
class StorageCleaned:
    """Payload of ``storage_cleaned``."""

    removed_items: int


@dataclass(frozen=True)
class SaveSuccess:
    """Payload of ``save_success``."""

    timestamp: datetime


@dataclass(frozen=True)
class LoadSuccess:
    """Payload of ``load_success``."""

    data: StorageData
    timestamp: datetime


@dataclass(frozen=True)
class CleanupCompleted:
    """Payload of ``cleanup_completed``."""

    removed_items: int
    timestamp: datetime


@dataclass(frozen=True)
class StorageError:
    """Payload of ``save_error``, ``load_error`` and ``cleanup_error``."""

    error: Exception


EventHandler = Callable[[Any], None]


class EventBus:
    """Subscriber lists keyed by event type."""

    def __init__(self) -> None:
        self._handlers: dict[EventType, list[EventHandler]] = {}

    def subscribe(self, event: EventType | str, handler: EventHandler) -> None:
        """Register a handler; the same handler is registered once."""
        handlers = self._handlers.setdefault(EventType(event), [])
        if handler not in handlers:
            handlers.append(handler)

    def unsubscribe(self, event: EventType | str, handler: EventHandler) -> None:
        """Remove a handler if registered."""
        handlers = self._handlers.get(EventType(event), [])
        if handler in handlers:
            handlers.remove(handler)

    def emit(self, event: EventType | str, payload: Any) -> None:
        """Deliver a payload to every handler of an event.

        A failing handler is logged and skipped; it never interrupts delivery
        to the remaining handlers or the caller.
        """
        event = EventType(event)
        for handler in list(self._handlers.get(event, [])):
            try:
                handler(payload)
            except Exception:
                logger.exception(f"Handler for '{event.value}' failed")

    def handler_count(self, event: EventType | str) -> int:
        """Number of handlers subscribed to an event."""
        return len(self._handlers.get(EventType(event), []))

    def clear(self) -> None:
        """Remove every handler."""
        self._handlers.clear()
