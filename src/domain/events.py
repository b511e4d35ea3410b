"""
Domain events - Discrete state-change messages for subscribers.

Services publish an event after the authoritative write succeeds, never
before, so a subscriber never observes a state the store does not hold.
"""

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from .models import utc_now
from .ports import VerificationMethod, VerificationStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DomainEvent:
    occurred_at: datetime = field(default_factory=utc_now, kw_only=True)


@dataclass(frozen=True)
class OfficeClaimed(DomainEvent):
    office_id: UUID
    official_id: UUID


@dataclass(frozen=True)
class OfficeReleased(DomainEvent):
    office_id: UUID


@dataclass(frozen=True)
class VerificationRequestUpdated(DomainEvent):
    request_id: UUID
    official_id: UUID
    method: VerificationMethod
    status: VerificationStatus


@dataclass(frozen=True)
class ProfileStatusChanged(DomainEvent):
    official_id: UUID
    status: VerificationStatus
    method: VerificationMethod | None


@dataclass(frozen=True)
class FlowStateChanged(DomainEvent):
    official_id: UUID
    state: str
    error: str | None = None


EventHandler = Callable[[DomainEvent], None]


class EventBus:
    """In-process publish/subscribe for domain events. Thread-safe."""

    def __init__(self) -> None:
        self._handlers: list[EventHandler] = []
        self._lock = threading.Lock()

    def subscribe(self, handler: EventHandler) -> Callable[[], None]:
        """Register a handler; returns a callable that unsubscribes it."""
        with self._lock:
            self._handlers.append(handler)

        def unsubscribe() -> None:
            with self._lock:
                if handler in self._handlers:
                    self._handlers.remove(handler)

        return unsubscribe

    def publish(self, event: DomainEvent) -> None:
        with self._lock:
            handlers = list(self._handlers)
        for handler in handlers:
            try:
                handler(event)
            except Exception:
                logger.exception("Event handler failed for %s", type(event).__name__)
