"""In-process event bus.

Services publish a ``FinanceEvent`` after each successful mutation. The bus is
owned by the host application and injected into services; there is no
module-level instance.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, UTC
from enum import Enum
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class FinanceEventType(str, Enum):
    """Closed enumeration of event types."""

    TRANSACTION_CREATED = "transaction.created"
    TRANSACTION_UPDATED = "transaction.updated"
    TRANSACTION_DELETED = "transaction.deleted"
    TRANSFER_CREATED = "transfer.created"
    INVESTMENT_LINKED = "investment.linked"
    LOAN_PAYMENT = "loan.payment"
    ENTITY_CREATED = "entity.created"
    ENTITY_UPDATED = "entity.updated"
    ENTITY_DELETED = "entity.deleted"


@dataclass(frozen=True)
class FinanceEvent:
    """A change notification."""

    type: FinanceEventType
    entity_kind: str
    operation: str
    payload: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


EventCallback = Callable[[FinanceEvent], None]


class EventBus:
    """Synchronous publish/subscribe channel keyed by event type."""

    def __init__(self):
        # Single ordered list so delivery follows subscription order even
        # across typed and catch-all subscribers.
        self._subscribers: list[tuple[Optional[FinanceEventType], EventCallback]] = []

    def subscribe(self, event_type: FinanceEventType, callback: EventCallback) -> Callable[[], None]:
        """Subscribe to one event type.

        Returns:
            A handle that removes the subscription when called
        """
        entry = (FinanceEventType(event_type), callback)
        self._subscribers.append(entry)
        return self._make_unsubscribe(entry)

    def subscribe_all(self, callback: EventCallback) -> Callable[[], None]:
        """Subscribe to every event type."""
        entry = (None, callback)
        self._subscribers.append(entry)
        return self._make_unsubscribe(entry)

    def _make_unsubscribe(self, entry) -> Callable[[], None]:
        def unsubscribe() -> None:
            try:
                self._subscribers.remove(entry)
            except ValueError:
                pass

        return unsubscribe

    def publish(self, event: FinanceEvent) -> int:
        """Deliver an event to matching subscribers.

        A subscriber that raises is logged and skipped; the remaining
        subscribers still receive the event.

        Returns:
            Number of subscribers that handled the event without raising
        """
        logger.debug("Publishing %s %s", event.type.value, event.payload)
        delivered = 0
        for event_type, callback in list(self._subscribers):
            if event_type is not None and event_type != event.type:
                continue
            try:
                callback(event)
                delivered += 1
            except Exception:
                logger.exception("Subscriber %r failed on %s", callback, event.type.value)
        return delivered

    def emit(
        self,
        event_type: FinanceEventType,
        entity_kind: str,
        operation: str,
        **payload: Any,
    ) -> FinanceEvent:
        """Build and publish an event."""
        event = FinanceEvent(
            type=FinanceEventType(event_type),
            entity_kind=entity_kind,
            operation=operation,
            payload=payload,
        )
        self.publish(event)
        return event


_ENTITY_EVENT = {
    "created": FinanceEventType.ENTITY_CREATED,
    "updated": FinanceEventType.ENTITY_UPDATED,
    "deleted": FinanceEventType.ENTITY_DELETED,
}


def entity_event_type(operation: str) -> FinanceEventType:
    """Return the generic event type for a non-transaction mutation."""
    return _ENTITY_EVENT[operation]
