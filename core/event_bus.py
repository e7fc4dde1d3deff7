"""
Event bus for ledger domain events.

Synchronous in-process pub/sub. Handlers execute immediately in the same
thread as the publisher, after the ledger transaction has committed. Handler
errors are logged but never propagate.

Subscriptions are by event class name, and a category name (PaymentEvent,
InvoiceEvent, LedgerEvent) receives every event derived from it.
"""

import logging
from typing import Callable, Dict, List

from core.events import LedgerEvent

logger = logging.getLogger(__name__)


class EventBus:
    """
    In-process event bus for ledger domain events.

    Usage:
        bus = EventBus()
        bus.subscribe("InvoicePaid", send_receipt)
        bus.subscribe(PaymentEvent, update_dashboard)  # every payment event

        bus.publish(InvoicePaid.create(invoice=invoice))
    """

    def __init__(self):
        self._subscribers: Dict[str, List[Callable]] = {}

    def subscribe(self, event_type: str | type, callback: Callable):
        """
        Subscribe to an event class or category.

        Args:
            event_type: Event class or its name (e.g. 'InvoicePaid', PaymentEvent)
            callback: Function called with the event instance
        """
        name = event_type if isinstance(event_type, str) else event_type.__name__
        self._subscribers.setdefault(name, []).append(callback)

    def unsubscribe(self, event_type: str | type, callback: Callable) -> bool:
        """Remove a subscription. Returns False if it wasn't registered."""
        name = event_type if isinstance(event_type, str) else event_type.__name__
        callbacks = self._subscribers.get(name, [])
        if callback not in callbacks:
            return False
        callbacks.remove(callback)
        return True

    def publish(self, event: LedgerEvent):
        """
        Publish an event to subscribers of its class and of its categories.

        Handlers for the concrete class run first, then those for each base
        class up to LedgerEvent. Each handler runs at most once per event.

        Args:
            event: LedgerEvent instance to publish
        """
        seen: List[Callable] = []

        for cls in type(event).__mro__:
            if cls is object:
                break
            for callback in self._subscribers.get(cls.__name__, []):
                if callback in seen:
                    continue
                seen.append(callback)
                try:
                    callback(event)
                except Exception:
                    logger.exception(
                        "Handler %s failed for %s (event_id=%s)",
                        getattr(callback, "__name__", repr(callback)),
                        type(event).__name__,
                        event.event_id,
                    )
