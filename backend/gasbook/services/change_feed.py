"""
Change Feed: one pub/sub channel per collection.

Every committed write publishes a ChangeEvent on the channel of the
collection it touched. The retention sweep publishes exactly the same
`deleted` events as a manual delete, so a listener cannot tell (and does
not need to tell) a timer-driven deletion from an operator's.

Dispatch behavior:
1. Look up subscribers for the event's collection
2. Execute handlers sequentially, in subscription order
3. Catch and log each handler's exception
4. Continue to the next subscriber

Publishing happens after the write is committed; a failing subscriber
never rolls back or fails the write that produced the event.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from threading import Lock
from typing import Callable


logger = logging.getLogger("gasbook.changes")

COLLECTION_CUSTOMERS = "customers"
COLLECTION_BOOKINGS = "bookings"
COLLECTION_CYLINDERS = "cylinders"
COLLECTION_STOVES = "stoves"
COLLECTION_LENDING_RECORDS = "lending_records"

COLLECTIONS = (
    COLLECTION_CUSTOMERS,
    COLLECTION_BOOKINGS,
    COLLECTION_CYLINDERS,
    COLLECTION_STOVES,
    COLLECTION_LENDING_RECORDS,
)

ACTION_CREATED = "created"
ACTION_UPDATED = "updated"
ACTION_DELETED = "deleted"


@dataclass(frozen=True)
class ChangeEvent:
    collection: str
    action: str
    owner_key: str
    record_ids: tuple = field(default_factory=tuple)


class ChangeFeed:
    """
    In-memory, thread-safe subscriber registry.

    subscribe() returns a zero-argument callable that removes the
    subscription again; calling it twice is harmless.
    """

    def __init__(self):
        self._subscribers: dict[str, list[Callable[[ChangeEvent], None]]] = {}
        self._lock = Lock()

    def subscribe(self, collection: str, handler: Callable[[ChangeEvent], None]) -> Callable[[], None]:
        if collection not in COLLECTIONS:
            raise ValueError(f"Unknown collection '{collection}'")

        with self._lock:
            self._subscribers.setdefault(collection, []).append(handler)

        def unsubscribe() -> None:
            with self._lock:
                handlers = self._subscribers.get(collection, [])
                if handler in handlers:
                    handlers.remove(handler)

        return unsubscribe

    def publish(self, event: ChangeEvent) -> dict:
        """
        Deliver an event to every subscriber of its collection.

        Returns {'notified': int, 'failed': int}. Never raises.
        """
        with self._lock:
            handlers = list(self._subscribers.get(event.collection, []))

        result = {"notified": 0, "failed": 0}
        for handler in handlers:
            handler_name = getattr(handler, "__qualname__", repr(handler))
            try:
                handler(event)
                result["notified"] += 1
            except Exception:
                result["failed"] += 1
                logger.error(
                    "Change subscriber %s failed for %s.%s (owner %r)",
                    handler_name, event.collection, event.action, event.owner_key,
                    exc_info=True,
                )
        return result

    def clear(self) -> None:
        with self._lock:
            self._subscribers.clear()


feed = ChangeFeed()


def publish(collection: str, action: str, owner_key: str, record_ids) -> dict:
    """Publish on the process-wide feed."""
    return feed.publish(ChangeEvent(
        collection=collection,
        action=action,
        owner_key=owner_key,
        record_ids=tuple(record_ids),
    ))


def subscribe(collection: str, handler: Callable[[ChangeEvent], None]) -> Callable[[], None]:
    """Subscribe on the process-wide feed."""
    return feed.subscribe(collection, handler)
