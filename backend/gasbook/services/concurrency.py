# Overview: Service-layer helpers for concurrency; row locking and per-key serialization.

from __future__ import annotations

import threading
from contextlib import contextmanager


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


class KeyedSerializer:
    """
    One mutex per key, alive only while some thread holds or waits on it.

    Commands touching the same key (e.g. ("cylinder", owner, "14.2kg", "FULL"))
    run one at a time inside this process, so a count check and the
    deletes that follow it cannot interleave with another decrement of the
    same key. Commands on different keys do not block each other.

    Failed commands are not retried; the lock is simply released.
    """

    def __init__(self):
        self._guard = threading.Lock()
        # key -> [lock, number of threads holding or waiting]
        self._locks: dict[tuple, list] = {}

    def _checkout(self, key: tuple) -> threading.Lock:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = [threading.Lock(), 0]
                self._locks[key] = entry
            entry[1] += 1
            return entry[0]

    def _checkin(self, key: tuple) -> None:
        with self._guard:
            entry = self._locks[key]
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    @contextmanager
    def serialized(self, *keys: tuple):
        """
        Hold the locks for all keys for the duration of the block.

        Keys are acquired in sorted order so two commands that need the
        same pair of keys cannot deadlock.
        """
        ordered = sorted(set(keys), key=repr)
        acquired = []
        try:
            for key in ordered:
                lock = self._checkout(key)
                try:
                    lock.acquire()
                except BaseException:
                    self._checkin(key)
                    raise
                acquired.append((key, lock))
            yield
        finally:
            for key, lock in reversed(acquired):
                lock.release()
                self._checkin(key)


serializer = KeyedSerializer()


def inventory_key(owner_key: str, kind: str, item_type: str, status: str) -> tuple:
    return ("inventory", owner_key, kind, item_type, status)


def booking_key(booking_id: int) -> tuple:
    return ("booking", booking_id)
