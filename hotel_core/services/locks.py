"""
Keyed mutual exclusion

One lock per key (folio id, property id), shared by every session in the process.
Mutations hold the lock from the first read of the row until commit, which
linearizes them per key. Multi-process deployments additionally rely on the
SELECT ... FOR UPDATE issued under the lock.
"""
from contextlib import contextmanager
from typing import Dict, Hashable
import threading


class KeyedLock:
    """
    Registry of re-entrant locks keyed by an arbitrary hashable

    An entry lives only while some thread holds or waits on it, so the registry
    stays as small as the set of keys currently in use.
    """

    def __init__(self, name: str):
        self.name = name
        # key -> [lock, number of threads holding or waiting]
        self._locks: Dict[Hashable, list] = {}
        self._registry_lock = threading.Lock()

    def _acquire_entry(self, key: Hashable) -> threading.RLock:
        with self._registry_lock:
            entry = self._locks.get(key)
            if entry is None:
                entry = [threading.RLock(), 0]
                self._locks[key] = entry
            entry[1] += 1
            return entry[0]

    def _release_entry(self, key: Hashable) -> None:
        with self._registry_lock:
            entry = self._locks[key]
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[key]

    def __len__(self) -> int:
        with self._registry_lock:
            return len(self._locks)

    @contextmanager
    def hold(self, key: Hashable):
        lock = self._acquire_entry(key)
        try:
            with lock:
                yield
        finally:
            self._release_entry(key)


# Folio mutations: post_charge / record_payment / void_item / close
folio_locks = KeyedLock("folio")

# Inventory commitments: reservation create, check-in, room change, date amendment
inventory_locks = KeyedLock("inventory")
