"""
Serialisierung pro Tisch.

Alle schreibenden Operationen auf einem Tisch (Buchung anlegen, zuweisen,
umsetzen, Status ändern, Abgleich) laufen unter dessen Lock. Vorgänge auf
einem Wartelisten-Eintrag nehmen zusätzlich dessen Lock (entry_lock_key).
Die Locks sind fair: Anfragen werden in Ankunftsreihenfolge bedient, damit gilt
"wer zuerst bucht, bekommt den Tisch".
"""
import threading
from contextlib import contextmanager
from typing import Hashable, Iterator


class FairLock:
    """Ticket-Lock: bedient Wartende streng in FIFO-Reihenfolge."""

    def __init__(self):
        self._condition = threading.Condition()
        self._next_ticket = 0
        self._serving = 0

    def acquire(self) -> None:
        with self._condition:
            ticket = self._next_ticket
            self._next_ticket += 1
            while ticket != self._serving:
                self._condition.wait()

    def release(self) -> None:
        with self._condition:
            self._serving += 1
            self._condition.notify_all()

    def __enter__(self):
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()


class TableLockRegistry:

    def __init__(self):
        self._locks: dict[Hashable, FairLock] = {}
        self._registry_lock = threading.Lock()

    def _get(self, table_id: Hashable) -> FairLock:
        with self._registry_lock:
            lock = self._locks.get(table_id)
            if lock is None:
                lock = FairLock()
                self._locks[table_id] = lock
            return lock

    @contextmanager
    def hold(self, *table_ids: Hashable) -> Iterator[None]:
        """
        Hält die Locks aller übergebenen Tische. Mehrere Locks werden in
        sortierter Reihenfolge genommen (kein Deadlock bei Umsetzungen).
        """
        ordered = sorted(set(table_ids), key=str)
        acquired = []
        try:
            for table_id in ordered:
                lock = self._get(table_id)
                lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()


def entry_lock_key(entry_id: Hashable) -> str:
    """Lock-Schlüssel eines Wartelisten-Eintrags in derselben Registry wie die Tische."""
    return f"waiting:{entry_id}"


table_locks = TableLockRegistry()
