import threading
from contextlib import contextmanager
from dataclasses import replace
from typing import Dict, Iterator, Optional

from ...application.ports.verification_store import VerificationRecord, VerificationStore


class InMemoryVerificationStore(VerificationStore):
    """Process-local store. ``ttl_seconds`` is ignored; expiry is left to the service."""

    def __init__(self) -> None:
        self._records: Dict[str, VerificationRecord] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._lock_users: Dict[str, int] = {}
        self._guard = threading.Lock()

    def get(self, phone: str) -> Optional[VerificationRecord]:
        with self._guard:
            rec = self._records.get(phone)
        # hand out copies so callers only change state through put()
        return replace(rec) if rec else None

    def put(self, record: VerificationRecord, ttl_seconds: int) -> None:
        with self._guard:
            self._records[record.phone] = replace(record)

    def delete(self, phone: str) -> None:
        with self._guard:
            self._records.pop(phone, None)

    @contextmanager
    def lock(self, phone: str) -> Iterator[None]:
        with self._guard:
            key_lock = self._locks.setdefault(phone, threading.Lock())
            self._lock_users[phone] = self._lock_users.get(phone, 0) + 1
        try:
            with key_lock:
                yield
        finally:
            # drop the lock once no thread holds or waits on it
            with self._guard:
                self._lock_users[phone] -= 1
                if not self._lock_users[phone]:
                    del self._lock_users[phone]
                    del self._locks[phone]

    def __len__(self) -> int:
        return len(self._records)
