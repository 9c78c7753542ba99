import json
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, Optional

import redis

from ...application.ports.verification_store import VerificationRecord, VerificationStore, VerificationStoreError

logger = logging.getLogger(__name__)


class RedisVerificationStore(VerificationStore):
    """Keeps one JSON document per phone; Redis expires keys on its own."""

    def __init__(self, client: "redis.Redis", prefix: str = "otp:", lock_timeout: float = 10.0,
                 blocking_timeout: float = 5.0) -> None:
        self.client = client
        self.prefix = prefix
        self.lock_timeout = lock_timeout
        self.blocking_timeout = blocking_timeout

    @classmethod
    def from_url(cls, url: str, **kwargs) -> "RedisVerificationStore":
        return cls(redis.Redis.from_url(url), **kwargs)

    def _key(self, phone: str) -> str:
        return f"{self.prefix}{phone}"

    def get(self, phone: str) -> Optional[VerificationRecord]:
        try:
            raw = self.client.get(self._key(phone))
        except redis.RedisError as e:
            raise VerificationStoreError(str(e)) from e
        if raw is None:
            return None
        try:
            if isinstance(raw, bytes):
                raw = raw.decode("utf-8")
            data = json.loads(raw)
            return VerificationRecord(
                phone=data["phone"],
                code=data["code"],
                issued_at=datetime.fromisoformat(data["issued_at"]),
                expires_at=datetime.fromisoformat(data["expires_at"]),
                attempts=int(data.get("attempts", 0)),
                verified=bool(data.get("verified", False)),
            )
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            # UnicodeDecodeError and JSONDecodeError are ValueErrors
            raise VerificationStoreError(f"unreadable verification record under {self._key(phone)}: {e}") from e

    def put(self, record: VerificationRecord, ttl_seconds: int) -> None:
        payload = json.dumps({
            "phone": record.phone,
            "code": record.code,
            "issued_at": record.issued_at.isoformat(),
            "expires_at": record.expires_at.isoformat(),
            "attempts": record.attempts,
            "verified": record.verified,
        })
        try:
            self.client.set(self._key(record.phone), payload, ex=int(ttl_seconds))
        except redis.RedisError as e:
            raise VerificationStoreError(str(e)) from e

    def delete(self, phone: str) -> None:
        try:
            self.client.delete(self._key(phone))
        except redis.RedisError as e:
            raise VerificationStoreError(str(e)) from e

    @contextmanager
    def lock(self, phone: str) -> Iterator[None]:
        rlock = self.client.lock(f"{self.prefix}lock:{phone}", timeout=self.lock_timeout)
        try:
            acquired = rlock.acquire(blocking=True, blocking_timeout=self.blocking_timeout)
        except redis.RedisError as e:
            raise VerificationStoreError(str(e)) from e
        if not acquired:
            raise VerificationStoreError(f"timed out waiting for verification lock on {self._key(phone)}")
        try:
            yield
        finally:
            try:
                rlock.release()
            except redis.RedisError as e:
                # lock_timeout elapsed before release; the key is already gone
                logger.warning(f"Verification lock release failed: {e}")
