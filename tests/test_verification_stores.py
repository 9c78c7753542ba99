import json
import threading
from datetime import datetime, timedelta, timezone

import pytest

from wefix.application.ports.verification_store import VerificationRecord, VerificationStoreError
from wefix.infrastructure.verification.memory_store import InMemoryVerificationStore


def make_record(phone="+94712345678", code="482913", attempts=0):
    issued = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    return VerificationRecord(phone=phone, code=code, issued_at=issued,
                              expires_at=issued + timedelta(minutes=10), attempts=attempts)


def test_memory_store_put_get_delete():
    store = InMemoryVerificationStore()
    assert store.get("+94712345678") is None
    store.put(make_record(), ttl_seconds=900)
    assert store.get("+94712345678").code == "482913"
    store.delete("+94712345678")
    assert store.get("+94712345678") is None
    # deleting a missing key is a no-op
    store.delete("+94712345678")


def test_memory_store_keeps_one_record_per_phone():
    store = InMemoryVerificationStore()
    store.put(make_record(code="111111"), ttl_seconds=900)
    store.put(make_record(code="222222"), ttl_seconds=900)
    assert store.get("+94712345678").code == "222222"
    assert len(store) == 1


def test_memory_store_returns_copies():
    store = InMemoryVerificationStore()
    store.put(make_record(), ttl_seconds=900)
    rec = store.get("+94712345678")
    rec.attempts = 3
    assert store.get("+94712345678").attempts == 0


def test_memory_store_lock_serializes_same_phone():
    store = InMemoryVerificationStore()
    store.put(make_record(), ttl_seconds=900)

    def bump():
        for _ in range(200):
            with store.lock("+94712345678"):
                rec = store.get("+94712345678")
                rec.attempts += 1
                store.put(rec, ttl_seconds=900)

    threads = [threading.Thread(target=bump) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert store.get("+94712345678").attempts == 800


def test_memory_store_locks_are_per_phone():
    store = InMemoryVerificationStore()
    with store.lock("+94712345678"):
        acquired = []

        def other():
            with store.lock("+94770000000"):
                acquired.append(True)

        t = threading.Thread(target=other)
        t.start()
        t.join(timeout=2)
        assert acquired == [True]


def test_memory_store_releases_lock_entries():
    store = InMemoryVerificationStore()
    for i in range(50):
        with store.lock(f"+9471000{i:04d}"):
            pass
    assert store._locks == {}

    entered = threading.Event()
    with store.lock("+94712345678"):
        def wait_then_release():
            with store.lock("+94712345678"):
                entered.set()

        waiter = threading.Thread(target=wait_then_release)
        waiter.start()
        assert not entered.wait(timeout=0.2)
        assert "+94712345678" in store._locks
    waiter.join(timeout=2)
    assert entered.is_set()
    assert store._locks == {}


class FakeRedisLock:
    def __init__(self, client, name):
        self.client = client
        self.name = name

    def acquire(self, blocking=True, blocking_timeout=None):
        if self.name in self.client.locks:
            return False
        self.client.locks.add(self.name)
        return True

    def release(self):
        self.client.locks.discard(self.name)


class FakeRedis:
    def __init__(self, fail=False):
        self.store = {}
        self.ttls = {}
        self.locks = set()
        self.fail = fail

    def get(self, key):
        if self.fail:
            raise redis_exceptions().ConnectionError("down")
        return self.store.get(key)

    def set(self, key, value, ex=None):
        if self.fail:
            raise redis_exceptions().ConnectionError("down")
        self.store[key] = value.encode("utf-8")
        self.ttls[key] = ex

    def delete(self, key):
        self.store.pop(key, None)

    def lock(self, name, timeout=None):
        return FakeRedisLock(self, name)


def redis_exceptions():
    import redis
    return redis


def test_redis_store_round_trips_record_with_native_expiry():
    pytest.importorskip("redis")
    from wefix.infrastructure.verification.redis_store import RedisVerificationStore

    client = FakeRedis()
    store = RedisVerificationStore(client)
    store.put(make_record(attempts=2), ttl_seconds=900)

    assert client.ttls["otp:+94712345678"] == 900
    raw = json.loads(client.store["otp:+94712345678"])
    assert raw["code"] == "482913"

    rec = store.get("+94712345678")
    assert rec.attempts == 2
    assert rec.verified is False
    assert rec.expires_at == make_record().expires_at

    store.delete("+94712345678")
    assert store.get("+94712345678") is None


def test_redis_store_lock_releases_and_times_out():
    pytest.importorskip("redis")
    from wefix.infrastructure.verification.redis_store import RedisVerificationStore

    client = FakeRedis()
    store = RedisVerificationStore(client)
    with store.lock("+94712345678"):
        assert "otp:lock:+94712345678" in client.locks
        with pytest.raises(VerificationStoreError):
            with store.lock("+94712345678"):
                pass
    assert client.locks == set()


def test_redis_store_wraps_connection_errors():
    pytest.importorskip("redis")
    from wefix.infrastructure.verification.redis_store import RedisVerificationStore

    store = RedisVerificationStore(FakeRedis(fail=True))
    with pytest.raises(VerificationStoreError):
        store.get("+94712345678")
    with pytest.raises(VerificationStoreError):
        store.put(make_record(), ttl_seconds=900)


def test_service_on_redis_store_end_to_end():
    pytest.importorskip("redis")
    from wefix.application.services.verification_service import VerificationService, VerificationReason
    from wefix.infrastructure.verification.redis_store import RedisVerificationStore

    class Notifier:
        def send(self, phone, code):
            pass

    svc = VerificationService(store=RedisVerificationStore(FakeRedis()), notifier=Notifier())
    code = svc.issue("+94712345678").code
    assert svc.check("+94712345678", "x").reason == VerificationReason.MISMATCH
    assert svc.check("+94712345678", code).ok is True
    assert svc.check("+94712345678", code).reason == VerificationReason.NOT_FOUND


@pytest.mark.parametrize("payload", [b"not-json", b"[]", b'{"phone": "+94712345678"}',
                                     b'{"phone": "+94712345678", "code": "1", "issued_at": "yesterday", "expires_at": "x"}'])
def test_redis_store_rejects_corrupt_payload(payload):
    pytest.importorskip("redis")
    from wefix.application.services.verification_service import VerificationService, VerificationReason
    from wefix.infrastructure.verification.redis_store import RedisVerificationStore

    class Notifier:
        def send(self, phone, code):
            pass

    client = FakeRedis()
    client.store["otp:+94712345678"] = payload
    store = RedisVerificationStore(client)
    with pytest.raises(VerificationStoreError):
        store.get("+94712345678")

    svc = VerificationService(store=store, notifier=Notifier())
    result = svc.check("+94712345678", "123456")
    assert result.ok is False
    assert result.reason == VerificationReason.DEPENDENCY_FAILURE
    # a fresh issue overwrites the bad value
    code = svc.issue("+94712345678").code
    assert svc.check("+94712345678", code).ok is True
