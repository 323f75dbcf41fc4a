"""Tests for the storage facade, including the lock/store/unlock flow."""

import asyncio

import pytest

from certstore.exceptions import KeyNotFoundError, LockCancelledError
from certstore.objects import ObjectStore
from certstore.registry import LockRegistry
from certstore.storage import Storage


@pytest.fixture
def storage_factory(fake_s3, mutex_backend_factory):
    """Builds storage instances that share one bucket and one mutex service."""

    def factory(prefix="ssl"):
        return Storage(
            ObjectStore(fake_s3, "certificates"),
            LockRegistry(mutex_backend_factory(), ttl=60),
            prefix=prefix,
        )

    return factory


@pytest.mark.asyncio
async def test_keys_are_namespaced(fake_s3, storage_factory):
    storage = storage_factory()

    await storage.store("cert.pem", b"pem")
    await storage.store("ssl/key.pem", b"key")

    assert ("certificates", "ssl/cert.pem") in fake_s3.objects
    assert ("certificates", "ssl/key.pem") in fake_s3.objects
    assert await storage.load("ssl/cert.pem") == b"pem"
    assert await storage.load("key.pem") == b"key"


@pytest.mark.asyncio
async def test_object_operations(storage_factory):
    storage = storage_factory()
    await storage.store("certificates/example.com/example.com.crt", b"c" * 10)
    await storage.store("certificates/example.com/example.com.key", b"k" * 5)
    await storage.store("certificates/other.com/other.com.crt", b"o")

    assert await storage.exists("certificates/example.com/example.com.crt")
    assert await storage.list("certificates/example.com") == [
        "ssl/certificates/example.com/example.com.crt",
        "ssl/certificates/example.com/example.com.key",
    ]
    assert len(await storage.list("certificates", recursive=True)) == 3
    assert await storage.list("certificates") == []

    info = await storage.stat("certificates/example.com/example.com.key")
    assert info.key == "ssl/certificates/example.com/example.com.key"
    assert info.size == 5

    await storage.delete("certificates/example.com/example.com.key")
    assert not await storage.exists("certificates/example.com/example.com.key")
    with pytest.raises(KeyNotFoundError):
        await storage.load("certificates/example.com/example.com.key")


@pytest.mark.asyncio
async def test_unlock_unknown_key_is_noop(mutex_service, storage_factory):
    storage = storage_factory()

    await storage.unlock("example.com/cert")

    assert mutex_service.release_calls == 0


@pytest.mark.asyncio
async def test_second_caller_waits_for_unlock(mutex_service, storage_factory):
    caller_a, caller_b = storage_factory(), storage_factory()
    payload = bytes(range(256)) * 4 + b"\x00" * 176
    assert len(payload) == 1200

    await caller_a.lock("example.com/cert")
    waiting = asyncio.ensure_future(caller_b.lock("example.com/cert", timeout=5))
    await asyncio.sleep(0.15)
    assert not waiting.done()

    await caller_a.store("example.com/cert", payload)
    await asyncio.sleep(0.1)
    assert not waiting.done()
    await caller_a.unlock("example.com/cert")

    await waiting
    assert caller_b.registry.is_held("example.com/cert")
    assert not caller_a.registry.is_held("example.com/cert")
    assert await caller_b.load("example.com/cert") == payload
    await caller_b.unlock("example.com/cert")
    assert mutex_service.holder("example.com/cert") is None


@pytest.mark.asyncio
async def test_timed_out_lock_is_not_recorded(storage_factory):
    holder, waiter = storage_factory(), storage_factory()
    await holder.lock("example.com/cert")

    with pytest.raises(LockCancelledError):
        await waiter.lock("example.com/cert", timeout=0.2)

    await asyncio.sleep(0.1)
    assert len(waiter.registry) == 0


@pytest.mark.asyncio
async def test_context_exit_releases_held_locks(mutex_service, storage_factory):
    async with storage_factory() as storage:
        await storage.lock("a.example.com/cert")
        await storage.lock("b.example.com/cert")
        assert len(mutex_service.leases) == 2

    assert mutex_service.leases == {}
    assert len(storage.registry) == 0
