"""Certificate storage on S3 with distributed locking."""

import asyncio
import logging
from typing import List, Optional

from .backend import LockBackend
from .client import MutexServiceClient
from .config import LOCK_BACKEND_MUTEX, StorageConfig
from .exceptions import CertStoreError
from .keys import directory_prefix, namespace
from .lease import RedisLeaseBackend, create_redis_client
from .models import KeyInfo
from .mutex import MutexServiceBackend
from .objects import ObjectStore, create_s3_client
from .registry import LockRegistry

logger = logging.getLogger(__name__)


def build_lock_backend(config: StorageConfig) -> LockBackend:
    """Create the lock backend selected by a validated config."""
    if config.resolved_lock_backend() == LOCK_BACKEND_MUTEX:
        client = MutexServiceClient(config.fasms_endpoint, config.fasms_api_key)
        return MutexServiceBackend(client, poll_interval=config.poll_interval)

    redis_client = create_redis_client(
        url=config.redis_url,
        address=config.redis_address,
        password=config.redis_password,
        db=config.redis_db,
    )
    return RedisLeaseBackend(redis_client, key_prefix=config.redis_key_prefix, owns_client=True)


class Storage:
    """Namespaced blob storage plus cross-process locks for certificate data.

    Lock before mutating a key, store/load/delete through this object, then
    unlock. Object operations run the blocking S3 client in a worker thread.
    """

    def __init__(
        self,
        objects: ObjectStore,
        registry: LockRegistry,
        prefix: str = "",
    ):
        self.objects = objects
        self.registry = registry
        self.prefix = prefix

    @classmethod
    def from_config(cls, config: StorageConfig) -> "Storage":
        """Provision S3 and lock clients from configuration."""
        config = config.validate()
        logger.info("Provisioning storage: %s", config.masked())

        s3_client = create_s3_client(
            config.host,
            access_key=config.access_key,
            secret_key=config.secret_key,
            secure=config.secure,
            region=config.region,
        )
        backend = build_lock_backend(config)
        return cls(
            ObjectStore(s3_client, config.bucket),
            LockRegistry(backend, ttl=config.lock_ttl),
            prefix=config.prefix,
        )

    def key_prefix(self, key: str) -> str:
        return namespace(self.prefix, key)

    async def lock(self, key: str, timeout: Optional[float] = None) -> None:
        """Block until this process holds the lock named ``key``."""
        logger.info("Lock: %s", key)
        try:
            await self.registry.lock(key, timeout=timeout)
        except CertStoreError as e:
            logger.error("Lock error: %s", e)
            raise

    async def unlock(self, key: str, timeout: Optional[float] = None) -> None:
        logger.info("Release lock: %s", key)
        await self.registry.unlock(key, timeout=timeout)

    async def store(self, key: str, value: bytes) -> None:
        key = self.key_prefix(key)
        logger.info("Store: %s, %d bytes", key, len(value))
        await asyncio.to_thread(self.objects.put, key, value)

    async def load(self, key: str) -> bytes:
        key = self.key_prefix(key)
        logger.info("Load: %s", key)
        return await asyncio.to_thread(self.objects.get, key)

    async def delete(self, key: str) -> None:
        key = self.key_prefix(key)
        logger.info("Delete: %s", key)
        await asyncio.to_thread(self.objects.delete, key)

    async def exists(self, key: str) -> bool:
        key = self.key_prefix(key)
        logger.info("Exists: %s", key)
        return await asyncio.to_thread(self.objects.exists, key)

    async def list(self, prefix: str, recursive: bool = False) -> List[str]:
        """Keys stored under ``prefix``, excluding directory markers."""
        prefix = directory_prefix(self.prefix, prefix)
        logger.info("List: %s (recursive=%s)", prefix, recursive)
        return await asyncio.to_thread(self.objects.list, prefix, recursive)

    async def stat(self, key: str) -> KeyInfo:
        key = self.key_prefix(key)
        logger.info("Stat: %s", key)
        return await asyncio.to_thread(self.objects.stat, key)

    async def cleanup(self) -> None:
        """Release every lock this process still holds."""
        logger.info("S3 Cleanup")
        await self.registry.cleanup()

    async def close(self) -> None:
        await self.registry.backend.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        try:
            await self.cleanup()
        finally:
            await self.close()
