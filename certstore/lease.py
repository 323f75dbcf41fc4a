"""Lease lock backed by Redis.

A lease is a Redis key whose value is the owner's token and whose expiry is
the lease TTL. ``SET NX PX`` claims a key only when it is absent, and Redis
drops expired keys on its own, so a single command covers "free or expired".
Release deletes the key only while it still carries the caller's token.
"""

import logging
import uuid
from typing import Dict, Optional
from urllib.parse import urlparse

import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from .backend import DEFAULT_LOCK_TTL, run_with_deadline
from .exceptions import LockError, LockHeldError, LockNotHeldError, TransportError, ValidationError
from .models import LockHandle

logger = logging.getLogger(__name__)

DEFAULT_KEY_PREFIX = "certstore:lock:"

# Compare-and-delete: only the token that created the lease may remove it.
RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


def _mask_url(url: str) -> str:
    """Mask password in URL for logging."""
    parsed = urlparse(url)
    if parsed.password:
        return url.replace(parsed.password, "***", 1)
    return url


def create_redis_client(
    url: Optional[str] = None,
    address: Optional[str] = None,
    password: Optional[str] = None,
    db: int = 0,
    **kwargs,
) -> redis.Redis:
    """
    Create a Redis client for the lease backend.

    Args:
        url: Complete Redis URL (takes precedence)
        address: ``host:port`` of the Redis server
        password: Redis password
        db: Database index
        **kwargs: Additional Redis client parameters

    Returns:
        Configured async Redis client
    """
    pool_kwargs = {
        "socket_connect_timeout": kwargs.pop("socket_connect_timeout", 5),
        "socket_timeout": kwargs.pop("socket_timeout", 10),
    }

    if url:
        client = redis.from_url(url, **pool_kwargs, **kwargs)
        logger.info("Redis lock client created from URL: %s", _mask_url(url))
        return client

    if not address:
        raise ValidationError("Redis address or URL is required")
    host, _, port = address.rpartition(":")
    if not host:
        host, port = address, "6379"
    try:
        port_number = int(port)
    except ValueError as e:
        raise ValidationError(f"Invalid Redis port in address '{address}'") from e

    client = redis.Redis(
        host=host,
        port=port_number,
        password=password,
        db=db,
        **pool_kwargs,
        **kwargs,
    )
    logger.info(
        "Redis lock client created: %s:%s db=%d (auth: %s)",
        host, port_number, db, "yes" if password else "no",
    )
    return client


class RedisLeaseBackend:
    """
    TTL-bounded exclusive leases stored in Redis.

    Acquisition is one round trip with no retry: a held lease raises
    LockHeldError straight away and the caller decides whether to try again.
    Leases obtained and not yet released are remembered so ``close`` can
    give them back on shutdown; anything missed still expires with its TTL.
    """

    def __init__(
        self,
        redis_client: redis.Redis,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        owns_client: bool = False,
    ):
        """
        Initialize the lease backend.

        Args:
            redis_client: Async Redis client
            key_prefix: Prefix for lease keys
            owns_client: Close the Redis client in ``close``
        """
        self.redis = redis_client
        self.key_prefix = key_prefix
        self.owns_client = owns_client
        self._outstanding: Dict[str, LockHandle] = {}

    def _lease_key(self, resource: str) -> str:
        """Generate Redis key for a resource lease."""
        return f"{self.key_prefix}{resource}"

    @property
    def outstanding(self) -> Dict[str, LockHandle]:
        """Leases obtained by this backend and not yet released, by token."""
        return dict(self._outstanding)

    async def _claim(self, resource: str, ttl: float) -> LockHandle:
        token = str(uuid.uuid4())
        try:
            claimed = await self.redis.set(
                self._lease_key(resource),
                token,
                nx=True,
                px=max(1, int(ttl * 1000)),
            )
        except (RedisConnectionError, RedisTimeoutError) as e:
            raise TransportError(f"Redis unreachable while locking '{resource}': {e}") from e
        except RedisError as e:
            raise LockError(f"Redis error while locking '{resource}': {e}") from e

        if not claimed:
            raise LockHeldError(f"Lock '{resource}' is already held", resource=resource)

        handle = LockHandle(resource=resource, token=token, backend=self, ttl=ttl)
        self._outstanding[token] = handle
        logger.debug("Acquired lease for %s (ttl=%ss)", resource, ttl)
        return handle

    async def acquire(self, resource: str, ttl: float = DEFAULT_LOCK_TTL,
                      timeout: Optional[float] = None) -> LockHandle:
        """
        Claim the lease on ``resource`` if it is free or expired.

        Args:
            resource: Resource name
            ttl: Lease time-to-live in seconds
            timeout: Max seconds to wait for the round trip (None = no limit)

        Returns:
            LockHandle carrying a fresh lease token

        Raises:
            LockHeldError: If a live lease exists
            TransportError: If Redis cannot be reached
        """
        if not resource:
            raise ValidationError("Resource name must not be empty")
        if ttl <= 0:
            raise ValidationError("TTL must be positive")
        return await run_with_deadline(self._claim(resource, ttl), timeout, resource, "lock")

    async def _delete(self, handle: LockHandle) -> None:
        try:
            deleted = await self.redis.eval(
                RELEASE_SCRIPT, 1, self._lease_key(handle.resource), handle.token
            )
        except (RedisConnectionError, RedisTimeoutError) as e:
            raise TransportError(f"Redis unreachable while unlocking '{handle.resource}': {e}") from e
        except RedisError as e:
            raise LockError(f"Redis error while unlocking '{handle.resource}': {e}") from e

        # The lease is gone either way: released now, or expired/taken over.
        self._outstanding.pop(handle.token, None)
        if not deleted:
            raise LockNotHeldError(
                f"Lease on '{handle.resource}' is not held by token '{handle.token}'",
                resource=handle.resource,
                token=handle.token,
            )
        logger.debug("Released lease for %s", handle.resource)

    async def release(self, handle: LockHandle, timeout: Optional[float] = None) -> None:
        """
        Release the lease created with ``handle``'s token.

        Raises:
            LockNotHeldError: If the token no longer owns the lease
        """
        await run_with_deadline(self._delete(handle), timeout, handle.resource, "unlock")

    async def close(self) -> None:
        """Release every outstanding lease, then close the client if owned."""
        for handle in list(self._outstanding.values()):
            try:
                await self._delete(handle)
                logger.info("Released outstanding lease: %s", handle.resource)
            except LockNotHeldError:
                logger.debug("Outstanding lease on %s had already expired", handle.resource)
            except (TransportError, LockError) as e:
                logger.warning("Failed to release outstanding lease on %s: %s", handle.resource, e)
        self._outstanding.clear()

        if self.owns_client:
            await self.redis.aclose()
