"""Poll-based lock backed by a remote mutex service."""

import asyncio
import logging
from typing import Optional

from .backend import DEFAULT_LOCK_TTL, run_with_deadline
from .client import MutexServiceClient
from .exceptions import LockNotHeldError
from .models import LockHandle

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 0.5


class MutexServiceBackend:
    """Acquire leases by polling a mutex service until it grants one.

    The service keeps all lease state. ``acquire`` keeps asking until the
    service says "obtained", the caller's deadline passes, the calling task is
    cancelled, or a request fails. Only one request is in flight per call.
    """

    def __init__(self, client: MutexServiceClient, poll_interval: float = DEFAULT_POLL_INTERVAL):
        self.client = client
        self.poll_interval = poll_interval

    async def _poll(self, resource: str, ttl: float) -> LockHandle:
        # The service only accepts whole seconds.
        ttl = int(ttl)
        attempts = 0
        while True:
            attempts += 1
            result = await self.client.obtain_mutex(resource, ttl)
            if result.obtained:
                logger.debug("Obtained mutex for %s after %d attempt(s)", resource, attempts)
                return LockHandle(resource=resource, token=result.uuid, backend=self, ttl=ttl)
            logger.debug("Mutex for %s is held elsewhere, retrying in %.2fs", resource, self.poll_interval)
            await asyncio.sleep(self.poll_interval)

    async def acquire(self, resource: str, ttl: float = DEFAULT_LOCK_TTL,
                      timeout: Optional[float] = None) -> LockHandle:
        """Block until the service grants the mutex on ``resource``.

        Args:
            resource: Resource name
            ttl: Lease time-to-live in seconds
            timeout: Caller deadline in seconds; None waits indefinitely

        Raises:
            LockCancelledError: If the deadline passes first
            TransportError: If the service cannot be reached
            ProtocolError: On an unexpected status or response body
        """
        return await run_with_deadline(self._poll(resource, ttl), timeout, resource, "lock")

    async def _release(self, handle: LockHandle) -> None:
        result = await self.client.release_mutex(handle.resource, handle.token)
        if not result.released:
            raise LockNotHeldError(
                f"could not unlock resource '{handle.resource}' with uuid '{handle.token}'",
                resource=handle.resource,
                token=handle.token,
            )

    async def release(self, handle: LockHandle, timeout: Optional[float] = None) -> None:
        """Release the mutex held by ``handle``.

        Raises:
            LockNotHeldError: If the service reports the mutex was not released
        """
        await run_with_deadline(self._release(handle), timeout, handle.resource, "unlock")

    async def close(self) -> None:
        await self.client.close()
