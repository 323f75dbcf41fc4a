"""Process-wide table of held locks."""

import logging
import threading
import time
from typing import Dict, List, Optional

from .backend import DEFAULT_LOCK_TTL, LockBackend
from .exceptions import CertStoreError, LockHeldError
from .models import LockHandle

logger = logging.getLogger(__name__)


class LockRegistry:
    """
    Tracks the lock handles this process holds, keyed by resource name.

    The mapping is guarded by a thread lock that is never held across an
    await, so callers working on different resources do not wait on each
    other. Callers in this process locking a name whose entry is still live
    are refused at once; names not yet recorded race through the backend
    like separate processes would.
    """

    def __init__(self, backend: LockBackend, ttl: float = DEFAULT_LOCK_TTL):
        """
        Args:
            backend: Lock backend that performs acquire and release
            ttl: Lease TTL used when ``lock`` is called without one
        """
        self.backend = backend
        self.ttl = ttl
        self._handles: Dict[str, LockHandle] = {}
        self._guard = threading.Lock()

    def __len__(self) -> int:
        with self._guard:
            return len(self._handles)

    def is_held(self, resource: str) -> bool:
        with self._guard:
            return resource in self._handles

    def held(self) -> List[str]:
        """Resource names with an entry in the table."""
        with self._guard:
            return list(self._handles)

    def get(self, resource: str) -> Optional[LockHandle]:
        with self._guard:
            return self._handles.get(resource)

    async def lock(self, resource: str, ttl: Optional[float] = None,
                   timeout: Optional[float] = None) -> LockHandle:
        """
        Acquire ``resource`` and record the handle.

        Re-locking a name this process still holds a live lease on raises
        LockHeldError without contacting the backend. A recorded handle whose
        lease has expired is released (best-effort) and dropped before the
        backend is asked again. Failures insert nothing and propagate.
        """
        with self._guard:
            current = self._handles.get(resource)
            if current is not None and current.expires_at > time.time():
                raise LockHeldError(
                    f"Lock '{resource}' is already held by this process", resource=resource
                )
            if current is not None:
                del self._handles[resource]
        if current is not None:
            await self._release_stale(current)

        handle = await self.backend.acquire(
            resource, self.ttl if ttl is None else ttl, timeout=timeout
        )

        with self._guard:
            displaced = self._handles.get(resource)
            self._handles[resource] = handle

        # Another caller in this process recorded a handle while we waited.
        if displaced is not None and displaced.token != handle.token:
            await self._release_stale(displaced)
        return handle

    async def _release_stale(self, handle: LockHandle) -> None:
        logger.warning("Releasing stale lock handle for %s", handle.resource)
        try:
            await self.backend.release(handle)
        except CertStoreError as e:
            logger.debug("Stale handle for %s was not released: %s", handle.resource, e)

    async def unlock(self, resource: str, timeout: Optional[float] = None) -> None:
        """
        Release ``resource`` if this process holds it.

        Unlocking a name with no entry is a no-op. The entry is removed before
        the backend is called, so release errors propagate with the table
        already cleaned up.
        """
        with self._guard:
            handle = self._handles.pop(resource, None)
        if handle is None:
            return
        await self.backend.release(handle, timeout=timeout)

    async def cleanup(self) -> None:
        """Release every recorded handle, ignoring individual failures."""
        with self._guard:
            handles = list(self._handles.values())
            self._handles.clear()

        for handle in handles:
            logger.info("Release lock: %s", handle.resource)
            try:
                await self.backend.release(handle)
            except CertStoreError as e:
                logger.warning("Failed to release lock on %s during cleanup: %s", handle.resource, e)
