"""Lock backend interface and the deadline race shared by the backends."""

import asyncio
import logging
from typing import Awaitable, Optional, Protocol, TypeVar

from .exceptions import LockCancelledError
from .models import LockHandle

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_LOCK_TTL = 60.0


class LockBackend(Protocol):
    """Pluggable coordination strategy behind the lock registry."""

    async def acquire(self, resource: str, ttl: float = DEFAULT_LOCK_TTL,
                      timeout: Optional[float] = None) -> LockHandle:
        """Obtain an exclusive lease on ``resource`` or raise."""
        ...

    async def release(self, handle: LockHandle, timeout: Optional[float] = None) -> None:
        """Give up the lease identified by ``handle``."""
        ...

    async def close(self) -> None:
        """Release outstanding leases and close connections."""
        ...


def _discard_outcome(task: "asyncio.Future") -> None:
    # Retrieve the abandoned task's outcome so it is never reported.
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.debug("Discarded result of abandoned lock call: %r", exc)


async def run_with_deadline(awaitable: Awaitable[T], timeout: Optional[float],
                            resource: str, action: str = "lock") -> T:
    """Race ``awaitable`` against a deadline; the first to finish wins.

    Args:
        awaitable: The lock activity (polling loop or single request)
        timeout: Seconds to wait, or None to wait until the activity finishes
        resource: Resource name, used in the error message
        action: Verb describing the activity, used in the error message

    Returns:
        Whatever the activity returns

    Raises:
        LockCancelledError: If the deadline elapses first. The activity is
            cancelled and its eventual outcome discarded.
    """
    task = asyncio.ensure_future(awaitable)
    try:
        done, _ = await asyncio.wait({task}, timeout=timeout)
    except asyncio.CancelledError:
        task.cancel()
        task.add_done_callback(_discard_outcome)
        raise

    if task in done:
        return task.result()

    task.cancel()
    task.add_done_callback(_discard_outcome)
    raise LockCancelledError(
        f"Timed out after {timeout}s waiting to {action} '{resource}'",
        resource=resource,
        timeout=timeout,
    )
