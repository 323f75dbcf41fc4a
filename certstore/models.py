"""certstore data models."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional
import time


@dataclass(frozen=True)
class LockHandle:
    """One process's claim over one resource name."""
    resource: str
    token: str
    backend: Any = field(repr=False, compare=False)
    ttl: float = 60.0
    acquired_at: float = field(default_factory=time.time)

    @property
    def expires_at(self) -> float:
        """Wall-clock time after which the lease is no longer guaranteed."""
        return self.acquired_at + self.ttl


@dataclass
class ObtainMutexResult:
    """Result of a single mutex acquisition attempt."""
    obtained: bool
    uuid: str = ""


@dataclass
class ReleaseMutexResult:
    """Result of a mutex release request."""
    released: bool


@dataclass
class KeyInfo:
    """Metadata about a stored object."""
    key: str
    size: int
    modified: Optional[datetime]
    is_terminal: bool = True
