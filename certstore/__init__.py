"""certstore - S3 certificate storage with distributed locking."""

from .backend import LockBackend, run_with_deadline
from .client import MutexServiceClient
from .config import StorageConfig
from .exceptions import (
    CertStoreError,
    ValidationError,
    ConfigurationError,
    TransportError,
    ProtocolError,
    AuthenticationError,
    DecodeError,
    LockError,
    LockHeldError,
    LockCancelledError,
    LockNotHeldError,
    ObjectStoreError,
    KeyNotFoundError,
)
from .keys import namespace
from .lease import RedisLeaseBackend
from .models import (
    LockHandle,
    KeyInfo,
    ObtainMutexResult,
    ReleaseMutexResult,
)
from .mutex import MutexServiceBackend
from .objects import ObjectStore
from .registry import LockRegistry
from .storage import Storage

__version__ = "1.0.0"
__all__ = [
    "Storage",
    "StorageConfig",
    "LockRegistry",
    "LockBackend",
    "RedisLeaseBackend",
    "MutexServiceBackend",
    "MutexServiceClient",
    "ObjectStore",
    "namespace",
    "run_with_deadline",
    "CertStoreError",
    "ValidationError",
    "ConfigurationError",
    "TransportError",
    "ProtocolError",
    "AuthenticationError",
    "DecodeError",
    "LockError",
    "LockHeldError",
    "LockCancelledError",
    "LockNotHeldError",
    "ObjectStoreError",
    "KeyNotFoundError",
    "LockHandle",
    "KeyInfo",
    "ObtainMutexResult",
    "ReleaseMutexResult",
]
