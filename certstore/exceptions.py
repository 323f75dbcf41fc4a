"""certstore exception classes."""

from typing import Optional


class CertStoreError(Exception):
    """Base exception for all certstore errors."""
    pass


class ValidationError(CertStoreError):
    """Raised when input validation fails."""
    pass


class ConfigurationError(ValidationError):
    """Raised when the storage configuration is missing or inconsistent."""
    pass


class TransportError(CertStoreError):
    """Raised when the coordination backend or object store cannot be reached."""
    pass


class ProtocolError(CertStoreError):
    """Raised when the mutex service answers with something unexpected."""

    def __init__(self, message: str, status_code: Optional[int] = None, endpoint: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.endpoint = endpoint


class AuthenticationError(ProtocolError):
    """Raised when the mutex service rejects the API key."""
    pass


class DecodeError(ProtocolError):
    """Raised when a mutex service response body cannot be decoded."""
    pass


class LockError(CertStoreError):
    """Raised when lock operations fail."""
    pass


class LockHeldError(LockError):
    """Raised when trying to acquire a lock that's already held."""

    def __init__(self, message: str, resource: Optional[str] = None):
        super().__init__(message)
        self.resource = resource


class LockCancelledError(LockError):
    """Raised when the caller's deadline elapses before a lock call completes."""

    def __init__(self, message: str, resource: Optional[str] = None, timeout: Optional[float] = None):
        super().__init__(message)
        self.resource = resource
        self.timeout = timeout


class LockNotHeldError(LockError):
    """Raised when releasing with a token that no longer owns the lease."""

    def __init__(self, message: str, resource: Optional[str] = None, token: Optional[str] = None):
        super().__init__(message)
        self.resource = resource
        self.token = token


class ObjectStoreError(CertStoreError):
    """Raised when the object store rejects an operation."""
    pass


class KeyNotFoundError(ObjectStoreError):
    """Raised when a key does not exist in the object store."""

    def __init__(self, message: str, key: Optional[str] = None):
        super().__init__(message)
        self.key = key
