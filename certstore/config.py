"""Storage configuration."""

import os
from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Mapping, Optional

from .backend import DEFAULT_LOCK_TTL
from .exceptions import ConfigurationError
from .lease import DEFAULT_KEY_PREFIX
from .mutex import DEFAULT_POLL_INTERVAL

LOCK_BACKEND_MUTEX = "mutex"
LOCK_BACKEND_REDIS = "redis"
LOCK_BACKENDS = (LOCK_BACKEND_MUTEX, LOCK_BACKEND_REDIS)

ENV_PREFIX = "CERTSTORE_"

# option name -> environment variable suffix
_ENV_NAMES = {
    "host": "S3_HOST",
    "bucket": "S3_BUCKET",
    "access_key": "S3_ACCESS_KEY",
    "secret_key": "S3_SECRET_KEY",
    "region": "S3_REGION",
    "secure": "S3_SECURE",
    "prefix": "PREFIX",
    "lock_backend": "LOCK_BACKEND",
    "lock_ttl": "LOCK_TTL",
    "fasms_endpoint": "FASMS_ENDPOINT",
    "fasms_api_key": "FASMS_API_KEY",
    "poll_interval": "POLL_INTERVAL",
    "redis_url": "REDIS_URL",
    "redis_address": "REDIS_ADDRESS",
    "redis_password": "REDIS_PASSWORD",
    "redis_db": "REDIS_DB",
    "redis_key_prefix": "REDIS_KEY_PREFIX",
}

_SECRETS = {"secret_key", "fasms_api_key", "redis_password", "redis_url"}


def _parse_bool(raw: Any) -> bool:
    if isinstance(raw, bool):
        return raw
    value = str(raw).strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"not a boolean: {raw!r}")


_CONVERTERS = {
    "secure": _parse_bool,
    "lock_ttl": float,
    "poll_interval": float,
    "redis_db": int,
}


@dataclass(frozen=True)
class StorageConfig:
    """Recognized options for one storage instance."""
    host: str = ""
    bucket: str = ""
    access_key: str = ""
    secret_key: str = ""
    region: Optional[str] = None
    secure: bool = True
    prefix: str = ""

    lock_backend: Optional[str] = None
    lock_ttl: float = DEFAULT_LOCK_TTL

    # Mutex service
    fasms_endpoint: Optional[str] = None
    fasms_api_key: Optional[str] = None
    poll_interval: float = DEFAULT_POLL_INTERVAL

    # Redis lease store
    redis_url: Optional[str] = None
    redis_address: Optional[str] = None
    redis_password: Optional[str] = None
    redis_db: int = 0
    redis_key_prefix: str = DEFAULT_KEY_PREFIX

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "StorageConfig":
        """Build a config from a JSON-style mapping, rejecting unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(f"Unknown storage option(s): {', '.join(unknown)}")

        values: Dict[str, Any] = {}
        for name, raw in data.items():
            if raw is None:
                continue
            converter = _CONVERTERS.get(name)
            try:
                values[name] = converter(raw) if converter else raw
            except (TypeError, ValueError) as e:
                raise ConfigurationError(f"Invalid value for '{name}': {e}") from e
        return cls(**values)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "StorageConfig":
        """Build a config from ``CERTSTORE_*`` environment variables."""
        environ = os.environ if environ is None else environ
        data = {}
        for name, suffix in _ENV_NAMES.items():
            raw = environ.get(ENV_PREFIX + suffix)
            if raw is not None and raw != "":
                data[name] = raw
        return cls.from_dict(data)

    def resolved_lock_backend(self) -> str:
        """Name of the single active lock backend."""
        if self.lock_backend:
            backend = self.lock_backend.strip().lower()
            if backend not in LOCK_BACKENDS:
                raise ConfigurationError(
                    f"Unknown lock backend '{self.lock_backend}', expected one of {', '.join(LOCK_BACKENDS)}"
                )
            return backend

        has_mutex = bool(self.fasms_endpoint)
        has_redis = bool(self.redis_url or self.redis_address)
        if has_mutex and has_redis:
            raise ConfigurationError(
                "Both mutex service and Redis lock settings are present; set lock_backend to choose one"
            )
        if has_mutex:
            return LOCK_BACKEND_MUTEX
        if has_redis:
            return LOCK_BACKEND_REDIS
        raise ConfigurationError("No lock backend configured (set fasms_endpoint or redis_address)")

    def validate(self) -> "StorageConfig":
        """Check required options and return a copy with the backend resolved."""
        if not self.host:
            raise ConfigurationError("S3 host is required")
        if not self.bucket:
            raise ConfigurationError("S3 bucket is required")
        if self.lock_ttl <= 0:
            raise ConfigurationError("lock_ttl must be positive")

        backend = self.resolved_lock_backend()
        if backend == LOCK_BACKEND_MUTEX:
            if not self.fasms_endpoint:
                raise ConfigurationError("fasms_endpoint is required for the mutex lock backend")
            if not self.fasms_api_key:
                raise ConfigurationError("fasms_api_key is required for the mutex lock backend")
            if self.lock_ttl < 1:
                raise ConfigurationError("lock_ttl must be at least 1 second for the mutex lock backend")
            if self.poll_interval <= 0:
                raise ConfigurationError("poll_interval must be positive")
        elif not (self.redis_url or self.redis_address):
            raise ConfigurationError("redis_address or redis_url is required for the redis lock backend")
        if self.redis_db < 0:
            raise ConfigurationError("redis_db must not be negative")

        return replace(self, lock_backend=backend)

    def masked(self) -> Dict[str, Any]:
        """Options as a dict with credentials hidden, for logging."""
        result = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name in _SECRETS and value:
                value = "***"
            result[f.name] = value
        return result
