"""Mutex service HTTP client."""

from typing import Any, Dict, Optional

import httpx

from .exceptions import (
    AuthenticationError,
    DecodeError,
    ProtocolError,
    TransportError,
    ValidationError,
)
from .models import ObtainMutexResult, ReleaseMutexResult

MUTEX_PATH = "/api/v1/mutex"


class MutexServiceClient:
    """Single-shot calls against a remote mutex service.

    The service is the source of truth for lease state; this client only
    issues one obtain or release request per call. Polling lives in
    :class:`certstore.mutex.MutexServiceBackend`.
    """

    def __init__(
        self,
        endpoint: str,
        api_key: str,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize the mutex service client.

        Args:
            endpoint: Base URL of the mutex service
            api_key: API key sent with every request
            timeout: Per-request HTTP timeout in seconds
            client: Pre-built httpx client to use instead of creating one
        """
        if not endpoint:
            raise ValidationError("Mutex service endpoint is required")
        self.endpoint = endpoint.rstrip("/")
        self.api_key = api_key
        self.mutex_url = self.endpoint + MUTEX_PATH
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=timeout)

    def _validate_resource_name(self, name: str) -> None:
        """Validate resource name."""
        if not name:
            raise ValidationError("Resource name must not be empty")

    def _validate_ttl(self, ttl: float) -> int:
        """Validate TTL value and convert it to whole seconds."""
        seconds = int(ttl)
        if seconds < 1:
            raise ValidationError("TTL must be at least 1 second")
        return seconds

    def _params(self, resource: str, **extra: str) -> Dict[str, str]:
        params = {"api_key": self.api_key, "resource_name": resource}
        params.update(extra)
        return params

    def _handle_response(self, response: httpx.Response, action: str) -> Dict[str, Any]:
        """Check the status code and decode the JSON body."""
        if response.status_code in (401, 403):
            raise AuthenticationError(
                f"{action}: mutex service rejected the API key "
                f"(status {response.status_code}) on endpoint {self.endpoint}",
                status_code=response.status_code,
                endpoint=self.endpoint,
            )
        if response.status_code != 200:
            raise ProtocolError(
                f"{action}: got status code {response.status_code}, "
                f"but expected 200 on endpoint {self.endpoint}",
                status_code=response.status_code,
                endpoint=self.endpoint,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise DecodeError(
                f"{action}: failed to parse response from {self.endpoint}: {e}",
                status_code=response.status_code,
                endpoint=self.endpoint,
            ) from e
        if not isinstance(data, dict):
            raise DecodeError(
                f"{action}: expected a JSON object from {self.endpoint}, got {type(data).__name__}",
                status_code=response.status_code,
                endpoint=self.endpoint,
            )
        return data

    async def obtain_mutex(self, resource: str, ttl: float = 60) -> ObtainMutexResult:
        """Ask the service for the mutex on ``resource``.

        Args:
            resource: Resource name
            ttl: Lease time-to-live in seconds (truncated to whole seconds)

        Returns:
            ObtainMutexResult; ``obtained`` is False when someone else holds it
        """
        self._validate_resource_name(resource)
        seconds = self._validate_ttl(ttl)

        try:
            response = await self.client.get(
                self.mutex_url, params=self._params(resource, ttl=str(seconds))
            )
        except httpx.RequestError as e:
            raise TransportError(f"Network error obtaining mutex for '{resource}': {e}") from e

        data = self._handle_response(response, "obtain mutex")
        obtained = data.get("obtained")
        if not isinstance(obtained, bool):
            raise DecodeError(
                f"obtain mutex: response from {self.endpoint} is missing 'obtained'",
                status_code=response.status_code,
                endpoint=self.endpoint,
            )
        uuid = data.get("uuid") or ""
        if obtained and (not isinstance(uuid, str) or not uuid):
            raise DecodeError(
                f"obtain mutex: response from {self.endpoint} has no usable 'uuid'",
                status_code=response.status_code,
                endpoint=self.endpoint,
            )
        return ObtainMutexResult(obtained=obtained, uuid=uuid)

    async def release_mutex(self, resource: str, uuid: str) -> ReleaseMutexResult:
        """Release the mutex on ``resource`` owned by ``uuid``.

        Args:
            resource: Resource name
            uuid: Ownership token returned by :meth:`obtain_mutex`
        """
        self._validate_resource_name(resource)

        try:
            response = await self.client.delete(
                self.mutex_url, params=self._params(resource, uuid=uuid)
            )
        except httpx.RequestError as e:
            raise TransportError(f"Network error releasing mutex for '{resource}': {e}") from e

        data = self._handle_response(response, "release mutex")
        released = data.get("released")
        if not isinstance(released, bool):
            raise DecodeError(
                f"release mutex: response from {self.endpoint} is missing 'released'",
                status_code=response.status_code,
                endpoint=self.endpoint,
            )
        return ReleaseMutexResult(released=released)

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()
