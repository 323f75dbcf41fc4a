"""S3 object store adapter."""

import logging
from typing import Any, List, Optional

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError, HTTPClientError
from botocore.exceptions import ConnectionError as BotoConnectionError

from .exceptions import KeyNotFoundError, ObjectStoreError, TransportError
from .keys import SEPARATOR, is_directory_marker
from .models import KeyInfo

logger = logging.getLogger(__name__)

_MISSING_CODES = {"NoSuchKey", "404", "NotFound"}


def create_s3_client(
    host: str,
    access_key: str = "",
    secret_key: str = "",
    secure: bool = True,
    region: Optional[str] = None,
) -> Any:
    """Build a boto3 S3 client for an S3-compatible endpoint."""
    scheme = "https" if secure else "http"
    endpoint_url = host if "://" in host else f"{scheme}://{host}"
    return boto3.client(
        "s3",
        endpoint_url=endpoint_url,
        aws_access_key_id=access_key or None,
        aws_secret_access_key=secret_key or None,
        region_name=region,
        config=BotoConfig(s3={"addressing_style": "path"}),
    )


class ObjectStore:
    """Blob operations against one bucket.

    Keys are used exactly as given; namespacing happens in the storage layer.
    """

    def __init__(self, client: Any, bucket: str):
        self.client = client
        self.bucket = bucket

    def _translate(self, e: Exception, operation: str, key: str) -> Exception:
        if isinstance(e, ClientError):
            code = str(e.response.get("Error", {}).get("Code", ""))
            if code in _MISSING_CODES:
                return KeyNotFoundError(f"{operation}: key '{key}' does not exist", key=key)
            return ObjectStoreError(f"{operation} failed for '{key}': {code or e}")
        # Connection and timeout failures only; credential errors are not transport.
        if isinstance(e, (BotoConnectionError, HTTPClientError)):
            return TransportError(f"{operation} failed for '{key}': {e}")
        return ObjectStoreError(f"{operation} failed for '{key}': {e}")

    def put(self, key: str, data: bytes) -> None:
        try:
            self.client.put_object(Bucket=self.bucket, Key=key, Body=data, ContentLength=len(data))
        except (ClientError, BotoCoreError) as e:
            raise self._translate(e, "put", key) from e

    def get(self, key: str) -> bytes:
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=key)
            return response["Body"].read()
        except (ClientError, BotoCoreError) as e:
            raise self._translate(e, "get", key) from e

    def delete(self, key: str) -> None:
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise self._translate(e, "delete", key) from e

    def stat(self, key: str) -> KeyInfo:
        try:
            head = self.client.head_object(Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise self._translate(e, "stat", key) from e
        return KeyInfo(
            key=key,
            size=int(head.get("ContentLength", 0)),
            modified=head.get("LastModified"),
            is_terminal=not is_directory_marker(key),
        )

    def exists(self, key: str) -> bool:
        try:
            self.stat(key)
        except KeyNotFoundError:
            return False
        return True

    def list(self, prefix: str, recursive: bool = False) -> List[str]:
        """List keys under ``prefix`` in service order, skipping directory markers."""
        kwargs = {"Bucket": self.bucket, "Prefix": prefix}
        if not recursive:
            kwargs["Delimiter"] = SEPARATOR

        keys = []
        try:
            paginator = self.client.get_paginator("list_objects_v2")
            for page in paginator.paginate(**kwargs):
                for obj in page.get("Contents", []):
                    if not is_directory_marker(obj["Key"]):
                        keys.append(obj["Key"])
        except (ClientError, BotoCoreError) as e:
            raise self._translate(e, "list", prefix) from e
        return keys
