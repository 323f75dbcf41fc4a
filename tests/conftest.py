"""Shared pytest fixtures and in-memory stand-ins for Redis, S3 and the mutex service."""

import asyncio
import io
import time
import uuid
from datetime import datetime, timezone

import httpx
import pytest
import respx
from botocore.exceptions import ClientError

from certstore.client import MutexServiceClient
from certstore.lease import RedisLeaseBackend
from certstore.mutex import MutexServiceBackend
from certstore.objects import ObjectStore

MUTEX_ENDPOINT = "https://mutex.test"
MUTEX_HOST = "mutex.test"
MUTEX_API_KEY = "test-api-key"
BUCKET = "certificates"


class FakeRedis:
    """Async Redis stand-in with PX expiry and the compare-and-delete script."""

    def __init__(self):
        self.data = {}
        self.closed = False
        self.fail_with = None
        self.delay = 0.0
        self.set_calls = 0

    def _live(self, key):
        entry = self.data.get(key)
        if entry is not None and entry[1] is not None and entry[1] <= time.monotonic():
            del self.data[key]
            return None
        return entry

    async def set(self, key, value, nx=False, px=None, ex=None):
        self.set_calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with is not None:
            raise self.fail_with
        if nx and self._live(key) is not None:
            return None
        expires = None
        if px is not None:
            expires = time.monotonic() + px / 1000.0
        elif ex is not None:
            expires = time.monotonic() + ex
        self.data[key] = (value, expires)
        return True

    async def get(self, key):
        entry = self._live(key)
        return entry[0] if entry else None

    async def eval(self, script, numkeys, *args):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with is not None:
            raise self.fail_with
        key, token = args[0], args[1]
        entry = self._live(key)
        if entry is not None and entry[0] == token:
            del self.data[key]
            return 1
        return 0

    async def aclose(self):
        self.closed = True


class FakeMutexService:
    """Mutex service speaking the obtain/release wire contract, for respx."""

    def __init__(self, api_key=MUTEX_API_KEY):
        self.api_key = api_key
        self.leases = {}
        self.obtain_calls = 0
        self.release_calls = 0

    def _current(self, name):
        lease = self.leases.get(name)
        if lease is not None and lease[1] <= time.monotonic():
            del self.leases[name]
            return None
        return lease

    def obtain(self, request):
        params = request.url.params
        if params.get("api_key") != self.api_key:
            return httpx.Response(401, json={"error": "invalid api key"})
        self.obtain_calls += 1
        name = params["resource_name"]
        ttl = int(params["ttl"])
        if self._current(name) is not None:
            return httpx.Response(200, json={"obtained": False, "uuid": ""})
        token = str(uuid.uuid4())
        self.leases[name] = (token, time.monotonic() + ttl)
        return httpx.Response(200, json={"obtained": True, "uuid": token})

    def release(self, request):
        params = request.url.params
        if params.get("api_key") != self.api_key:
            return httpx.Response(401, json={"error": "invalid api key"})
        self.release_calls += 1
        name = params["resource_name"]
        lease = self._current(name)
        if lease is None or lease[0] != params.get("uuid"):
            return httpx.Response(200, json={"released": False})
        del self.leases[name]
        return httpx.Response(200, json={"released": True})

    def holder(self, name):
        lease = self._current(name)
        return lease[0] if lease else None


def _client_error(code, operation):
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class FakePaginator:
    def __init__(self, s3, page_size=2):
        self.s3 = s3
        self.page_size = page_size

    def paginate(self, Bucket, Prefix="", Delimiter=None):
        keys = []
        for bucket, key in sorted(self.s3.objects):
            if bucket != Bucket or not key.startswith(Prefix):
                continue
            if Delimiter and Delimiter in key[len(Prefix):]:
                continue
            keys.append(key)
        for i in range(0, len(keys), self.page_size):
            yield {"Contents": [{"Key": k} for k in keys[i:i + self.page_size]]}


class FakeS3Client:
    """Subset of the boto3 S3 client used by ObjectStore."""

    def __init__(self):
        self.objects = {}

    def put_object(self, Bucket, Key, Body, ContentLength=None):
        self.objects[(Bucket, Key)] = (bytes(Body), datetime.now(timezone.utc))
        return {}

    def get_object(self, Bucket, Key):
        if (Bucket, Key) not in self.objects:
            raise _client_error("NoSuchKey", "GetObject")
        return {"Body": io.BytesIO(self.objects[(Bucket, Key)][0])}

    def delete_object(self, Bucket, Key):
        self.objects.pop((Bucket, Key), None)
        return {}

    def head_object(self, Bucket, Key):
        if (Bucket, Key) not in self.objects:
            raise _client_error("404", "HeadObject")
        data, modified = self.objects[(Bucket, Key)]
        return {"ContentLength": len(data), "LastModified": modified}

    def get_paginator(self, name):
        assert name == "list_objects_v2"
        return FakePaginator(self)


@pytest.fixture
def fake_redis():
    """In-memory Redis with lease expiry."""
    return FakeRedis()


@pytest.fixture
def lease_backend(fake_redis):
    """RedisLeaseBackend over the in-memory Redis."""
    return RedisLeaseBackend(fake_redis)


@pytest.fixture
def mutex_service():
    """Fake mutex service routed through respx for every httpx client."""
    service = FakeMutexService()
    with respx.mock(assert_all_called=False) as router:
        router.route(method="GET", host=MUTEX_HOST, path="/api/v1/mutex").mock(side_effect=service.obtain)
        router.route(method="DELETE", host=MUTEX_HOST, path="/api/v1/mutex").mock(side_effect=service.release)
        yield service


def make_mutex_backend(poll_interval=0.05):
    """A backend with its own HTTP client, like a separate process would have."""
    return MutexServiceBackend(MutexServiceClient(MUTEX_ENDPOINT, MUTEX_API_KEY), poll_interval=poll_interval)


@pytest.fixture
def mutex_backend(mutex_service):
    return make_mutex_backend()


@pytest.fixture
def mutex_backend_factory(mutex_service):
    """Builds independent backends that share the fake service."""
    return make_mutex_backend


@pytest.fixture
def fake_s3():
    return FakeS3Client()


@pytest.fixture
def object_store(fake_s3):
    return ObjectStore(fake_s3, BUCKET)
