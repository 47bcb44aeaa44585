"""Focused unit tests for the S3 object store that do not require a live S3 endpoint."""

from __future__ import annotations

import io
from typing import Any

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError, ProfileNotFound

import s3volume.storage_s3 as storage_s3
from s3volume import VolumeProperties, open_volume
from s3volume.config import BackendConfig
from s3volume.errors import InvalidConfigError, UnreachableError, UpstreamError
from s3volume.storage_s3 import S3ObjectStore, build_s3_client, error_code, is_not_found
from s3volume.types import Value


def _client_error(code: str, operation: str = "GetObject") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class _Paginator:
    def __init__(self, client: _FakeS3Client) -> None:
        self._client = client

    def paginate(self, Bucket: str) -> list[dict[str, Any]]:
        keys = sorted(self._client.objects)
        return [{"Contents": [{"Key": k} for k in keys[i : i + 2]]} for i in range(0, len(keys), 2)]


class _FakeS3Client:
    """Records calls and keeps objects in a dict, shaped like boto3 responses."""

    def __init__(self) -> None:
        self.objects: dict[str, tuple[bytes, dict[str, str]]] = {}
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.create_error: str | None = None
        self.bucket_deleted = False
        self.closed = False

    def put_object(self, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(("put_object", kwargs))
        self.objects[kwargs["Key"]] = (kwargs["Body"], kwargs["Metadata"])
        return {}

    def get_object(self, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(("get_object", kwargs))
        if kwargs["Key"] not in self.objects:
            raise _client_error("NoSuchKey")
        body, meta = self.objects[kwargs["Key"]]
        return {"Body": io.BytesIO(body), "Metadata": meta}

    def delete_object(self, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(("delete_object", kwargs))
        self.objects.pop(kwargs["Key"], None)
        return {}

    def list_objects_v2(self, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(("list_objects_v2", kwargs))
        keys = sorted(k for k in self.objects if k.startswith(kwargs["Prefix"]))
        start = int(kwargs.get("ContinuationToken", 0))
        limit = kwargs["MaxKeys"]
        page = keys[start : start + limit]
        resp: dict[str, Any] = {"KeyCount": len(page), "IsTruncated": start + limit < len(keys)}
        if page:
            resp["Contents"] = [{"Key": k} for k in page]
        if resp["IsTruncated"]:
            resp["NextContinuationToken"] = str(start + limit)
        return resp

    def create_bucket(self, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(("create_bucket", kwargs))
        if self.create_error:
            raise _client_error(self.create_error, "CreateBucket")
        return {}

    def delete_objects(self, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(("delete_objects", kwargs))
        for item in kwargs["Delete"]["Objects"]:
            self.objects.pop(item["Key"], None)
        return {}

    def delete_bucket(self, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(("delete_bucket", kwargs))
        self.bucket_deleted = True
        return {}

    def get_paginator(self, name: str) -> _Paginator:
        assert name == "list_objects_v2"
        return _Paginator(self)

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def client() -> _FakeS3Client:
    return _FakeS3Client()


@pytest.fixture
def s3_store(client: _FakeS3Client) -> S3ObjectStore:
    return S3ObjectStore("test-bucket", client=client, page_size=2)


def test_error_helpers() -> None:
    assert error_code(_client_error("NoSuchKey")) == "NoSuchKey"
    assert is_not_found(_client_error("404"))
    assert not is_not_found(_client_error("AccessDenied"))
    assert error_code(ValueError("x")) == ""


@pytest.mark.asyncio
class TestObjectCalls:
    async def test_put_sends_metadata(self, s3_store, client) -> None:
        await s3_store.put("vol/a", b"body", metadata={"timestamp": "1/1"})
        name, kwargs = client.calls[-1]
        assert name == "put_object"
        assert kwargs["Bucket"] == "test-bucket"
        assert kwargs["ContentType"] == "application/octet-stream"
        assert kwargs["Metadata"] == {"timestamp": "1/1"}

    async def test_get_round_trip(self, s3_store) -> None:
        await s3_store.put("vol/a", b"body", metadata={"k": "v"})
        obj = await s3_store.get("vol/a")
        assert obj.body == b"body"
        assert obj.metadata == {"k": "v"}

    async def test_get_missing_is_none(self, s3_store) -> None:
        assert await s3_store.get("vol/missing") is None

    async def test_get_other_error_propagates(self, s3_store, client) -> None:
        def denied(**kwargs: Any) -> dict[str, Any]:
            raise _client_error("AccessDenied")

        client.get_object = denied
        with pytest.raises(ClientError):
            await s3_store.get("vol/a")

    async def test_list_page_follows_tokens(self, s3_store) -> None:
        for key in ["vol/a", "vol/b", "vol/c", "other/x"]:
            await s3_store.put(key, b"")
        first = await s3_store.list_page("vol/")
        assert first.keys == ["vol/a", "vol/b"]
        assert first.next_token is not None
        second = await s3_store.list_page("vol/", first.next_token)
        assert second.keys == ["vol/c"]
        assert second.next_token is None

    async def test_list_page_limit(self, s3_store, client) -> None:
        await s3_store.list_page("vol/", limit=1)
        assert client.calls[-1][1]["MaxKeys"] == 1
        assert "ContinuationToken" not in client.calls[-1][1]

    async def test_close(self, s3_store, client) -> None:
        await s3_store.close()
        assert client.closed


@pytest.mark.asyncio
class TestBucketManagement:
    async def test_create(self, s3_store, client) -> None:
        assert await s3_store.create_bucket(reuse=True) is True
        assert client.calls[-1] == ("create_bucket", {"Bucket": "test-bucket"})

    async def test_create_with_region_constraint(self, client) -> None:
        store = S3ObjectStore("test-bucket", client=client, region="eu-west-1")
        await store.create_bucket(reuse=False)
        kwargs = client.calls[-1][1]
        assert kwargs["CreateBucketConfiguration"] == {"LocationConstraint": "eu-west-1"}

    async def test_reuse_existing(self, s3_store, client) -> None:
        client.create_error = "BucketAlreadyOwnedByYou"
        assert await s3_store.create_bucket(reuse=True) is False

    async def test_existing_without_reuse_fails(self, s3_store, client) -> None:
        client.create_error = "BucketAlreadyOwnedByYou"
        with pytest.raises(ClientError):
            await s3_store.create_bucket(reuse=False)

    async def test_destroy(self, s3_store, client) -> None:
        for key in ["a", "b", "c"]:
            await s3_store.put(key, b"")
        assert await s3_store.destroy_bucket() == 3
        assert client.objects == {}
        assert client.bucket_deleted


@pytest.mark.asyncio
class TestVolumeOverFakeClient:
    async def test_write_query_and_destroy(self, client, ts) -> None:
        props = VolumeProperties(
            bucket="test-bucket", root_prefix="vol", create_bucket=True, on_closure="destroy_bucket"
        )
        store = S3ObjectStore("test-bucket", client=client, page_size=2)
        volume = await open_volume(props, store=store)
        for n in range(3):
            await volume.put(f"k/{n}", Value.text(str(n)), ts(n + 1))
        replies = await volume.query("k/*").collect()
        assert [r.value.payload for r in replies] == [b"0", b"1", b"2"]
        assert client.objects["vol/k/0"][1]["timestamp"] == str(ts(1))
        await volume.close()
        assert client.bucket_deleted
        assert client.closed

    async def test_failed_create_is_upstream_error(self, client) -> None:
        client.create_error = "AccessDenied"
        props = VolumeProperties(bucket="test-bucket", create_bucket=True)
        store = S3ObjectStore("test-bucket", client=client)
        with pytest.raises(UpstreamError):
            await open_volume(props, store=store)
        assert client.closed


class _RecordingSession:
    instances: list[_RecordingSession] = []

    def __init__(self, **kwargs: Any) -> None:
        self.kwargs = kwargs
        self.client_kwargs: dict[str, Any] = {}
        _RecordingSession.instances.append(self)

    def client(self, service: str, **kwargs: Any) -> str:
        assert service == "s3"
        self.client_kwargs = kwargs
        return "client"


@pytest.fixture
def recording_session(monkeypatch) -> type[_RecordingSession]:
    _RecordingSession.instances = []
    monkeypatch.setattr(storage_s3.boto3, "Session", _RecordingSession)
    return _RecordingSession


def test_build_client_with_endpoint_defaults_region(recording_session) -> None:
    props = VolumeProperties(bucket="test-bucket", endpoint="http://localhost:9000")
    assert build_s3_client(props, BackendConfig(s3_request_timeout_s=3, s3_max_attempts=2)) == "client"
    session = recording_session.instances[-1]
    assert session.kwargs == {"region_name": "us-east-1"}
    assert session.client_kwargs["endpoint_url"] == "http://localhost:9000"
    boto_cfg = session.client_kwargs["config"]
    assert boto_cfg.connect_timeout == 3
    assert boto_cfg.retries == {"max_attempts": 2, "mode": "standard"}


def test_build_client_with_keys(recording_session) -> None:
    props = VolumeProperties.model_validate(
        {
            "bucket": "test-bucket",
            "region": "eu-west-1",
            "private": {"access_key": "AK", "secret_key": "SK", "session_token": "TOK"},
        }
    )
    build_s3_client(props, BackendConfig())
    session = recording_session.instances[-1]
    assert session.kwargs == {"region_name": "eu-west-1"}
    assert session.client_kwargs["aws_access_key_id"] == "AK"
    assert session.client_kwargs["aws_secret_access_key"] == "SK"
    assert session.client_kwargs["aws_session_token"] == "TOK"


def test_build_client_with_profile(recording_session) -> None:
    props = VolumeProperties.model_validate({"bucket": "test-bucket", "private": {"profile": "ops"}})
    build_s3_client(props, BackendConfig())
    session = recording_session.instances[-1]
    assert session.kwargs == {"region_name": None, "profile_name": "ops"}
    assert "aws_access_key_id" not in session.client_kwargs


@pytest.mark.parametrize(
    "error,expected",
    [
        (ProfileNotFound(profile="ops"), InvalidConfigError),
        (EndpointConnectionError(endpoint_url="http://localhost:9000"), UnreachableError),
        (ValueError("Invalid endpoint: http://bad host"), InvalidConfigError),
    ],
)
def test_build_client_failures_become_backend_errors(monkeypatch, error, expected) -> None:
    def failing_session(**kwargs: Any) -> None:
        raise error

    monkeypatch.setattr(storage_s3.boto3, "Session", failing_session)
    props = VolumeProperties.model_validate({"bucket": "test-bucket", "private": {"profile": "ops"}})
    with pytest.raises(expected) as exc_info:
        build_s3_client(props, BackendConfig())
    assert exc_info.value.__cause__ is error


@pytest.mark.asyncio
async def test_open_volume_without_store_reports_client_failure(monkeypatch) -> None:
    def failing_session(**kwargs: Any) -> None:
        raise ProfileNotFound(profile="ops")

    monkeypatch.setattr(storage_s3.boto3, "Session", failing_session)
    with pytest.raises(InvalidConfigError):
        await open_volume({"bucket": "test-bucket", "private": {"profile": "ops"}})
