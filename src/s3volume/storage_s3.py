"""S3 object store backed by boto3, driven from asyncio through worker threads."""

from __future__ import annotations

import asyncio
from typing import Any

import boto3
import structlog
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError, ProfileNotFound

from s3volume.config import BackendConfig, VolumeProperties
from s3volume.errors import InvalidConfigError, UnreachableError
from s3volume.store import ListingPage, ObjectStore, StoredObject

logger = structlog.get_logger(__name__)

_NOT_FOUND_CODES = frozenset({"NoSuchKey", "404", "NotFound"})
_DELETE_BATCH = 1000


def error_code(err: Exception) -> str:
    if isinstance(err, ClientError):
        return str(err.response.get("Error", {}).get("Code", ""))
    return ""


def is_not_found(err: Exception) -> bool:
    return error_code(err) in _NOT_FOUND_CODES


def build_s3_client(properties: VolumeProperties, config: BackendConfig) -> Any:
    """Create the boto3 S3 client for a volume."""
    session_kwargs: dict[str, Any] = {}
    client_kwargs: dict[str, Any] = {}
    creds = properties.credentials
    if creds is not None:
        if creds.profile is not None:
            session_kwargs["profile_name"] = creds.profile
        if creds.access_key is not None and creds.secret_key is not None:
            client_kwargs["aws_access_key_id"] = creds.access_key.get_secret_value()
            client_kwargs["aws_secret_access_key"] = creds.secret_key.get_secret_value()
            if creds.session_token is not None:
                client_kwargs["aws_session_token"] = creds.session_token.get_secret_value()

    region = properties.region
    if region is None and properties.endpoint is not None:
        # S3-compatible servers such as MinIO ignore the region, but requests still
        # have to be signed for one.
        logger.debug("s3.region_defaulted", endpoint=properties.endpoint, region="us-east-1")
        region = "us-east-1"

    try:
        session = boto3.Session(region_name=region, **session_kwargs)
        return session.client(
            "s3",
            region_name=region,
            endpoint_url=properties.endpoint,
            config=BotoConfig(
                connect_timeout=config.s3_request_timeout_s,
                read_timeout=config.s3_request_timeout_s,
                retries={"max_attempts": config.s3_max_attempts, "mode": "standard"},
            ),
            **client_kwargs,
        )
    except ProfileNotFound as e:
        raise InvalidConfigError(str(e)) from e
    except BotoCoreError as e:
        raise UnreachableError(properties.bucket, str(e)) from e
    except ValueError as e:
        # botocore rejects malformed endpoint URLs with a plain ValueError.
        raise InvalidConfigError(str(e)) from e


class S3ObjectStore(ObjectStore):
    """S3/MinIO backed object store for one bucket."""

    def __init__(
        self,
        bucket: str,
        *,
        client: Any,
        region: str | None = None,
        page_size: int = 1000,
    ) -> None:
        self._bucket = bucket
        self._client = client
        self._region = region
        self._page_size = page_size

    @classmethod
    def from_properties(
        cls, properties: VolumeProperties, config: BackendConfig
    ) -> S3ObjectStore:
        return cls(
            properties.bucket,
            client=build_s3_client(properties, config),
            region=properties.region,
            page_size=config.listing_page_size,
        )

    @property
    def bucket(self) -> str:
        return self._bucket

    async def put(self, key: str, body: bytes, *, metadata: dict[str, str] | None = None) -> None:
        await asyncio.to_thread(
            self._client.put_object,
            Bucket=self._bucket,
            Key=key,
            Body=body,
            ContentType="application/octet-stream",
            Metadata=metadata or {},
        )

    async def get(self, key: str) -> StoredObject | None:
        def _get() -> StoredObject | None:
            try:
                resp = self._client.get_object(Bucket=self._bucket, Key=key)
            except Exception as e:
                if is_not_found(e):
                    return None
                raise
            body = resp["Body"].read()
            return StoredObject(body=body, metadata=dict(resp.get("Metadata") or {}))

        return await asyncio.to_thread(_get)

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self._client.delete_object, Bucket=self._bucket, Key=key)

    async def list_page(
        self, prefix: str, token: str | None = None, *, limit: int | None = None
    ) -> ListingPage:
        kwargs: dict[str, Any] = {
            "Bucket": self._bucket,
            "Prefix": prefix,
            "MaxKeys": limit or self._page_size,
        }
        if token is not None:
            kwargs["ContinuationToken"] = token
        resp = await asyncio.to_thread(self._client.list_objects_v2, **kwargs)
        keys = [str(item["Key"]) for item in resp.get("Contents", []) if item.get("Key")]
        next_token = resp.get("NextContinuationToken") if resp.get("IsTruncated") else None
        return ListingPage(keys=keys, next_token=next_token)

    async def create_bucket(self, *, reuse: bool) -> bool:
        """Create the bucket. Returns False when it already exists and ``reuse`` is set."""

        def _create() -> bool:
            kwargs: dict[str, Any] = {"Bucket": self._bucket}
            if self._region and self._region != "us-east-1":
                kwargs["CreateBucketConfiguration"] = {"LocationConstraint": self._region}
            try:
                self._client.create_bucket(**kwargs)
                return True
            except ClientError as e:
                if reuse and error_code(e) in {"BucketAlreadyOwnedByYou", "BucketAlreadyExists"}:
                    return False
                raise

        created = await asyncio.to_thread(_create)
        logger.info("s3.bucket_ready", bucket=self._bucket, created=created)
        return created

    async def destroy_bucket(self) -> int:
        """Delete every object in the bucket, then the bucket. Returns the object count."""

        def _destroy() -> int:
            paginator = self._client.get_paginator("list_objects_v2")
            keys: list[str] = []
            for page in paginator.paginate(Bucket=self._bucket):
                for item in page.get("Contents", []):
                    key = item.get("Key")
                    if key:
                        keys.append(str(key))
            for start in range(0, len(keys), _DELETE_BATCH):
                batch = keys[start : start + _DELETE_BATCH]
                self._client.delete_objects(
                    Bucket=self._bucket,
                    Delete={"Objects": [{"Key": k} for k in batch], "Quiet": True},
                )
            self._client.delete_bucket(Bucket=self._bucket)
            return len(keys)

        removed = await asyncio.to_thread(_destroy)
        logger.info("s3.bucket_destroyed", bucket=self._bucket, objects=removed)
        return removed

    async def close(self) -> None:
        close = getattr(self._client, "close", None)
        if close is not None:
            await asyncio.to_thread(close)

    def describe(self) -> dict[str, str]:
        endpoint = getattr(getattr(self._client, "meta", None), "endpoint_url", None)
        info = {"store": "s3", "bucket": self._bucket}
        if endpoint:
            info["endpoint"] = str(endpoint)
        if self._region:
            info["region"] = self._region
        return info


__all__ = ["S3ObjectStore", "build_s3_client", "error_code", "is_not_found"]
