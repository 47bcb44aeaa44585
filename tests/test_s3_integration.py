"""S3 backend integration tests (MinIO-compatible)."""

from __future__ import annotations

import json
import os
import uuid

import boto3
import pytest
from typer.testing import CliRunner

from s3volume import ListingTruncatedError, Value, VolumeProperties, open_volume
from s3volume.cli import app
from s3volume.config import BackendConfig
from s3volume.resolver import Outcome

pytestmark = pytest.mark.s3


@pytest.fixture
def s3_backend() -> dict[str, str]:
    if os.getenv("S3VOLUME_S3_TEST") != "1":
        pytest.skip("S3 integration tests disabled (set S3VOLUME_S3_TEST=1)")

    endpoint = os.getenv("S3VOLUME_S3_ENDPOINT", "http://127.0.0.1:9000")
    bucket = os.getenv("S3VOLUME_S3_BUCKET", "s3volume-test")
    region = os.getenv("S3VOLUME_S3_REGION", "us-east-1")

    s3 = boto3.client("s3", endpoint_url=endpoint, region_name=region)
    existing = {b["Name"] for b in s3.list_buckets().get("Buckets", [])}
    if bucket not in existing:
        s3.create_bucket(Bucket=bucket)

    prefix = f"it/{uuid.uuid4().hex}"
    return {
        "storage_uri": f"s3://{bucket}/{prefix}",
        "endpoint": endpoint,
        "region": region,
        "bucket": bucket,
        "prefix": prefix,
    }


def _props(backend: dict[str, str], **overrides) -> VolumeProperties:
    return VolumeProperties(
        bucket=backend["bucket"],
        root_prefix=backend["prefix"],
        endpoint=backend["endpoint"],
        region=backend["region"],
        **overrides,
    )


@pytest.mark.asyncio
async def test_s3_write_delete_and_query(s3_backend, ts) -> None:
    async with await open_volume(_props(s3_backend)) as volume:
        assert await volume.put("demo/a", Value.text("1"), ts(1)) is Outcome.APPLIED
        assert await volume.put("demo/b", Value.text("2"), ts(2)) is Outcome.APPLIED
        assert await volume.put("demo/a", Value.text("stale"), ts(0)) is Outcome.DISCARDED
        assert await volume.delete("demo/b", ts(3)) is Outcome.APPLIED
        assert await volume.put("demo/b", Value.text("late"), ts(2)) is Outcome.DISCARDED

        replies = await volume.query("demo/**").collect()
        assert [(r.key.text, r.value.payload) for r in replies] == [("demo/a", b"1")]
        assert (await volume.get("demo/a")).timestamp == ts(1)

        result = await volume.purge_tombstones(apply=True)
        assert result["removed"] == 1


@pytest.mark.asyncio
async def test_s3_escaped_keys_round_trip(s3_backend, ts) -> None:
    key = "demo/with space/ünï@x"
    async with await open_volume(_props(s3_backend)) as volume:
        await volume.put(key, Value.text("v"), ts(1))
        assert [r.key.text async for r in volume.query("demo/**")] == [key]


@pytest.mark.asyncio
async def test_s3_listing_cap(s3_backend, ts) -> None:
    cfg = BackendConfig(listing_page_size=1, max_listing_pages=2)
    async with await open_volume(_props(s3_backend), config=cfg) as volume:
        for n in range(3):
            await volume.put(f"k/{n}", Value.text(str(n)), ts(n + 1))
        seen: list[str] = []
        with pytest.raises(ListingTruncatedError):
            async for reply in volume.query("k/*"):
                seen.append(reply.key.text)
        assert seen == ["k/0", "k/1"]


def test_cli_put_get_query_against_s3(s3_backend, monkeypatch) -> None:
    monkeypatch.setenv("S3VOLUME_S3_ENDPOINT_URL", s3_backend["endpoint"])
    monkeypatch.setenv("S3VOLUME_S3_REGION", s3_backend["region"])
    runner = CliRunner()
    uri = s3_backend["storage_uri"]

    put = runner.invoke(app, ["--storage-uri", uri, "--json", "put", "cli/a", "hello"])
    assert put.exit_code == 0, put.output
    assert json.loads(put.stdout)["outcome"] == "applied"

    got = runner.invoke(app, ["--storage-uri", uri, "--json", "get", "cli/a"])
    assert got.exit_code == 0, got.output
    assert json.loads(got.stdout)["value"] == "hello"

    listed = runner.invoke(app, ["--storage-uri", uri, "--json", "query", "cli/**"])
    assert listed.exit_code == 0, listed.output
    assert [row["key"] for row in json.loads(listed.stdout)["results"]] == ["cli/a"]
