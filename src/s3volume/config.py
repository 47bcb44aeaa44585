"""Configuration for s3volume: process tuning knobs and per-volume properties."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from typing import Literal, Mapping

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator, model_validator

from s3volume.keyexpr import KeyExpr

_BUCKET_RE = re.compile(r"^[a-z0-9][a-z0-9.\-]{1,61}[a-z0-9]$")


@dataclass
class BackendConfig:
    """Tuning for the engine, shared by every volume of a process."""

    s3_request_timeout_s: float = 10.0
    s3_max_attempts: int = 5
    max_listing_pages: int = 10000
    listing_page_size: int = 1000
    fetch_concurrency: int = 16

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> BackendConfig:
        env = os.environ if environ is None else environ
        cfg = cls()
        if "S3VOLUME_REQUEST_TIMEOUT_S" in env:
            cfg.s3_request_timeout_s = float(env["S3VOLUME_REQUEST_TIMEOUT_S"])
        if "S3VOLUME_MAX_ATTEMPTS" in env:
            cfg.s3_max_attempts = int(env["S3VOLUME_MAX_ATTEMPTS"])
        if "S3VOLUME_MAX_LISTING_PAGES" in env:
            cfg.max_listing_pages = int(env["S3VOLUME_MAX_LISTING_PAGES"])
        if "S3VOLUME_LISTING_PAGE_SIZE" in env:
            cfg.listing_page_size = int(env["S3VOLUME_LISTING_PAGE_SIZE"])
        if "S3VOLUME_FETCH_CONCURRENCY" in env:
            cfg.fetch_concurrency = int(env["S3VOLUME_FETCH_CONCURRENCY"])
        return cfg


class Credentials(BaseModel):
    """Credential reference: a named profile or an explicit key pair."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    profile: str | None = None
    access_key: SecretStr | None = None
    secret_key: SecretStr | None = None
    session_token: SecretStr | None = None

    @model_validator(mode="after")
    def _check_pairing(self) -> Credentials:
        if (self.access_key is None) != (self.secret_key is None):
            raise ValueError("access_key and secret_key must be given together")
        if self.profile is not None and self.access_key is not None:
            raise ValueError("use either profile or access_key/secret_key, not both")
        if self.session_token is not None and self.access_key is None:
            raise ValueError("session_token requires access_key/secret_key")
        return self


class VolumeProperties(BaseModel):
    """Properties of one volume, as handed over by the bus runtime."""

    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    bucket: str
    root_prefix: str = ""
    strip_prefix: str | None = None
    region: str | None = None
    endpoint: str | None = Field(default=None, alias="url")
    credentials: Credentials | None = Field(default=None, alias="private")
    create_bucket: bool = False
    reuse_bucket: bool = True
    on_closure: Literal["do_nothing", "destroy_bucket"] = "do_nothing"
    deletion_mode: Literal["tombstone", "native"] = "tombstone"
    default_encoding: str = ""

    @field_validator("bucket")
    @classmethod
    def _check_bucket(cls, value: str) -> str:
        if not _BUCKET_RE.match(value) or ".." in value:
            raise ValueError(f"'{value}' is not a valid bucket name")
        return value

    @field_validator("root_prefix")
    @classmethod
    def _check_root_prefix(cls, value: str) -> str:
        cleaned = value.strip("/")
        if cleaned and any(not part for part in cleaned.split("/")):
            raise ValueError(f"root_prefix '{value}' contains an empty path segment")
        return cleaned

    @field_validator("strip_prefix")
    @classmethod
    def _check_strip_prefix(cls, value: str | None) -> str | None:
        if value is None or value == "":
            return None
        key = KeyExpr(value)
        if key.is_wild:
            raise ValueError(f"strip_prefix '{value}' must not contain wildcards")
        return key.text

    @field_validator("endpoint")
    @classmethod
    def _check_endpoint(cls, value: str | None) -> str | None:
        if value is not None and not value.startswith(("http://", "https://")):
            raise ValueError(f"endpoint '{value}' must be an http(s) URL")
        return value
