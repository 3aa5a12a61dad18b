# app/services/object_store.py
"""
Object store adapter for deliverable payloads (S3 / MinIO via boto3).

The core only talks to the ``ObjectStore`` protocol; ``S3ObjectStore`` is the
production implementation. Every boto3 failure is logged with the object key
and re-raised as ``ObjectStoreError`` so callers never see botocore types.
"""

from __future__ import annotations

import logging
import os
import secrets
import string
from datetime import datetime, timezone
from typing import Iterable, Protocol
from uuid import UUID

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from app.core.config import Settings
from app.core.errors import ObjectStoreError

logger = logging.getLogger(__name__)

KEY_PREFIX = "deliverables"

_MISSING_CODES = {"404", "NoSuchKey", "NotFound"}
_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits


class ObjectStore(Protocol):
    def upload(self, key: str, data: bytes, content_type: str | None = None) -> str: ...

    def remove(self, keys: Iterable[str]) -> None: ...

    def exists(self, key: str) -> bool: ...

    def list_keys(self, prefix: str = "") -> list[str]: ...

    def signed_url(self, key: str, ttl_seconds: int) -> str: ...

    def public_url(self, key: str) -> str: ...


def build_object_key(project_id: UUID, filename: str, now: datetime | None = None) -> str:
    """
    Collision-resistant key scoped under the owning project:
    ``deliverables/{project_id}/{epoch_ms}-{random}.{ext}``.

    The original file name is not part of the key; only its extension is kept.
    """
    now = now or datetime.now(timezone.utc)
    epoch_ms = int(now.timestamp() * 1000)
    suffix = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(12))
    ext = os.path.splitext(filename or "")[1].lower().lstrip(".")
    name = f"{epoch_ms}-{suffix}.{ext}" if ext else f"{epoch_ms}-{suffix}"
    return f"{KEY_PREFIX}/{project_id}/{name}"


def _error_code(e: ClientError) -> str:
    return str(e.response.get("Error", {}).get("Code", ""))


class S3ObjectStore:
    """boto3-backed ``ObjectStore``."""

    def __init__(
        self,
        bucket: str,
        *,
        client=None,
        endpoint_url: str | None = None,
        region: str = "us-east-1",
        access_key_id: str | None = None,
        secret_access_key: str | None = None,
        public_base_url: str | None = None,
    ):
        self.bucket = bucket
        self._client = client
        self._endpoint_url = endpoint_url
        self._region = region
        self._access_key_id = access_key_id
        self._secret_access_key = secret_access_key
        self._public_base_url = public_base_url.rstrip("/") if public_base_url else None

    @classmethod
    def from_settings(cls, s: Settings) -> "S3ObjectStore":
        return cls(
            s.storage_bucket,
            endpoint_url=s.storage_endpoint_url,
            region=s.aws_region,
            access_key_id=s.aws_access_key_id,
            secret_access_key=s.aws_secret_access_key,
            public_base_url=s.storage_public_base_url,
        )

    def _get_client(self):
        """Lazy initialization of the S3/MinIO client."""
        if self._client is None:
            kwargs = {"region_name": self._region}
            if self._endpoint_url:
                # MinIO: path-style addressing, s3v4 signatures
                kwargs["endpoint_url"] = self._endpoint_url
                kwargs["config"] = Config(signature_version="s3v4", s3={"addressing_style": "path"})
            if self._access_key_id and self._secret_access_key:
                kwargs["aws_access_key_id"] = self._access_key_id
                kwargs["aws_secret_access_key"] = self._secret_access_key
            self._client = boto3.client("s3", **kwargs)
            logger.info("S3 client initialized for bucket '%s'", self.bucket)
        return self._client

    # ---------- ObjectStore ----------

    def upload(self, key: str, data: bytes, content_type: str | None = None) -> str:
        params = {
            "Bucket": self.bucket,
            "Key": key,
            "Body": data,
            "CacheControl": "max-age=3600",
        }
        if content_type:
            params["ContentType"] = content_type
        try:
            self._get_client().put_object(**params)
        except (ClientError, BotoCoreError) as e:
            logger.error("[S3-Upload] failed for %s: %s", key, e)
            raise ObjectStoreError("Failed to upload file") from e

        logger.info("[S3-Upload] uploaded %s (%d bytes)", key, len(data))
        return key

    def remove(self, keys: Iterable[str]) -> None:
        keys = [k for k in keys if k]
        if not keys:
            return
        try:
            resp = self._get_client().delete_objects(
                Bucket=self.bucket,
                Delete={"Objects": [{"Key": k} for k in keys], "Quiet": True},
            )
        except (ClientError, BotoCoreError) as e:
            logger.error("[S3-Delete] failed for %s: %s", keys, e)
            raise ObjectStoreError("Failed to delete file") from e

        errors = resp.get("Errors") or []
        if errors:
            failed = [err.get("Key") for err in errors]
            logger.error("[S3-Delete] partial failure, not deleted: %s", failed)
            raise ObjectStoreError("Failed to delete file")

        logger.info("[S3-Delete] removed %d object(s)", len(keys))

    def exists(self, key: str) -> bool:
        try:
            self._get_client().head_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if _error_code(e) in _MISSING_CODES:
                return False
            logger.error("[S3-Head] failed for %s: %s", key, e)
            raise ObjectStoreError("Failed to check file") from e
        except BotoCoreError as e:
            logger.error("[S3-Head] failed for %s: %s", key, e)
            raise ObjectStoreError("Failed to check file") from e
        return True

    def list_keys(self, prefix: str = "") -> list[str]:
        keys: list[str] = []
        try:
            paginator = self._get_client().get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                keys.extend(obj["Key"] for obj in page.get("Contents", []))
        except (ClientError, BotoCoreError) as e:
            logger.error("[S3-List] failed for prefix %r: %s", prefix, e)
            raise ObjectStoreError("Failed to list files") from e
        return keys

    def signed_url(self, key: str, ttl_seconds: int) -> str:
        # S3 presigns any key without a request; check existence so a missing
        # object fails here and not in the client's browser.
        if not self.exists(key):
            logger.warning("[S3-Sign] object not found: %s", key)
            raise ObjectStoreError("Object not found")
        try:
            return self._get_client().generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=ttl_seconds,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error("[S3-Sign] failed for %s: %s", key, e)
            raise ObjectStoreError("Failed to generate signed URL") from e

    def public_url(self, key: str) -> str:
        if self._public_base_url:
            return f"{self._public_base_url}/{self.bucket}/{key}"
        if self._endpoint_url:
            return f"{self._endpoint_url.rstrip('/')}/{self.bucket}/{key}"
        return f"https://{self.bucket}.s3.{self._region}.amazonaws.com/{key}"
