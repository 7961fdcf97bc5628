"""Storage delegate: signed URLs and deletion against the byte store.

The engine never moves file bytes. Clients upload and download directly
against the object store using short-lived signed URLs, and the engine
only asks the store to delete objects whose lifecycle has ended.
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Any
from urllib.parse import quote, urlencode

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from ephemera.config import settings
from ephemera.errors import StorageError

logger = logging.getLogger(__name__)


def content_disposition(filename: str) -> str:
    """Attachment disposition carrying the original filename."""
    return f'attachment; filename="{quote(filename)}"'


class StorageDelegate(ABC):
    """Adapter over the byte store."""

    @abstractmethod
    async def issue_upload_url(self, key: str, content_type: str, ttl: int) -> str:
        """Return a URL the client can PUT the object's bytes to for ``ttl`` seconds."""

    @abstractmethod
    async def issue_download_url(self, key: str, download_filename: str, ttl: int) -> str:
        """Return a URL the client can GET the object from for ``ttl`` seconds."""

    @abstractmethod
    async def delete_object(self, key: str) -> bool:
        """Delete the object. Deleting an absent key is not an error.

        Returns:
            True if an object was deleted, False if it was already absent
            (backends that cannot tell report True).

        Raises:
            StorageError: The store could not be reached or refused the delete.
        """


class S3StorageDelegate(StorageDelegate):
    """Storage delegate for S3-compatible stores (AWS S3, Backblaze B2, MinIO).

    Presigning is a local signature computation; only deletion talks to the
    network, and it runs in a worker thread so it never blocks the loop.
    """

    def __init__(
        self,
        bucket: str | None = None,
        *,
        endpoint_url: str | None = None,
        region: str | None = None,
        access_key_id: str | None = None,
        secret_access_key: str | None = None,
        client: Any = None,
    ) -> None:
        self._bucket = bucket or settings.s3_bucket
        if client is None:
            client_kwargs: dict[str, Any] = {
                "region_name": region or settings.s3_region,
                "config": Config(signature_version="s3v4", retries={"max_attempts": 3}),
            }
            endpoint = endpoint_url or settings.s3_endpoint_url
            if endpoint:
                client_kwargs["endpoint_url"] = endpoint
            key_id = access_key_id or settings.s3_access_key_id
            secret = secret_access_key or settings.s3_secret_access_key
            if key_id and secret:
                client_kwargs["aws_access_key_id"] = key_id
                client_kwargs["aws_secret_access_key"] = secret
            client = boto3.client("s3", **client_kwargs)
        self._client = client

    async def issue_upload_url(self, key: str, content_type: str, ttl: int) -> str:
        return self._presign(
            "put_object",
            {"Bucket": self._bucket, "Key": key, "ContentType": content_type},
            ttl,
        )

    async def issue_download_url(self, key: str, download_filename: str, ttl: int) -> str:
        return self._presign(
            "get_object",
            {
                "Bucket": self._bucket,
                "Key": key,
                "ResponseContentDisposition": content_disposition(download_filename),
            },
            ttl,
        )

    async def delete_object(self, key: str) -> bool:
        try:
            await asyncio.to_thread(self._client.delete_object, Bucket=self._bucket, Key=key)
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code")
            if code in ("NoSuchKey", "404"):
                return False
            raise StorageError(f"S3 delete of {key} failed: {exc}") from exc
        except BotoCoreError as exc:
            raise StorageError(f"S3 delete of {key} failed: {exc}") from exc
        logger.debug("Deleted s3://%s/%s", self._bucket, key)
        return True

    def _presign(self, operation: str, params: dict[str, Any], ttl: int) -> str:
        try:
            return self._client.generate_presigned_url(
                ClientMethod=operation,
                Params=params,
                ExpiresIn=ttl,
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Presigning {operation} for {params['Key']} failed: {exc}") from exc


class InMemoryStorageDelegate(StorageDelegate):
    """Byte store stand-in for tests and local development.

    Tracks which keys hold bytes and issues ``memory://`` URLs. Keys listed
    in ``failing_keys`` raise StorageError on delete, to exercise partial
    failure handling.
    """

    def __init__(self, bucket: str = "memory") -> None:
        self.bucket = bucket
        self.objects: dict[str, bytes] = {}
        self.failing_keys: set[str] = set()
        self.deleted: list[str] = []

    def put(self, key: str, data: bytes = b"") -> None:
        """Simulate a completed client upload."""
        self.objects[key] = data

    async def issue_upload_url(self, key: str, content_type: str, ttl: int) -> str:
        return self._url(key, {"op": "put", "content_type": content_type}, ttl)

    async def issue_download_url(self, key: str, download_filename: str, ttl: int) -> str:
        return self._url(
            key,
            {"op": "get", "disposition": content_disposition(download_filename)},
            ttl,
        )

    async def delete_object(self, key: str) -> bool:
        if key in self.failing_keys:
            raise StorageError(f"Simulated delete failure for {key}")
        self.deleted.append(key)
        return self.objects.pop(key, None) is not None

    def _url(self, key: str, params: dict[str, str], ttl: int) -> str:
        query = urlencode({**params, "expires": int(time.time()) + ttl})
        return f"memory://{self.bucket}/{quote(key)}?{query}"
