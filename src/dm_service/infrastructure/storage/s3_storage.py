"""S3/MinIO object storage for message attachments."""
from __future__ import annotations

import asyncio
import logging
from io import BytesIO
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from dm_service.application.exceptions import DependencyError
from dm_service.config import Settings

logger = logging.getLogger(__name__)

CACHE_CONTROL = "max-age=3600"


class S3ObjectStorage:
    """Implements application.ports.storage.ObjectStorage.

    boto3 is blocking, so every call runs in a worker thread.
    """

    def __init__(self, settings: Settings, client: Any | None = None) -> None:
        self._bucket = settings.STORAGE_BUCKET
        self._region = settings.STORAGE_REGION
        self._public_base = settings.storage_public_url
        self._client = client or boto3.client(
            "s3",
            endpoint_url=settings.STORAGE_ENDPOINT_URL,
            aws_access_key_id=settings.STORAGE_ACCESS_KEY,
            aws_secret_access_key=settings.STORAGE_SECRET_KEY,
            region_name=settings.STORAGE_REGION,
        )

    @property
    def bucket(self) -> str:
        return self._bucket

    async def ensure_bucket(self) -> None:
        try:
            await asyncio.to_thread(self._ensure_bucket_sync)
        except (BotoCoreError, ClientError) as exc:
            raise DependencyError(f"Object storage unavailable: {exc}") from exc

    def _ensure_bucket_sync(self) -> None:
        try:
            self._client.head_bucket(Bucket=self._bucket)
            return
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code", "")
            if code not in ("404", "NoSuchBucket", "NotFound"):
                raise
        if self._region == "us-east-1":
            self._client.create_bucket(Bucket=self._bucket)
        else:
            self._client.create_bucket(
                Bucket=self._bucket,
                CreateBucketConfiguration={"LocationConstraint": self._region},
            )
        logger.info("Created bucket %s", self._bucket)

    async def upload(self, path: str, content: bytes, content_type: str) -> None:
        try:
            await asyncio.to_thread(
                self._client.upload_fileobj,
                BytesIO(content),
                self._bucket,
                path,
                ExtraArgs={"ContentType": content_type, "CacheControl": CACHE_CONTROL},
            )
        except (BotoCoreError, ClientError) as exc:
            raise DependencyError(f"Upload of {path} failed: {exc}") from exc

    def public_url(self, path: str) -> str:
        return f"{self._public_base}/{path}"
