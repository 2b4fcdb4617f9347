from __future__ import annotations

from io import BytesIO
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError
from PIL import Image

from dm_service.application.exceptions import DependencyError
from dm_service.config import Settings
from dm_service.domain.entities.message import AttachmentSource
from dm_service.infrastructure.media.preview import ImagePreviewer
from dm_service.infrastructure.storage.s3_storage import S3ObjectStorage


def _client_error(code: str, operation: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


@pytest.fixture
def s3_settings() -> Settings:
    return Settings(
        STORAGE_BUCKET="attachments",
        STORAGE_REGION="eu-central-1",
        STORAGE_PUBLIC_URL="https://cdn.example.test/attachments/",
    )


@pytest.mark.asyncio
async def test_missing_bucket_is_created(s3_settings):
    client = MagicMock()
    client.head_bucket.side_effect = _client_error("404", "HeadBucket")
    storage = S3ObjectStorage(s3_settings, client=client)

    await storage.ensure_bucket()

    client.create_bucket.assert_called_once_with(
        Bucket="attachments",
        CreateBucketConfiguration={"LocationConstraint": "eu-central-1"},
    )


@pytest.mark.asyncio
async def test_existing_bucket_is_left_alone(s3_settings):
    client = MagicMock()
    storage = S3ObjectStorage(s3_settings, client=client)

    await storage.ensure_bucket()

    client.create_bucket.assert_not_called()


@pytest.mark.asyncio
async def test_bucket_access_denied_is_dependency_error(s3_settings):
    client = MagicMock()
    client.head_bucket.side_effect = _client_error("403", "HeadBucket")

    with pytest.raises(DependencyError):
        await S3ObjectStorage(s3_settings, client=client).ensure_bucket()


@pytest.mark.asyncio
async def test_upload_sets_content_type(s3_settings):
    client = MagicMock()
    storage = S3ObjectStorage(s3_settings, client=client)

    await storage.upload("alice/file/1.pdf", b"%PDF", "application/pdf")

    (fileobj, bucket, key), kwargs = client.upload_fileobj.call_args
    assert fileobj.read() == b"%PDF"
    assert (bucket, key) == ("attachments", "alice/file/1.pdf")
    assert kwargs["ExtraArgs"]["ContentType"] == "application/pdf"
    assert storage.public_url(key) == "https://cdn.example.test/attachments/alice/file/1.pdf"


@pytest.mark.asyncio
async def test_upload_failure_is_dependency_error(s3_settings):
    client = MagicMock()
    client.upload_fileobj.side_effect = _client_error("500", "PutObject")

    with pytest.raises(DependencyError):
        await S3ObjectStorage(s3_settings, client=client).upload("k", b"x", "text/plain")


def _png(size: tuple[int, int]) -> bytes:
    out = BytesIO()
    Image.new("RGB", size, color=(200, 30, 30)).save(out, format="PNG")
    return out.getvalue()


@pytest.mark.asyncio
async def test_preview_is_bounded_thumbnail():
    previewer = ImagePreviewer(max_size=64)

    preview = await previewer(AttachmentSource("big.png", _png((400, 200)), "image/png"))

    assert preview is not None
    with Image.open(BytesIO(preview)) as thumb:
        assert thumb.format == "PNG"
        assert thumb.size == (64, 32)


@pytest.mark.asyncio
async def test_preview_of_non_image_is_none():
    previewer = ImagePreviewer()

    assert await previewer(AttachmentSource("notes.txt", b"just text")) is None
