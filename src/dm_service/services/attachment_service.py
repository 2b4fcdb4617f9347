from __future__ import annotations

import logging
import mimetypes
from pathlib import PurePosixPath

from dm_service.application.exceptions import ValidationError
from dm_service.application.ports.clock import Clock, SystemClock
from dm_service.application.ports.storage import ObjectStorage
from dm_service.domain.entities.message import Attachment, AttachmentSource
from dm_service.domain.value_objects.enums import AttachmentCategory
from dm_service.domain.value_objects.ids import UserId

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "application/octet-stream"
DEFAULT_MAX_BYTES = 10 * 1024 * 1024


class AttachmentUploader:
    """Uploads staged files into the owner's namespace of the attachment bucket.

    No retries: a storage failure propagates as DependencyError and the caller
    decides what to do.
    """

    def __init__(
        self,
        storage: ObjectStorage,
        *,
        max_bytes: int = DEFAULT_MAX_BYTES,
        clock: Clock | None = None,
    ) -> None:
        self._storage = storage
        self._max_bytes = max_bytes
        self._clock = clock or SystemClock()
        self._bucket_ready = False

    @property
    def max_bytes(self) -> int:
        return self._max_bytes

    def validate(self, source: AttachmentSource) -> None:
        if source.size == 0:
            raise ValidationError(f"{source.filename} is empty")
        if source.size > self._max_bytes:
            raise ValidationError(
                f"{source.filename} is {source.size} bytes, limit is {self._max_bytes}"
            )

    @staticmethod
    def mime_type_for(source: AttachmentSource) -> str:
        if source.mime_type:
            return source.mime_type
        guessed, _ = mimetypes.guess_type(source.filename)
        return guessed or DEFAULT_MIME_TYPE

    @staticmethod
    def extension_for(source: AttachmentSource, mime_type: str) -> str:
        suffix = PurePosixPath(source.filename).suffix.lstrip(".").lower()
        if suffix:
            return suffix
        guessed = mimetypes.guess_extension(mime_type)
        return guessed.lstrip(".") if guessed else "bin"

    def object_path(
        self,
        source: AttachmentSource,
        owner_id: UserId,
        category: AttachmentCategory,
    ) -> str:
        mime_type = self.mime_type_for(source)
        stamp = self._clock.now().strftime("%Y%m%d%H%M%S%f")
        return f"{owner_id}/{category}/{stamp}.{self.extension_for(source, mime_type)}"

    async def upload(
        self,
        source: AttachmentSource,
        owner_id: UserId,
        category: AttachmentCategory | None = None,
    ) -> Attachment:
        self.validate(source)
        mime_type = self.mime_type_for(source)
        category = category or AttachmentCategory.from_mime_type(mime_type)
        path = self.object_path(source, owner_id, category)

        if not self._bucket_ready:
            await self._storage.ensure_bucket()
            self._bucket_ready = True

        await self._storage.upload(path, source.content, mime_type)
        logger.info("Uploaded %s (%d bytes, %s)", path, source.size, mime_type)
        return Attachment(url=self._storage.public_url(path), mime_type=mime_type)
