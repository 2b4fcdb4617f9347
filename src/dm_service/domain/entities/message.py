from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from uuid import UUID

from dm_service.application.exceptions import ValidationError
from dm_service.domain.value_objects.enums import AttachmentCategory
from dm_service.domain.value_objects.ids import MessageId, UserId

PLACEHOLDER_ID = MessageId(UUID(int=0))
PLACEHOLDER_CONTENT = "Start a conversation..."


@dataclass(frozen=True, slots=True)
class Attachment:
    url: str
    mime_type: str

    @property
    def category(self) -> AttachmentCategory:
        return AttachmentCategory.from_mime_type(self.mime_type)


@dataclass(frozen=True, slots=True)
class AttachmentSource:
    """A local file staged for upload. Never persisted."""

    filename: str
    content: bytes
    mime_type: str | None = None

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass(frozen=True, slots=True)
class Message:
    id: MessageId
    seq: int
    sender_id: UserId
    receiver_id: UserId
    content: str
    created_at: datetime
    read: bool = False
    delivered: bool = False
    reply_to_id: MessageId | None = None
    attachment: Attachment | None = None

    def __post_init__(self) -> None:
        if self.sender_id == self.receiver_id:
            raise ValidationError("Sender and receiver must differ")
        if self.read and not self.delivered:
            raise ValidationError("A message cannot be read before it is delivered")

    @property
    def is_placeholder(self) -> bool:
        return self.id == PLACEHOLDER_ID

    @property
    def participants(self) -> frozenset[UserId]:
        return frozenset((self.sender_id, self.receiver_id))

    def other_party(self, viewer_id: UserId) -> UserId:
        return self.receiver_id if self.sender_id == viewer_id else self.sender_id

    def with_delivered(self) -> Message:
        if self.delivered:
            return self
        return replace(self, delivered=True)

    def with_read(self) -> Message:
        if self.read:
            return self
        return replace(self, read=True, delivered=True)

    def with_receipts(self, *, delivered: bool, read: bool) -> Message:
        """Advance delivery state; flags that are already set never go back."""
        msg = self
        if read:
            msg = msg.with_read()
        elif delivered:
            msg = msg.with_delivered()
        return msg


def placeholder_message(viewer_id: UserId, other_id: UserId) -> Message:
    """Synthetic last message shown for a conversation with no history."""
    return Message(
        id=PLACEHOLDER_ID,
        seq=0,
        sender_id=other_id,
        receiver_id=viewer_id,
        content=PLACEHOLDER_CONTENT,
        created_at=datetime.min.replace(tzinfo=timezone.utc),
        read=True,
        delivered=True,
    )
