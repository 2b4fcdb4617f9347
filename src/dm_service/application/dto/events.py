"""Realtime event payloads exchanged over the bus."""
from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel

from dm_service.domain.entities.message import Attachment, Message
from dm_service.domain.events.message_events import MessageReceived, ReceiptUpdated
from dm_service.domain.value_objects.enums import RealtimeEventType
from dm_service.domain.value_objects.ids import MessageId, UserId


class AttachmentPayload(BaseModel):
    url: str
    mime_type: str


class MessagePayload(BaseModel):
    id: UUID
    seq: int
    sender_id: str
    receiver_id: str
    content: str
    created_at: datetime
    read: bool = False
    delivered: bool = False
    reply_to_id: UUID | None = None
    attachment: AttachmentPayload | None = None

    @classmethod
    def from_entity(cls, msg: Message) -> MessagePayload:
        return cls(
            id=msg.id,
            seq=msg.seq,
            sender_id=msg.sender_id,
            receiver_id=msg.receiver_id,
            content=msg.content,
            created_at=msg.created_at,
            read=msg.read,
            delivered=msg.delivered,
            reply_to_id=msg.reply_to_id,
            attachment=(
                AttachmentPayload(url=msg.attachment.url, mime_type=msg.attachment.mime_type)
                if msg.attachment
                else None
            ),
        )

    def to_entity(self) -> Message:
        return Message(
            id=MessageId(self.id),
            seq=self.seq,
            sender_id=UserId(self.sender_id),
            receiver_id=UserId(self.receiver_id),
            content=self.content,
            created_at=self.created_at,
            read=self.read,
            delivered=self.delivered or self.read,
            reply_to_id=MessageId(self.reply_to_id) if self.reply_to_id else None,
            attachment=(
                Attachment(url=self.attachment.url, mime_type=self.attachment.mime_type)
                if self.attachment
                else None
            ),
        )


class ReceiptPayload(BaseModel):
    id: UUID
    delivered: bool
    read: bool


def decode_event(
    event_type: str, data: dict[str, Any]
) -> MessageReceived | ReceiptUpdated | None:
    """Turn a bus envelope into a domain event. Unknown types return None."""
    if event_type == RealtimeEventType.MESSAGE_INSERTED:
        return MessageReceived(MessagePayload.model_validate(data).to_entity())
    if event_type == RealtimeEventType.MESSAGE_UPDATED:
        receipt = ReceiptPayload.model_validate(data)
        return ReceiptUpdated(
            message_id=MessageId(receipt.id),
            delivered=receipt.delivered or receipt.read,
            read=receipt.read,
        )
    return None
