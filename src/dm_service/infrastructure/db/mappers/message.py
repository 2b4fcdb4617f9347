from __future__ import annotations

from dm_service.domain.entities.message import Attachment, Message
from dm_service.domain.value_objects.ids import MessageId, UserId
from dm_service.infrastructure.db.models.message import MessageModel


def model_to_entity(model: MessageModel) -> Message:
    attachment = None
    if model.attachment_url and model.attachment_mime_type:
        attachment = Attachment(url=model.attachment_url, mime_type=model.attachment_mime_type)
    return Message(
        id=MessageId(model.id),
        seq=model.seq,
        sender_id=UserId(model.sender_id),
        receiver_id=UserId(model.receiver_id),
        content=model.content,
        created_at=model.created_at,
        read=model.read,
        delivered=model.delivered,
        reply_to_id=MessageId(model.reply_to_id) if model.reply_to_id else None,
        attachment=attachment,
    )
