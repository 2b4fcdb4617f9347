from __future__ import annotations

import logging

from dm_service.application.dto.message import SendMessageDTO
from dm_service.application.exceptions import ValidationError
from dm_service.application.policies.permissions import (
    assert_can_message,
    assert_reply_in_conversation,
)
from dm_service.application.uow import UnitOfWork
from dm_service.domain.entities.message import Attachment, Message
from dm_service.domain.value_objects.enums import AttachmentCategory
from dm_service.domain.value_objects.ids import UserId
from dm_service.services.attachment_service import AttachmentUploader
from dm_service.services.notifier import RealtimeNotifier

logger = logging.getLogger(__name__)


async def fetch_history(
    user_id: UserId,
    other_id: UserId,
    uow: UnitOfWork,
) -> list[Message]:
    """Return both directions of the pair, oldest first.

    The follow check runs on every call so that an unfollow takes effect on
    the next fetch.
    """
    await assert_can_message(user_id, other_id, uow.follows)
    return await uow.messages.list_between(user_id, other_id)


async def get_last_message(
    user_id: UserId,
    other_id: UserId,
    uow: UnitOfWork,
) -> Message | None:
    return await uow.messages.get_last_between(user_id, other_id)


async def send_message(
    dto: SendMessageDTO,
    uow: UnitOfWork,
    uploader: AttachmentUploader | None = None,
    notifier: RealtimeNotifier | None = None,
) -> Message:
    """Validate, authorize, upload the attachment if any, then insert.

    An upload failure aborts the send before anything is written.
    """
    if dto.is_empty:
        raise ValidationError("Message must have content or an attachment")
    if dto.attachment is not None:
        if uploader is None:
            raise ValidationError("Attachments are not enabled")
        uploader.validate(dto.attachment)

    await assert_can_message(dto.sender_id, dto.receiver_id, uow.follows)

    if dto.reply_to_id is not None:
        target = await uow.messages.get_by_id(dto.reply_to_id)
        assert_reply_in_conversation(
            dto.reply_to_id, target, dto.sender_id, dto.receiver_id,
        )

    attachment: Attachment | None = None
    if dto.attachment is not None:
        assert uploader is not None
        category = AttachmentCategory.from_mime_type(uploader.mime_type_for(dto.attachment))
        attachment = await uploader.upload(dto.attachment, dto.sender_id, category)

    msg = await uow.messages_w.insert(
        dto.sender_id,
        dto.receiver_id,
        dto.content,
        reply_to_id=dto.reply_to_id,
        attachment=attachment,
    )
    await uow.commit()
    logger.debug("Message %s stored (%s -> %s)", msg.id, msg.sender_id, msg.receiver_id)

    if notifier is not None:
        await notifier.message_inserted(msg)
    return msg
