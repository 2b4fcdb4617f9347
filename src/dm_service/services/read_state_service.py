from __future__ import annotations

from dm_service.application.uow import UnitOfWork
from dm_service.domain.entities.message import Message
from dm_service.domain.value_objects.ids import MessageId, UserId
from dm_service.services.notifier import RealtimeNotifier


async def mark_delivered(
    message_id: MessageId,
    uow: UnitOfWork,
    notifier: RealtimeNotifier | None = None,
) -> Message | None:
    """Idempotent. Returns the message if this call changed it."""
    changed = await uow.messages_w.mark_delivered(message_id)
    if changed is None:
        return None
    await uow.commit()
    if notifier is not None:
        await notifier.receipts_changed([changed])
    return changed


async def mark_read(
    sender_id: UserId,
    viewer_id: UserId,
    uow: UnitOfWork,
    notifier: RealtimeNotifier | None = None,
) -> list[Message]:
    """Mark every unread message sender -> viewer as read (and delivered).

    Returns the messages this call changed; empty when nothing was unread.
    """
    changed = await uow.messages_w.mark_read(sender_id, viewer_id)
    if not changed:
        return []
    await uow.commit()
    if notifier is not None:
        await notifier.receipts_changed(changed)
    return changed
