from __future__ import annotations

import asyncio
import logging
from typing import Iterable

from dm_service.application.uow import UnitOfWork
from dm_service.domain.entities.conversation import Conversation, ConversationKey
from dm_service.domain.entities.message import Message, placeholder_message
from dm_service.domain.entities.user import User
from dm_service.domain.value_objects.ids import UserId
from dm_service.services import follow_service, message_service

logger = logging.getLogger(__name__)


def unread_count_for(viewer_id: UserId, last_message: Message) -> int:
    """1 when the latest message is an unread inbound one, else 0.

    Only the latest message is looked at; this is not a cumulative tally.
    """
    if last_message.is_placeholder:
        return 0
    if last_message.receiver_id == viewer_id and not last_message.read:
        return 1
    return 0


async def derive_conversations(
    viewer_id: UserId,
    uow: UnitOfWork,
) -> list[Conversation]:
    """One conversation per followed user, whether or not messages exist.

    A failure loading one pair's last message degrades that entry to the
    placeholder instead of failing the whole list.
    """
    followed = await follow_service.list_following(viewer_id, uow)
    if not followed:
        return []

    profiles = await uow.profiles.get_many({viewer_id, *followed})
    viewer = profiles.get(viewer_id) or User.unknown(viewer_id)

    conversations: list[Conversation] = []
    for other_id in sorted(followed):
        last = await _last_message_or_placeholder(viewer_id, other_id, uow)
        conversations.append(
            Conversation(
                key=ConversationKey(viewer_id=viewer_id, other_id=other_id),
                participants=(viewer, profiles.get(other_id) or User.unknown(other_id)),
                last_message=last,
                unread_count=unread_count_for(viewer_id, last),
            )
        )
    return conversations


async def _last_message_or_placeholder(
    viewer_id: UserId,
    other_id: UserId,
    uow: UnitOfWork,
) -> Message:
    try:
        last = await message_service.get_last_message(viewer_id, other_id, uow)
    except asyncio.CancelledError:
        raise
    except Exception:
        logger.warning(
            "Could not load last message for %s/%s, using placeholder",
            viewer_id, other_id, exc_info=True,
        )
        last = None
    return last or placeholder_message(viewer_id, other_id)


def sort_by_recency(conversations: Iterable[Conversation]) -> list[Conversation]:
    """Newest last message first; placeholders sink to the end."""
    return sorted(
        conversations,
        key=lambda c: (c.last_message.created_at, c.last_message.seq),
        reverse=True,
    )


def filter_conversations(
    conversations: Iterable[Conversation],
    query: str,
) -> list[Conversation]:
    needle = query.strip().lower()
    if not needle:
        return list(conversations)
    return [
        c for c in conversations
        if needle in c.other.display_name.lower() or needle in c.other.handle.lower()
    ]


def preview_text(conversation: Conversation) -> str:
    last = conversation.last_message
    if last.is_placeholder:
        return last.content
    text = last.content or ("[attachment]" if last.attachment else "")
    if last.sender_id == conversation.key.viewer_id:
        return f"You: {text}"
    return text
