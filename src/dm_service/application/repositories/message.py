from __future__ import annotations

from typing import Protocol

from dm_service.domain.entities.message import Attachment, Message
from dm_service.domain.value_objects.ids import MessageId, UserId


class MessageReader(Protocol):
    async def get_by_id(self, message_id: MessageId) -> Message | None: ...

    async def list_between(self, user_a: UserId, user_b: UserId) -> list[Message]:
        """Both directions, ascending by (created_at, seq)."""
        ...

    async def get_last_between(self, user_a: UserId, user_b: UserId) -> Message | None: ...


class MessageWriter(Protocol):
    async def insert(
        self,
        sender_id: UserId,
        receiver_id: UserId,
        content: str,
        *,
        reply_to_id: MessageId | None = None,
        attachment: Attachment | None = None,
    ) -> Message:
        """Insert with read=False, delivered=False. Store assigns id, seq and created_at."""
        ...

    async def mark_delivered(self, message_id: MessageId) -> Message | None:
        """Return the updated message, or None if it was already delivered or is unknown."""
        ...

    async def mark_read(self, sender_id: UserId, receiver_id: UserId) -> list[Message]:
        """Mark every unread message sender -> receiver read. Return the changed rows."""
        ...
