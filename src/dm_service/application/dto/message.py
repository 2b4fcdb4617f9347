from __future__ import annotations

from dataclasses import dataclass

from dm_service.domain.entities.message import AttachmentSource
from dm_service.domain.value_objects.ids import MessageId, UserId


@dataclass(frozen=True, slots=True)
class SendMessageDTO:
    sender_id: UserId
    receiver_id: UserId
    content: str = ""
    reply_to_id: MessageId | None = None
    attachment: AttachmentSource | None = None

    @property
    def is_empty(self) -> bool:
        return not self.content.strip() and self.attachment is None
