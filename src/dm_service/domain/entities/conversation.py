from __future__ import annotations

from dataclasses import dataclass, replace

from dm_service.domain.entities.message import Message
from dm_service.domain.entities.user import User
from dm_service.domain.value_objects.ids import UserId


@dataclass(frozen=True, slots=True)
class ConversationKey:
    """Identity of a two-party conversation as seen by one viewer."""

    viewer_id: UserId
    other_id: UserId

    @property
    def pair(self) -> frozenset[UserId]:
        return frozenset((self.viewer_id, self.other_id))

    @classmethod
    def for_message(cls, viewer_id: UserId, message: Message) -> ConversationKey:
        return cls(viewer_id=viewer_id, other_id=message.other_party(viewer_id))

    def contains(self, message: Message) -> bool:
        return message.participants == self.pair

    def __str__(self) -> str:
        return f"{self.viewer_id}:{self.other_id}"


@dataclass(frozen=True, slots=True)
class Conversation:
    key: ConversationKey
    participants: tuple[User, User]
    last_message: Message
    unread_count: int = 0

    @property
    def viewer(self) -> User:
        return self.participants[0]

    @property
    def other(self) -> User:
        return self.participants[1]

    def with_last_message(self, message: Message, unread_count: int) -> Conversation:
        return replace(self, last_message=message, unread_count=max(unread_count, 0))
