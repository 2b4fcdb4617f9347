from __future__ import annotations

from dm_service.application.exceptions import (
    AuthorizationError,
    DataIntegrityError,
    ValidationError,
)
from dm_service.application.repositories.follow import FollowReader
from dm_service.domain.entities.message import Message
from dm_service.domain.value_objects.ids import MessageId, UserId


async def assert_can_message(
    user_id: UserId,
    other_id: UserId,
    follows: FollowReader,
) -> None:
    """Raise unless user_id follows other_id. Checked on every call, never cached.

    Nobody follows themselves, so messaging yourself is refused the same way.
    """
    if user_id == other_id or not await follows.exists(user_id, other_id):
        raise AuthorizationError("not following")


def assert_reply_in_conversation(
    reply_to_id: MessageId,
    target: Message | None,
    user_a: UserId,
    user_b: UserId,
) -> Message:
    if target is None:
        raise DataIntegrityError(f"Reply target {reply_to_id} does not exist")
    if target.is_placeholder:
        raise ValidationError("Cannot reply to a placeholder message")
    if target.participants != frozenset((user_a, user_b)):
        raise DataIntegrityError(
            f"Reply target {reply_to_id} belongs to a different conversation"
        )
    return target
