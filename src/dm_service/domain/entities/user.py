from __future__ import annotations

from dataclasses import dataclass

from dm_service.application.exceptions import ValidationError
from dm_service.domain.value_objects.ids import UserId


@dataclass(frozen=True, slots=True)
class User:
    id: UserId
    display_name: str
    handle: str
    avatar_url: str | None = None

    @classmethod
    def unknown(cls, user_id: UserId) -> User:
        """Stand-in for a user whose profile row is missing."""
        return cls(id=user_id, display_name=str(user_id), handle=str(user_id))


@dataclass(frozen=True, slots=True)
class FollowEdge:
    follower_id: UserId
    following_id: UserId

    def __post_init__(self) -> None:
        if self.follower_id == self.following_id:
            raise ValidationError("A user cannot follow themselves")
