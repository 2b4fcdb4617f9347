from __future__ import annotations

from typing import Protocol

from dm_service.domain.value_objects.ids import UserId


class FollowReader(Protocol):
    async def exists(self, follower_id: UserId, following_id: UserId) -> bool: ...

    async def list_following(self, follower_id: UserId) -> set[UserId]: ...
