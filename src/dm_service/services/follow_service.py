from __future__ import annotations

from dm_service.application.uow import UnitOfWork
from dm_service.domain.value_objects.ids import UserId


async def is_following(follower_id: UserId, following_id: UserId, uow: UnitOfWork) -> bool:
    if follower_id == following_id:
        return False
    return await uow.follows.exists(follower_id, following_id)


async def list_following(follower_id: UserId, uow: UnitOfWork) -> set[UserId]:
    following = await uow.follows.list_following(follower_id)
    following.discard(follower_id)
    return following
