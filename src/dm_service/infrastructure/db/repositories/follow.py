from __future__ import annotations

from sqlalchemy import exists, select
from sqlalchemy.ext.asyncio import AsyncSession

from dm_service.domain.value_objects.ids import UserId
from dm_service.infrastructure.db.models.follow import FollowModel
from dm_service.infrastructure.db.repositories._errors import db_errors


class FollowReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    @db_errors
    async def exists(self, follower_id: UserId, following_id: UserId) -> bool:
        stmt = select(
            exists().where(
                FollowModel.follower_id == follower_id,
                FollowModel.following_id == following_id,
            )
        )
        result = await self._session.execute(stmt)
        return bool(result.scalar())

    @db_errors
    async def list_following(self, follower_id: UserId) -> set[UserId]:
        stmt = select(FollowModel.following_id).where(FollowModel.follower_id == follower_id)
        result = await self._session.execute(stmt)
        return {UserId(row) for row in result.scalars().all()}
