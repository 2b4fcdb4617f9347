from __future__ import annotations

from typing import Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from dm_service.domain.entities.user import User
from dm_service.domain.value_objects.ids import UserId
from dm_service.infrastructure.db.mappers import profile as mapper
from dm_service.infrastructure.db.models.profile import ProfileModel
from dm_service.infrastructure.db.repositories._errors import db_errors


class ProfileReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    @db_errors
    async def get_many(self, user_ids: Iterable[UserId]) -> dict[UserId, User]:
        ids = list(set(user_ids))
        if not ids:
            return {}
        stmt = select(ProfileModel).where(ProfileModel.id.in_(ids))
        result = await self._session.execute(stmt)
        users = (mapper.model_to_entity(m) for m in result.scalars().all())
        return {u.id: u for u in users}
