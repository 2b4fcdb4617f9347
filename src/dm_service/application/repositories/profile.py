from __future__ import annotations

from typing import Iterable, Protocol

from dm_service.domain.entities.user import User
from dm_service.domain.value_objects.ids import UserId


class ProfileReader(Protocol):
    async def get_many(self, user_ids: Iterable[UserId]) -> dict[UserId, User]: ...
