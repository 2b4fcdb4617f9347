from __future__ import annotations

from dm_service.domain.entities.user import User
from dm_service.domain.value_objects.ids import UserId
from dm_service.infrastructure.db.models.profile import ProfileModel


def model_to_entity(model: ProfileModel) -> User:
    return User(
        id=UserId(model.id),
        display_name=model.display_name or model.handle,
        handle=model.handle,
        avatar_url=model.avatar_url,
    )
