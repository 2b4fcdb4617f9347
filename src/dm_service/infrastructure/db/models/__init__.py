"""Import all models so Alembic can discover them via Base.metadata."""
from dm_service.infrastructure.db.models.follow import FollowModel
from dm_service.infrastructure.db.models.message import MessageModel
from dm_service.infrastructure.db.models.profile import ProfileModel

__all__ = [
    "FollowModel",
    "MessageModel",
    "ProfileModel",
]
