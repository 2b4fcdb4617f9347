from __future__ import annotations

from typing import AsyncIterator, Protocol

from dm_service.domain.entities.user import User
from dm_service.domain.events.session_events import SessionChange


class IdentityProvider(Protocol):
    async def current_user(self) -> User:
        """Return the signed-in user. Raise AuthorizationError when signed out."""
        ...

    def session_changes(self) -> AsyncIterator[SessionChange]: ...
