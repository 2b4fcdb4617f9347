from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator

import jwt

from dm_service.application.exceptions import AuthorizationError
from dm_service.domain.entities.user import User
from dm_service.domain.events.session_events import SessionChange
from dm_service.domain.value_objects.enums import SessionChangeKind
from dm_service.domain.value_objects.ids import UserId

logger = logging.getLogger(__name__)


class JwtIdentityProvider:
    """Identity from a platform session token signed with a shared secret.

    Implements application.ports.identity.IdentityProvider.
    """

    def __init__(self, secret: str, algorithm: str = "HS256") -> None:
        self._secret = secret
        self._algorithm = algorithm
        self._token: str | None = None
        self._user: User | None = None
        self._listeners: set[asyncio.Queue[SessionChange | None]] = set()

    def verify(self, token: str) -> User:
        try:
            payload = jwt.decode(token, self._secret, algorithms=[self._algorithm])
        except jwt.InvalidTokenError as exc:
            raise AuthorizationError(f"Invalid session token: {exc}") from exc
        sub = payload.get("sub")
        if not sub:
            raise AuthorizationError("Session token has no subject")
        handle = payload.get("handle") or payload.get("username") or str(sub)
        return User(
            id=UserId(str(sub)),
            display_name=payload.get("name") or handle,
            handle=handle,
            avatar_url=payload.get("avatar_url"),
        )

    def sign_in(self, token: str) -> User:
        user = self.verify(token)
        self._token = token
        self._user = user
        logger.info("Signed in as %s", user.id)
        self._emit(SessionChange(kind=SessionChangeKind.SIGNED_IN, user=user))
        return user

    def sign_out(self) -> None:
        if self._user is None:
            return
        logger.info("Signed out %s", self._user.id)
        self._token = None
        self._user = None
        self._emit(SessionChange(kind=SessionChangeKind.SIGNED_OUT))

    async def current_user(self) -> User:
        if self._token is None or self._user is None:
            raise AuthorizationError("not authenticated")
        # Expired tokens fail here.
        try:
            return self.verify(self._token)
        except AuthorizationError:
            self.sign_out()
            raise

    async def session_changes(self) -> AsyncIterator[SessionChange]:
        queue: asyncio.Queue[SessionChange | None] = asyncio.Queue()
        self._listeners.add(queue)
        try:
            while True:
                change = await queue.get()
                if change is None:
                    return
                yield change
        finally:
            self._listeners.discard(queue)

    def close(self) -> None:
        """End every session_changes() iterator."""
        for queue in list(self._listeners):
            queue.put_nowait(None)

    def _emit(self, change: SessionChange) -> None:
        for queue in list(self._listeners):
            queue.put_nowait(change)
