from __future__ import annotations

from typing import Protocol

from dm_service.application.repositories.follow import FollowReader
from dm_service.application.repositories.message import MessageReader, MessageWriter
from dm_service.application.repositories.profile import ProfileReader


class UnitOfWork(Protocol):
    follows: FollowReader
    profiles: ProfileReader
    messages: MessageReader
    messages_w: MessageWriter

    async def commit(self) -> None: ...
    async def rollback(self) -> None: ...
