from __future__ import annotations

import logging
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from types import TracebackType
from typing import AsyncIterator, Awaitable, Callable, Self

import redis.asyncio as aioredis
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from dm_service.application.ports.bus import RealtimeBus
from dm_service.application.ports.clock import Clock
from dm_service.application.ports.identity import IdentityProvider
from dm_service.application.ports.recorder import AudioRecorder
from dm_service.application.ports.storage import ObjectStorage
from dm_service.application.uow import UnitOfWork
from dm_service.config import Settings
from dm_service.config import settings as default_settings
from dm_service.domain.value_objects.enums import SessionChangeKind
from dm_service.infrastructure.bus.redis_pubsub import RedisRealtimeBus
from dm_service.infrastructure.db.session import build_engine, build_sessionmaker
from dm_service.infrastructure.db.uow import SqlAlchemyUoW
from dm_service.infrastructure.media.preview import ImagePreviewer
from dm_service.infrastructure.storage.s3_storage import S3ObjectStorage
from dm_service.services.attachment_service import AttachmentUploader
from dm_service.services.notifier import RealtimeNotifier
from dm_service.services.session import UoWFactory, ViewerSession

logger = logging.getLogger(__name__)

SessionCallback = Callable[[ViewerSession | None], Awaitable[None]]


class MessagingClient:
    """Explicitly constructed platform client with a start/stop lifecycle.

    Collaborators left as None are built from ``settings`` in ``start()``;
    passing them in replaces the real backends.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        uow_factory: UoWFactory | None = None,
        bus: RealtimeBus | None = None,
        storage: ObjectStorage | None = None,
        clock: Clock | None = None,
        recorder_factory: Callable[[], AudioRecorder] | None = None,
    ) -> None:
        self.settings = settings or default_settings
        self._uow_factory = uow_factory
        self._bus = bus
        self._storage = storage
        self._clock = clock
        self._recorder_factory = recorder_factory

        self._engine: AsyncEngine | None = None
        self._sessionmaker: async_sessionmaker[AsyncSession] | None = None
        self._redis: aioredis.Redis | None = None
        self._uploader: AttachmentUploader | None = None
        self._notifier: RealtimeNotifier | None = None
        self._previewer: ImagePreviewer | None = None
        self._session: ViewerSession | None = None
        self._started = False

    @property
    def started(self) -> bool:
        return self._started

    @property
    def current_session(self) -> ViewerSession | None:
        return self._session

    async def start(self) -> None:
        if self._started:
            return
        if self._uow_factory is None:
            self._engine = build_engine(self.settings)
            self._sessionmaker = build_sessionmaker(self._engine)
            logger.info("Database engine created")
        if self._bus is None:
            self._redis = aioredis.from_url(self.settings.REDIS_URL, decode_responses=True)
            self._bus = RedisRealtimeBus(self._redis)
            logger.info("Redis connection pool created")
        if self._storage is None:
            self._storage = S3ObjectStorage(self.settings)

        self._uploader = AttachmentUploader(
            self._storage,
            max_bytes=self.settings.ATTACHMENT_MAX_BYTES,
            clock=self._clock,
        )
        self._notifier = RealtimeNotifier(self._bus, self.settings.REALTIME_CHANNEL_PREFIX)
        self._previewer = ImagePreviewer(self.settings.PREVIEW_MAX_SIZE)
        self._started = True
        logger.info("Messaging client started")

    async def stop(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
            self._bus = None
            logger.info("Redis connection pool closed")
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._sessionmaker = None
            logger.info("Database engine disposed")
        self._started = False
        logger.info("Messaging client stopped")

    async def __aenter__(self) -> Self:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.stop()

    def uow(self) -> AbstractAsyncContextManager[UnitOfWork]:
        if not self._started:
            raise RuntimeError("MessagingClient.start() has not been called")
        if self._uow_factory is not None:
            return self._uow_factory()
        return self._sql_uow()

    @asynccontextmanager
    async def _sql_uow(self) -> AsyncIterator[UnitOfWork]:
        assert self._sessionmaker is not None
        async with self._sessionmaker() as session:
            async with SqlAlchemyUoW(session) as uow:
                yield uow

    async def open_session(self, identity: IdentityProvider) -> ViewerSession:
        """Start a viewer session for the signed-in user, replacing any previous one."""
        if not self._started:
            raise RuntimeError("MessagingClient.start() has not been called")
        viewer = await identity.current_user()
        await self.close_session()

        assert self._bus is not None and self._notifier is not None
        session = ViewerSession(
            viewer,
            self.uow,
            self._bus,
            self._notifier,
            uploader=self._uploader,
            previewer=self._previewer,
            recorder_factory=self._recorder_factory,
        )
        await session.start()
        self._session = session
        logger.info("Viewer session opened for %s", viewer.id)
        return session

    async def close_session(self) -> None:
        if self._session is None:
            return
        viewer_id = self._session.viewer_id
        await self._session.close()
        self._session = None
        logger.info("Viewer session closed for %s", viewer_id)

    async def watch_identity(
        self,
        identity: IdentityProvider,
        on_session: SessionCallback | None = None,
    ) -> None:
        """Open a session on sign-in and close it on sign-out until the stream ends."""
        try:
            async for change in identity.session_changes():
                if change.kind == SessionChangeKind.SIGNED_IN:
                    session = await self.open_session(identity)
                    if on_session is not None:
                        await on_session(session)
                elif change.kind == SessionChangeKind.SIGNED_OUT:
                    await self.close_session()
                    if on_session is not None:
                        await on_session(None)
        finally:
            await self.close_session()
