from __future__ import annotations

import asyncio
import logging
from contextlib import AbstractAsyncContextManager
from typing import Any, Callable, Coroutine

from dm_service.application.dto.message import SendMessageDTO
from dm_service.application.ports.bus import RealtimeBus
from dm_service.application.ports.recorder import AudioRecorder
from dm_service.application.uow import UnitOfWork
from dm_service.domain.entities.conversation import Conversation, ConversationKey
from dm_service.domain.entities.message import AttachmentSource, Message
from dm_service.domain.entities.user import User
from dm_service.domain.value_objects.ids import MessageId, UserId
from dm_service.services import conversation_service, message_service, read_state_service
from dm_service.services.attachment_service import AttachmentUploader
from dm_service.services.composer import PreviewCallable, ThreadComposer
from dm_service.services.notifier import RealtimeNotifier
from dm_service.services.reconciler import RealtimeReconciler

logger = logging.getLogger(__name__)

UoWFactory = Callable[[], AbstractAsyncContextManager[UnitOfWork]]


class ViewerSession:
    """Messaging state for one signed-in viewer.

    Sent messages are merged through the reconciler exactly like pushed ones.
    Read and delivery marking run in the background; their failures are
    logged and never block display.
    """

    def __init__(
        self,
        viewer: User,
        uow_factory: UoWFactory,
        bus: RealtimeBus,
        notifier: RealtimeNotifier,
        *,
        uploader: AttachmentUploader | None = None,
        previewer: PreviewCallable | None = None,
        recorder_factory: Callable[[], AudioRecorder] | None = None,
    ) -> None:
        self.viewer = viewer
        self._uow_factory = uow_factory
        self._notifier = notifier
        self._uploader = uploader
        self._previewer = previewer
        self._recorder_factory = recorder_factory
        self._tasks: set[asyncio.Task[Any]] = set()
        self._composers: dict[ConversationKey, ThreadComposer] = {}

        self.reconciler = RealtimeReconciler(
            bus, viewer.id, notifier.channel_for(viewer.id),
        )
        self.reconciler.on_message(self._on_new_message)

    @property
    def viewer_id(self) -> UserId:
        return self.viewer.id

    async def start(self) -> list[Conversation]:
        await self.reconciler.start()
        return await self.refresh_conversations()

    async def close(self) -> None:
        for composer in self._composers.values():
            await composer.close()
        self._composers.clear()
        await self.reconciler.stop()
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()

    # -- conversations --------------------------------------------------------

    async def refresh_conversations(self) -> list[Conversation]:
        async with self._uow_factory() as uow:
            derived = await conversation_service.derive_conversations(self.viewer_id, uow)
        self.reconciler.set_conversations(derived)
        return self.conversations()

    def conversations(self, query: str = "") -> list[Conversation]:
        items = self.reconciler.state.conversations.values()
        return conversation_service.sort_by_recency(
            conversation_service.filter_conversations(items, query)
        )

    def key_for(self, other_id: UserId) -> ConversationKey:
        return ConversationKey(viewer_id=self.viewer_id, other_id=other_id)

    async def open_conversation(self, other_id: UserId) -> tuple[Message, ...]:
        """Make the thread active and load its history.

        If another conversation is opened before the fetch returns, this
        result is dropped.
        """
        key = self.key_for(other_id)
        token = self.reconciler.open_thread(key)
        async with self._uow_factory() as uow:
            history = await message_service.fetch_history(self.viewer_id, other_id, uow)
        if self.reconciler.load_history(key, token, history):
            self._spawn(self._mark_read(other_id), f"mark-read-{key}")
        return self.thread_messages(key)

    def close_conversation(self) -> None:
        self.reconciler.close_thread()

    def thread_messages(self, key: ConversationKey) -> tuple[Message, ...]:
        active = self.reconciler.state.active
        if active is None or active.key != key:
            return ()
        return active.messages

    # -- sending --------------------------------------------------------------

    async def send(
        self,
        other_id: UserId,
        content: str = "",
        *,
        reply_to_id: MessageId | None = None,
        attachment: AttachmentSource | None = None,
    ) -> Message:
        dto = SendMessageDTO(
            sender_id=self.viewer_id,
            receiver_id=other_id,
            content=content,
            reply_to_id=reply_to_id,
            attachment=attachment,
        )
        return await self.send_dto(dto)

    async def send_dto(self, dto: SendMessageDTO) -> Message:
        async with self._uow_factory() as uow:
            msg = await message_service.send_message(
                dto, uow, self._uploader, self._notifier,
            )
        self.reconciler.receive(msg)
        return msg

    def composer(self, other_id: UserId) -> ThreadComposer:
        key = self.key_for(other_id)
        composer = self._composers.get(key)
        if composer is None:
            composer = ThreadComposer(
                key,
                self.send_dto,
                recorder=self._recorder_factory() if self._recorder_factory else None,
                previewer=self._previewer,
                max_bytes=self._uploader.max_bytes if self._uploader else None,
            )
            self._composers[key] = composer
        return composer

    # -- receipts -------------------------------------------------------------

    def _on_new_message(self, msg: Message) -> None:
        if msg.receiver_id != self.viewer_id or msg.read:
            return
        active = self.reconciler.state.active
        if active is not None and active.key.other_id == msg.sender_id and active.loaded:
            self._spawn(self._mark_read(msg.sender_id), f"mark-read-{msg.sender_id}")
        elif not msg.delivered:
            self._spawn(self._mark_delivered(msg.id), f"mark-delivered-{msg.id}")

    async def _mark_read(self, other_id: UserId) -> None:
        async with self._uow_factory() as uow:
            changed = await read_state_service.mark_read(
                other_id, self.viewer_id, uow, self._notifier,
            )
        self.reconciler.apply_receipts(changed)

    async def _mark_delivered(self, message_id: MessageId) -> None:
        async with self._uow_factory() as uow:
            changed = await read_state_service.mark_delivered(message_id, uow, self._notifier)
        if changed is not None:
            self.reconciler.apply_receipts([changed])

    def _spawn(self, coro: Coroutine[Any, Any, None], name: str) -> None:
        task = asyncio.create_task(coro, name=f"dm-{name}")
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("%s failed: %s", task.get_name(), exc, exc_info=exc)
