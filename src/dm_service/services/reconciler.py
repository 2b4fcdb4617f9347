"""Realtime reconciler: one inbox subscription per viewer session."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Iterable

from dm_service.application import state as reducer
from dm_service.application.dto.events import decode_event
from dm_service.application.ports.bus import RealtimeBus, Subscription
from dm_service.application.state import MessagingState
from dm_service.domain.entities.conversation import Conversation, ConversationKey
from dm_service.domain.entities.message import Message
from dm_service.domain.events.message_events import MessageReceived, ReceiptUpdated
from dm_service.domain.value_objects.ids import UserId

logger = logging.getLogger(__name__)

OnMessageCallback = Callable[[Message], None]
OnChangeCallback = Callable[[MessagingState], None]


class RealtimeReconciler:
    """Feeds pushed events and local results into the reducer.

    Push delivery order is trusted; reconnecting after a dropped connection is
    left to the bus adapter.
    """

    def __init__(
        self,
        bus: RealtimeBus,
        viewer_id: UserId,
        channel: str,
    ) -> None:
        self._bus = bus
        self._channel = channel
        self._state = MessagingState(viewer_id=viewer_id)
        self._subscription: Subscription | None = None
        self._task: asyncio.Task[None] | None = None
        self._on_message: list[OnMessageCallback] = []
        self._on_change: list[OnChangeCallback] = []

    @property
    def state(self) -> MessagingState:
        return self._state

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def on_message(self, callback: OnMessageCallback) -> None:
        """Register a callback for messages merged for the first time."""
        self._on_message.append(callback)

    def on_change(self, callback: OnChangeCallback) -> None:
        self._on_change.append(callback)

    async def start(self) -> None:
        if self._task is not None:
            return
        self._subscription = await self._bus.subscribe(self._channel)
        self._task = asyncio.create_task(
            self._listen(), name=f"dm-reconciler-{self._state.viewer_id}",
        )
        logger.info("Realtime reconciler started on channel=%s", self._channel)

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        if self._subscription is not None:
            await self._subscription.close()
            self._subscription = None
            logger.info("Realtime reconciler stopped on channel=%s", self._channel)

    async def _listen(self) -> None:
        assert self._subscription is not None
        try:
            async for event_type, data in self._subscription:
                try:
                    self.handle_event(event_type, data)
                except Exception:
                    logger.exception("Error processing realtime event %s", event_type)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Realtime subscription on %s failed", self._channel)

    def handle_event(self, event_type: str, data: dict[str, Any]) -> None:
        event = decode_event(event_type, data)
        if event is None:
            logger.debug("Ignoring realtime event %s", event_type)
        elif isinstance(event, MessageReceived):
            self.receive(event.message)
        elif isinstance(event, ReceiptUpdated):
            self.apply_receipt(event)

    def receive(self, message: Message) -> bool:
        """Merge a message. Returns False when it was a duplicate."""
        is_new = message.id not in self._state.seen
        self._commit(reducer.apply_message(self._state, message))
        if is_new and message.id in self._state.seen:
            for callback in self._on_message:
                callback(message)
            return True
        return False

    def apply_receipt(self, receipt: ReceiptUpdated) -> None:
        self._commit(reducer.apply_receipt(self._state, receipt))

    def apply_receipts(self, messages: Iterable[Message]) -> None:
        for msg in messages:
            self.apply_receipt(
                ReceiptUpdated(message_id=msg.id, delivered=msg.delivered, read=msg.read)
            )

    def set_conversations(self, conversations: Iterable[Conversation]) -> None:
        self._commit(reducer.set_conversations(self._state, conversations))

    def open_thread(self, key: ConversationKey) -> int:
        new_state, token = reducer.open_thread(self._state, key)
        self._commit(new_state)
        return token

    def close_thread(self) -> None:
        self._commit(reducer.close_thread(self._state))

    def is_current(self, key: ConversationKey, token: int) -> bool:
        return reducer.is_current(self._state, key, token)

    def load_history(
        self,
        key: ConversationKey,
        token: int,
        history: Iterable[Message],
    ) -> bool:
        """Returns False when the result was stale and dropped."""
        if not self.is_current(key, token):
            logger.debug("Dropping stale history for %s", key)
            return False
        self._commit(reducer.load_history(self._state, key, token, history))
        return True

    def _commit(self, new_state: MessagingState) -> None:
        if new_state is self._state:
            return
        self._state = new_state
        for callback in self._on_change:
            try:
                callback(new_state)
            except Exception:
                logger.exception("State listener failed")
