"""Fan-out of stored message changes to participants' inbox channels."""
from __future__ import annotations

import logging
from typing import Iterable

from dm_service.application.dto.events import MessagePayload, ReceiptPayload
from dm_service.application.ports.bus import EventPublisher
from dm_service.domain.entities.message import Message
from dm_service.domain.value_objects.enums import RealtimeEventType
from dm_service.domain.value_objects.ids import UserId

logger = logging.getLogger(__name__)


class RealtimeNotifier:
    def __init__(self, publisher: EventPublisher, channel_prefix: str = "dm.inbox") -> None:
        self._publisher = publisher
        self._prefix = channel_prefix

    def channel_for(self, user_id: UserId) -> str:
        return f"{self._prefix}.{user_id}"

    async def message_inserted(self, msg: Message) -> None:
        # Both parties: the receiver gets the push, the sender gets the echo.
        payload = MessagePayload.from_entity(msg).model_dump(mode="json")
        for user_id in (msg.receiver_id, msg.sender_id):
            await self._publish(user_id, RealtimeEventType.MESSAGE_INSERTED, payload)

    async def receipts_changed(self, messages: Iterable[Message]) -> None:
        for msg in messages:
            payload = ReceiptPayload(
                id=msg.id, delivered=msg.delivered, read=msg.read,
            ).model_dump(mode="json")
            for user_id in (msg.sender_id, msg.receiver_id):
                await self._publish(user_id, RealtimeEventType.MESSAGE_UPDATED, payload)

    async def _publish(self, user_id: UserId, event_type: str, payload: dict) -> None:
        # Row is committed by now; publishing is best effort.
        try:
            await self._publisher.publish(self.channel_for(user_id), event_type, payload)
        except Exception:
            logger.warning(
                "Failed to publish %s to %s", event_type, user_id, exc_info=True,
            )
