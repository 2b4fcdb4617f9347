from __future__ import annotations

from dataclasses import dataclass

from dm_service.domain.entities.message import Message
from dm_service.domain.value_objects.ids import MessageId


@dataclass(frozen=True, slots=True)
class MessageReceived:
    """A message row appeared in the store (pushed or just sent)."""

    message: Message


@dataclass(frozen=True, slots=True)
class ReceiptUpdated:
    """Delivery state of an existing message advanced."""

    message_id: MessageId
    delivered: bool
    read: bool
