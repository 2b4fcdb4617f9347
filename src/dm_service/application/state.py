"""In-memory messaging state and the reducer that is the only way to change it.

Every message, whether fetched, pushed or just sent, goes through
``apply_message`` / ``load_history`` so de-duplication by id lives in one place.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Iterable, Mapping

from dm_service.domain.entities.conversation import Conversation, ConversationKey
from dm_service.domain.entities.message import Message
from dm_service.domain.events.message_events import ReceiptUpdated
from dm_service.domain.value_objects.ids import MessageId, UserId


@dataclass(frozen=True, slots=True)
class ActiveThread:
    key: ConversationKey
    token: int
    messages: tuple[Message, ...] = ()
    loaded: bool = False
    # receipts for messages not merged yet, applied by load_history
    pending: Mapping[MessageId, ReceiptUpdated] = field(
        default_factory=lambda: MappingProxyType({}),
    )

    def has(self, message_id: MessageId) -> bool:
        return any(m.id == message_id for m in self.messages)


@dataclass(frozen=True, slots=True)
class MessagingState:
    viewer_id: UserId
    conversations: Mapping[ConversationKey, Conversation] = field(
        default_factory=lambda: MappingProxyType({}),
    )
    active: ActiveThread | None = None
    seen: frozenset[MessageId] = frozenset()
    next_token: int = 1

    def conversation(self, key: ConversationKey) -> Conversation | None:
        return self.conversations.get(key)


def _newer(candidate: Message, current: Message) -> bool:
    if current.is_placeholder:
        return True
    return (candidate.created_at, candidate.seq) >= (current.created_at, current.seq)


def _upgrade(current: Message, incoming: Message) -> Message:
    return current.with_receipts(delivered=incoming.delivered, read=incoming.read)


def merge_into(messages: tuple[Message, ...], msg: Message) -> tuple[Message, ...]:
    """Append ``msg`` at the tail unless a message with the same id is present."""
    if any(m.id == msg.id for m in messages):
        return messages
    return (*messages, msg)


def set_conversations(
    state: MessagingState,
    conversations: Iterable[Conversation],
) -> MessagingState:
    """Replace the summaries. ``seen`` is rebuilt from them and the open thread."""
    by_key = {c.key: c for c in conversations if c.key.viewer_id == state.viewer_id}
    seen = {c.last_message.id for c in by_key.values() if not c.last_message.is_placeholder}
    if state.active is not None:
        seen.update(m.id for m in state.active.messages)
    return replace(state, conversations=MappingProxyType(by_key), seen=frozenset(seen))


def _with_conversation(state: MessagingState, conv: Conversation) -> MessagingState:
    updated = dict(state.conversations)
    updated[conv.key] = conv
    return replace(state, conversations=MappingProxyType(updated))


def apply_message(state: MessagingState, msg: Message) -> MessagingState:
    """Merge one message into the summary and, when it belongs there, the open thread.

    A message whose id was already merged is discarded. Appends go to the tail
    with no reordering.
    """
    viewer_id = state.viewer_id
    if viewer_id not in msg.participants or msg.is_placeholder:
        return state
    if msg.id in state.seen:
        return state

    key = ConversationKey.for_message(viewer_id, msg)
    state = replace(state, seen=state.seen | {msg.id})

    active = state.active
    thread_open = active is not None and active.key == key
    if thread_open:
        assert active is not None
        state = replace(state, active=replace(active, messages=merge_into(active.messages, msg)))

    conv = state.conversation(key)
    if conv is not None and _newer(msg, conv.last_message):
        if msg.sender_id == viewer_id or msg.read:
            unread = 0
        elif thread_open:
            unread = conv.unread_count
        else:
            unread = conv.unread_count + 1
        state = _with_conversation(state, conv.with_last_message(msg, unread))
    return state


def apply_receipt(state: MessagingState, receipt: ReceiptUpdated) -> MessagingState:
    """Advance delivered/read of a message already in state. Never downgrades."""
    active = state.active
    if active is not None and active.has(receipt.message_id):
        messages = tuple(
            m.with_receipts(delivered=receipt.delivered, read=receipt.read)
            if m.id == receipt.message_id else m
            for m in active.messages
        )
        state = replace(state, active=replace(active, messages=messages))
    elif active is not None and not active.loaded:
        state = replace(state, active=_hold_receipt(active, receipt))

    for conv in state.conversations.values():
        last = conv.last_message
        if last.id != receipt.message_id:
            continue
        upgraded = last.with_receipts(delivered=receipt.delivered, read=receipt.read)
        unread = 0 if upgraded.read or upgraded.sender_id == state.viewer_id else conv.unread_count
        state = _with_conversation(state, conv.with_last_message(upgraded, unread))
        break
    return state


def _hold_receipt(active: ActiveThread, receipt: ReceiptUpdated) -> ActiveThread:
    held = active.pending.get(receipt.message_id)
    if held is not None:
        receipt = ReceiptUpdated(
            message_id=receipt.message_id,
            delivered=receipt.delivered or held.delivered,
            read=receipt.read or held.read,
        )
    pending = dict(active.pending)
    pending[receipt.message_id] = receipt
    return replace(active, pending=MappingProxyType(pending))


def open_thread(state: MessagingState, key: ConversationKey) -> tuple[MessagingState, int]:
    """Make ``key`` the active thread. The token guards late history results."""
    token = state.next_token
    active = ActiveThread(key=key, token=token)
    return replace(state, active=active, next_token=token + 1), token


def close_thread(state: MessagingState) -> MessagingState:
    return replace(state, active=None)


def is_current(state: MessagingState, key: ConversationKey, token: int) -> bool:
    return state.active is not None and state.active.key == key and state.active.token == token


def load_history(
    state: MessagingState,
    key: ConversationKey,
    token: int,
    history: Iterable[Message],
) -> MessagingState:
    """Install fetched history into the active thread.

    Messages pushed while the fetch was in flight are kept after the history
    and not duplicated. A result for a thread that is no longer active is
    dropped.
    """
    if not is_current(state, key, token):
        return state
    active = state.active
    assert active is not None

    pushed = {m.id: m for m in active.messages}
    merged: list[Message] = []
    ids: set[MessageId] = set()
    for msg in history:
        if not key.contains(msg) or msg.id in ids:
            continue
        if msg.id in pushed:
            msg = _upgrade(msg, pushed[msg.id])
        held = active.pending.get(msg.id)
        if held is not None:
            msg = msg.with_receipts(delivered=held.delivered, read=held.read)
        merged.append(msg)
        ids.add(msg.id)
    merged.extend(m for m in active.messages if m.id not in ids)

    state = replace(
        state,
        active=replace(
            active,
            messages=tuple(merged),
            loaded=True,
            pending=MappingProxyType({}),
        ),
        seen=state.seen | ids,
    )

    conv = state.conversation(key)
    if conv is not None and merged:
        latest = max(merged, key=lambda m: (m.created_at, m.seq))
        if latest.id != conv.last_message.id and _newer(latest, conv.last_message):
            unread = 0 if latest.sender_id == state.viewer_id or latest.read else conv.unread_count
            state = _with_conversation(state, conv.with_last_message(latest, unread))
    return state
