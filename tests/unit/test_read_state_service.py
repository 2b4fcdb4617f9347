from __future__ import annotations

import uuid

import pytest

from dm_service.domain.value_objects.enums import RealtimeEventType
from dm_service.domain.value_objects.ids import MessageId
from dm_service.services import read_state_service
from dm_service.services.notifier import RealtimeNotifier
from tests.conftest import ALICE, BOB, CAROL, make_message


@pytest.mark.asyncio
async def test_mark_read_marks_every_unread_inbound(uow):
    uow.add_message(make_message(sender_id=BOB, receiver_id=ALICE))
    uow.add_message(make_message(sender_id=BOB, receiver_id=ALICE))
    outbound = uow.add_message(make_message(sender_id=ALICE, receiver_id=BOB))
    other = uow.add_message(make_message(sender_id=CAROL, receiver_id=ALICE))

    changed = await read_state_service.mark_read(BOB, ALICE, uow)

    assert len(changed) == 2
    assert all(m.read and m.delivered for m in changed)
    stored = {m.id: m for m in uow.messages._messages}
    assert stored[outbound.id].read is False
    assert stored[other.id].read is False
    assert uow._committed is True


@pytest.mark.asyncio
async def test_mark_read_is_idempotent(uow):
    uow.add_message(make_message(sender_id=BOB, receiver_id=ALICE))

    await read_state_service.mark_read(BOB, ALICE, uow)
    commits = uow.commits
    again = await read_state_service.mark_read(BOB, ALICE, uow)

    assert again == []
    assert uow.commits == commits


@pytest.mark.asyncio
async def test_mark_delivered(uow):
    msg = uow.add_message(make_message(sender_id=BOB, receiver_id=ALICE))

    changed = await read_state_service.mark_delivered(msg.id, uow)

    assert changed is not None
    assert changed.delivered is True
    assert changed.read is False
    assert await read_state_service.mark_delivered(msg.id, uow) is None


@pytest.mark.asyncio
async def test_mark_delivered_unknown_id_is_noop(uow):
    assert await read_state_service.mark_delivered(MessageId(uuid.uuid4()), uow) is None
    assert uow.commits == 0


@pytest.mark.asyncio
async def test_read_message_is_not_downgraded_by_delivery(uow):
    msg = uow.add_message(make_message(sender_id=BOB, receiver_id=ALICE, read=True))

    assert await read_state_service.mark_delivered(msg.id, uow) is None
    assert uow.messages._messages[0].read is True


@pytest.mark.asyncio
async def test_receipts_published_to_both_parties(uow, bus):
    notifier = RealtimeNotifier(bus, "dm.inbox")
    msg = uow.add_message(make_message(sender_id=BOB, receiver_id=ALICE))

    await read_state_service.mark_read(BOB, ALICE, uow, notifier)

    assert {ch for ch, _, _ in bus.published} == {"dm.inbox.alice", "dm.inbox.bob"}
    assert all(ev == RealtimeEventType.MESSAGE_UPDATED for _, ev, _ in bus.published)
    _, _, payload = bus.published[0]
    assert payload == {"id": str(msg.id), "delivered": True, "read": True}
