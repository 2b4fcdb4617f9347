"""Shared test fixtures."""
from __future__ import annotations

import asyncio
import itertools
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncIterator, Iterable

import pytest

from dm_service.application.exceptions import DependencyError
from dm_service.domain.entities.message import Attachment, AttachmentSource, Message
from dm_service.domain.entities.user import User
from dm_service.domain.value_objects.ids import MessageId, UserId

ALICE = UserId("alice")
BOB = UserId("bob")
CAROL = UserId("carol")

BASE_TIME = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

_seq = itertools.count(1)


def make_user(user_id: str, name: str | None = None) -> User:
    return User(
        id=UserId(user_id),
        display_name=name or user_id.title(),
        handle=user_id,
        avatar_url=None,
    )


def make_message(
    *,
    sender_id: str = ALICE,
    receiver_id: str = BOB,
    content: str = "hello",
    created_at: datetime | None = None,
    read: bool = False,
    delivered: bool = False,
    reply_to_id: MessageId | None = None,
    attachment: Attachment | None = None,
    message_id: uuid.UUID | None = None,
) -> Message:
    seq = next(_seq)
    return Message(
        id=MessageId(message_id or uuid.uuid4()),
        seq=seq,
        sender_id=UserId(sender_id),
        receiver_id=UserId(receiver_id),
        content=content,
        created_at=created_at or BASE_TIME + timedelta(seconds=seq),
        read=read,
        delivered=delivered or read,
        reply_to_id=reply_to_id,
        attachment=attachment,
    )


async def settle(rounds: int = 10) -> None:
    """Let background tasks (listeners, fire-and-forget marks) run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@dataclass
class FakeFollowReader:
    _edges: set[tuple[str, str]] = field(default_factory=set)
    fail: bool = False

    async def exists(self, follower_id: UserId, following_id: UserId) -> bool:
        if self.fail:
            raise DependencyError("store unreachable")
        return (follower_id, following_id) in self._edges

    async def list_following(self, follower_id: UserId) -> set[UserId]:
        if self.fail:
            raise DependencyError("store unreachable")
        return {UserId(b) for a, b in self._edges if a == follower_id}


@dataclass
class FakeProfileReader:
    _profiles: dict[str, User] = field(default_factory=dict)

    async def get_many(self, user_ids: Iterable[UserId]) -> dict[UserId, User]:
        return {UserId(i): self._profiles[i] for i in user_ids if i in self._profiles}


@dataclass
class FakeMessageReader:
    _messages: list[Message] = field(default_factory=list)
    failing_pairs: set[frozenset[str]] = field(default_factory=set)

    def _pair(self, user_a: str, user_b: str) -> list[Message]:
        if frozenset((user_a, user_b)) in self.failing_pairs:
            raise DependencyError("store unreachable")
        pair = frozenset((user_a, user_b))
        return sorted(
            (m for m in self._messages if m.participants == pair),
            key=lambda m: (m.created_at, m.seq),
        )

    async def get_by_id(self, message_id: MessageId) -> Message | None:
        return next((m for m in self._messages if m.id == message_id), None)

    async def list_between(self, user_a: UserId, user_b: UserId) -> list[Message]:
        return self._pair(user_a, user_b)

    async def get_last_between(self, user_a: UserId, user_b: UserId) -> Message | None:
        messages = self._pair(user_a, user_b)
        return messages[-1] if messages else None


@dataclass
class FakeMessageWriter:
    _reader: FakeMessageReader
    fixed_time: datetime | None = None
    fail: bool = False

    async def insert(
        self,
        sender_id: UserId,
        receiver_id: UserId,
        content: str,
        *,
        reply_to_id: MessageId | None = None,
        attachment: Attachment | None = None,
    ) -> Message:
        if self.fail:
            raise DependencyError("store unreachable")
        seq = next(_seq)
        msg = Message(
            id=MessageId(uuid.uuid4()),
            seq=seq,
            sender_id=sender_id,
            receiver_id=receiver_id,
            content=content,
            created_at=self.fixed_time or BASE_TIME + timedelta(seconds=seq),
            reply_to_id=reply_to_id,
            attachment=attachment,
        )
        self._reader._messages.append(msg)
        return msg

    def _replace(self, old: Message, new: Message) -> None:
        idx = self._reader._messages.index(old)
        self._reader._messages[idx] = new

    async def mark_delivered(self, message_id: MessageId) -> Message | None:
        if self.fail:
            raise DependencyError("store unreachable")
        for m in self._reader._messages:
            if m.id == message_id and not m.delivered:
                updated = m.with_delivered()
                self._replace(m, updated)
                return updated
        return None

    async def mark_read(self, sender_id: UserId, receiver_id: UserId) -> list[Message]:
        if self.fail:
            raise DependencyError("store unreachable")
        changed: list[Message] = []
        for m in list(self._reader._messages):
            if m.sender_id == sender_id and m.receiver_id == receiver_id and not m.read:
                updated = m.with_read()
                self._replace(m, updated)
                changed.append(updated)
        return changed


@dataclass
class FakeUoW:
    """In-memory UoW for unit tests."""
    follows: FakeFollowReader = field(default_factory=FakeFollowReader)
    profiles: FakeProfileReader = field(default_factory=FakeProfileReader)
    messages: FakeMessageReader = field(default_factory=FakeMessageReader)
    messages_w: FakeMessageWriter | None = None
    commits: int = 0

    def __post_init__(self) -> None:
        if self.messages_w is None:
            self.messages_w = FakeMessageWriter(self.messages)

    @property
    def _committed(self) -> bool:
        return self.commits > 0

    def follow(self, follower: str, following: str) -> None:
        self.follows._edges.add((follower, following))

    def add_profile(self, user: User) -> None:
        self.profiles._profiles[user.id] = user

    def add_message(self, msg: Message) -> Message:
        self.messages._messages.append(msg)
        return msg

    async def commit(self) -> None:
        self.commits += 1

    async def rollback(self) -> None:
        pass


def uow_factory_for(uow: FakeUoW):
    @asynccontextmanager
    async def _factory() -> AsyncIterator[FakeUoW]:
        yield uow

    return _factory


@dataclass
class FakeStorage:
    objects: dict[str, tuple[bytes, str]] = field(default_factory=dict)
    ensure_calls: int = 0
    fail: bool = False
    base_url: str = "https://cdn.example.test/bucket"

    async def ensure_bucket(self) -> None:
        self.ensure_calls += 1

    async def upload(self, path: str, content: bytes, content_type: str) -> None:
        if self.fail:
            raise DependencyError("storage unreachable")
        self.objects[path] = (content, content_type)

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/{path}"


class FakeSubscription:
    def __init__(self, bus: FakeBus, channel: str) -> None:
        self._bus = bus
        self.channel = channel
        self.queue: asyncio.Queue[tuple[str, dict[str, Any]] | None] = asyncio.Queue()
        self.closed = False

    def __aiter__(self) -> AsyncIterator[tuple[str, dict[str, Any]]]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[tuple[str, dict[str, Any]]]:
        while True:
            item = await self.queue.get()
            if item is None:
                return
            yield item

    async def close(self) -> None:
        self.closed = True
        self._bus.subscriptions.discard(self)
        self.queue.put_nowait(None)


class FakeBus:
    def __init__(self) -> None:
        self.published: list[tuple[str, str, dict[str, Any]]] = []
        self.subscriptions: set[FakeSubscription] = set()
        self.fail_publish = False

    async def publish(self, channel: str, event_type: str, payload: dict[str, Any]) -> None:
        if self.fail_publish:
            raise DependencyError("bus unreachable")
        self.published.append((channel, event_type, payload))
        for sub in list(self.subscriptions):
            if sub.channel == channel:
                sub.queue.put_nowait((event_type, payload))

    async def subscribe(self, channel: str) -> FakeSubscription:
        sub = FakeSubscription(self, channel)
        self.subscriptions.add(sub)
        return sub

    def push(self, channel: str, event_type: str, payload: dict[str, Any]) -> None:
        """Deliver an event without recording it as published by us."""
        for sub in list(self.subscriptions):
            if sub.channel == channel:
                sub.queue.put_nowait((event_type, payload))


@dataclass
class FakeClock:
    current: datetime = BASE_TIME

    def now(self) -> datetime:
        return self.current


@dataclass
class FakeRecorder:
    audio: AttachmentSource = field(
        default_factory=lambda: AttachmentSource("voice.webm", b"\x1aE\xdf\xa3", "audio/webm"),
    )
    fail_start: bool = False
    started: int = 0
    cancelled: int = 0

    async def start(self) -> None:
        if self.fail_start:
            raise PermissionError("microphone access denied")
        self.started += 1

    async def stop(self) -> AttachmentSource:
        return self.audio

    async def cancel(self) -> None:
        self.cancelled += 1


@pytest.fixture
def uow() -> FakeUoW:
    uow = FakeUoW()
    for user_id in (ALICE, BOB, CAROL):
        uow.add_profile(make_user(user_id))
    return uow


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def bus() -> FakeBus:
    return FakeBus()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
