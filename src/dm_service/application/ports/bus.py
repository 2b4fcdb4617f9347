from __future__ import annotations

from typing import Any, AsyncIterator, Protocol


class Subscription(Protocol):
    def __aiter__(self) -> AsyncIterator[tuple[str, dict[str, Any]]]: ...

    async def close(self) -> None: ...


class EventPublisher(Protocol):
    async def publish(self, channel: str, event_type: str, payload: dict[str, Any]) -> None: ...


class RealtimeBus(EventPublisher, Protocol):
    async def subscribe(self, channel: str) -> Subscription: ...
