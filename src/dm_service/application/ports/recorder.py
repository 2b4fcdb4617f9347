from __future__ import annotations

from typing import Protocol

from dm_service.domain.entities.message import AttachmentSource


class AudioRecorder(Protocol):
    """Microphone capture session supplied by the UI layer."""

    async def start(self) -> None: ...

    async def stop(self) -> AttachmentSource: ...

    async def cancel(self) -> None: ...
