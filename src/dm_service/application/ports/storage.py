from __future__ import annotations

from typing import Protocol


class ObjectStorage(Protocol):
    async def ensure_bucket(self) -> None:
        """Create the bucket if it does not exist yet."""
        ...

    async def upload(self, path: str, content: bytes, content_type: str) -> None: ...

    def public_url(self, path: str) -> str: ...
