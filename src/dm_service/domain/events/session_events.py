from __future__ import annotations

from dataclasses import dataclass

from dm_service.domain.entities.user import User
from dm_service.domain.value_objects.enums import SessionChangeKind


@dataclass(frozen=True, slots=True)
class SessionChange:
    kind: SessionChangeKind
    user: User | None = None
