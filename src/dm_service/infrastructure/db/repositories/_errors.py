"""Translate driver/ORM failures into DependencyError at the repository boundary."""
from __future__ import annotations

import functools
from typing import Awaitable, Callable, ParamSpec, TypeVar

from sqlalchemy.exc import SQLAlchemyError

from dm_service.application.exceptions import DependencyError

P = ParamSpec("P")
R = TypeVar("R")


def db_errors(func: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
    @functools.wraps(func)
    async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        try:
            return await func(*args, **kwargs)
        except (SQLAlchemyError, OSError) as exc:
            raise DependencyError(f"Relational store unavailable: {exc}") from exc

    return wrapper
