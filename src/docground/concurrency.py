"""Cooperative scheduling helpers shared by ingestion and querying."""
from __future__ import annotations

import asyncio
import functools
import inspect
from concurrent.futures import Executor
from typing import Any, Callable, Optional

from docground.errors import IngestionSuperseded


async def maybe_await(result: Any) -> Any:
    """Await result if it is awaitable."""

    if inspect.isawaitable(result):
        return await result
    return result


async def run_blocking(
    func: Callable[..., Any], *args: Any, executor: Optional[Executor] = None, **kwargs: Any
) -> Any:
    """Call *func* without blocking the event loop.

    Coroutine functions are awaited directly; anything else runs on *executor*
    (the loop's default pool when ``None``) and its result is awaited if needed.
    """

    if inspect.iscoroutinefunction(func):
        return await func(*args, **kwargs)
    loop = asyncio.get_running_loop()
    result = await loop.run_in_executor(executor, functools.partial(func, *args, **kwargs))
    return await maybe_await(result)


class CancellationToken:
    """Flag checked between pages so a newer ingestion can supersede a run."""

    def __init__(self) -> None:
        self._cancelled = False
        self.reason: str | None = None

    def cancel(self, reason: str = "superseded by a newer ingestion") -> None:
        self._cancelled = True
        self.reason = reason

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise IngestionSuperseded(f"Ingestion cancelled: {self.reason}")


__all__ = ["CancellationToken", "maybe_await", "run_blocking"]
