"""
External sink interface.

A sink applies one queued mutation to a remote system. Any exception it
raises counts as that entry's failure for the current drain pass.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .queue import QueueEntry


@runtime_checkable
class Sink(Protocol):
    """Applies queued entries to a remote backend, one call per entry."""

    async def apply(self, entry: QueueEntry) -> None: ...


class CallbackSink:
    """Sink delegating to an async function taking the queued entry."""

    def __init__(self, callback: Callable[[QueueEntry], Awaitable[None]]):
        self._callback = callback

    async def apply(self, entry: QueueEntry) -> None:
        await self._callback(entry)
