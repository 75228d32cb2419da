# /fanout/domain/completion.py
from __future__ import annotations

import asyncio

from fanout.domain.models import UnitStopped


class CompletionCounter:
    """
    Outstanding work units of one dispatcher.
    Mutated only from the owning event loop, so add/done never interleave.
    """

    def __init__(self) -> None:
        self.started = 0
        self.completed = 0
        self._zero = asyncio.Event()
        self._zero.set()

    @property
    def value(self) -> int:
        return self.started - self.completed

    def add(self) -> None:
        self.started += 1
        self._zero.clear()

    def done(self) -> None:
        if self.value <= 0:
            raise RuntimeError("completion counter would drop below zero")
        self.completed += 1
        if self.value == 0:
            self._zero.set()

    async def wait(self) -> None:
        """Block until no work unit is outstanding."""
        await self._zero.wait()


class StopSignal:
    """Cooperative stop request shared by a dispatcher and its work units."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str | None = None

    def set(self, reason: str) -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    def is_set(self) -> bool:
        return self._event.is_set()

    def check(self) -> None:
        """Raise UnitStopped if a stop was requested; call before blocking steps."""
        if self._event.is_set():
            raise UnitStopped(self.reason or "stopped")

    async def wait(self) -> None:
        await self._event.wait()
