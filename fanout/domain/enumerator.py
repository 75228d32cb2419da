# /fanout/domain/enumerator.py
from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Iterator, Sequence

from fanout.domain.completion import StopSignal
from fanout.domain.models import Target

LOG = logging.getLogger("enumerator")

_CLOSED = object()


def enumerate_targets(addresses: Sequence[str], ports: Sequence[str]) -> Iterator[Target]:
    """Yield every address:port pair, addresses outermost."""
    for address in addresses:
        for port in ports:
            yield Target(address, port)


def count_targets(addresses: Sequence[str], ports: Sequence[str]) -> int:
    return len(addresses) * len(ports)


class Handoff:
    """
    Bounded single-producer/single-consumer channel of targets.
    put() blocks while the buffer is full; close() must be called exactly once.
    """

    def __init__(self, maxsize: int) -> None:
        if maxsize < 1:
            raise ValueError("handoff buffer needs at least one slot")
        self._queue: asyncio.Queue[object] = asyncio.Queue(maxsize=maxsize)
        self.produced = 0
        self._closed = False
        self._drained = False

    async def put(self, target: Target) -> None:
        if self._closed:
            raise RuntimeError("put on closed handoff")
        await self._queue.put(target)
        self.produced += 1

    async def close(self) -> None:
        if self._closed:
            raise RuntimeError("handoff already closed")
        self._closed = True
        await self._queue.put(_CLOSED)

    def __aiter__(self) -> Handoff:
        return self

    async def __anext__(self) -> Target:
        if self._drained:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            self._drained = True
            raise StopAsyncIteration
        return item  # type: ignore[return-value]


async def produce(targets: Iterable[Target], handoff: Handoff, stop: StopSignal) -> int:
    """Feed targets into the handoff, then close it. Returns the number produced."""
    for target in targets:
        if stop.is_set():
            LOG.info("enumerate.stopped", extra={"extra": {"produced": handoff.produced}})
            break
        await handoff.put(target)
    await handoff.close()
    return handoff.produced
