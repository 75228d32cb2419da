# /fanout/adapters/workers/tcp_worker.py
from __future__ import annotations

import asyncio
import contextlib
import logging

from fanout.domain.models import FailureCause, Target, WorkFailure
from fanout.ports.worker import WorkContext

LOG = logging.getLogger("adapter.worker.tcp")


def first_line(data: bytes, limit: int = 120) -> str:
    text = data.decode("utf-8", errors="replace").splitlines()[0] if data.strip() else ""
    return text[:limit]


class TcpWorker:
    """
    Dials the target over TCP, writes a fixed request and reads one response chunk.
    An empty payload turns the unit into a plain connect check.
    """

    name = "tcp"

    def __init__(self, payload: bytes, max_bytes: int) -> None:
        self._payload = payload
        self._max_bytes = max_bytes

    async def process(self, target: Target, ctx: WorkContext) -> str:
        if ctx.verbose:
            ctx.emit(f"{target}: dialing tcp")
        reader, writer = await asyncio.open_connection(target.address, int(target.port))
        try:
            LOG.debug(
                "tcp.connected",
                extra={"extra": {"target": str(target), "peer": writer.get_extra_info("peername")}},
            )
            if not self._payload:
                return "connected"

            ctx.stop.check()
            writer.write(self._payload)
            await writer.drain()

            ctx.stop.check()
            data = await reader.read(self._max_bytes)
            LOG.debug("tcp.read", extra={"extra": {"target": str(target), "bytes": len(data)}})
            if not data:
                raise WorkFailure(FailureCause.PROTOCOL, "connection closed without a response")
            return first_line(data) or f"{len(data)} bytes"
        finally:
            writer.close()
            with contextlib.suppress(OSError):
                await writer.wait_closed()

    async def close(self) -> None:
        return None
