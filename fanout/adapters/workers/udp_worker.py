# /fanout/adapters/workers/udp_worker.py
from __future__ import annotations

import asyncio
import logging

from fanout.adapters.workers.tcp_worker import first_line
from fanout.domain.models import FailureCause, Target, WorkFailure
from fanout.ports.worker import WorkContext

LOG = logging.getLogger("adapter.worker.udp")


class _ReplyProtocol(asyncio.DatagramProtocol):
    def __init__(self, loop: asyncio.AbstractEventLoop) -> None:
        self.reply: asyncio.Future[bytes] = loop.create_future()

    def datagram_received(self, data: bytes, addr: tuple) -> None:
        if not self.reply.done():
            self.reply.set_result(data)

    def error_received(self, exc: Exception) -> None:
        # ICMP port unreachable shows up here as ConnectionRefusedError
        if not self.reply.done():
            self.reply.set_exception(exc)

    def connection_lost(self, exc: Exception | None) -> None:
        if not self.reply.done():
            self.reply.set_exception(
                exc or WorkFailure(FailureCause.PROTOCOL, "endpoint closed before a reply")
            )


class UdpWorker:
    """
    Sends one datagram to the target and waits for a single reply.
    Silence is reported as a timeout by the dispatcher's unit deadline.
    """

    name = "udp"

    def __init__(self, payload: bytes) -> None:
        self._payload = payload

    async def process(self, target: Target, ctx: WorkContext) -> str:
        if ctx.verbose:
            ctx.emit(f"{target}: sending {len(self._payload)} bytes over udp")
        loop = asyncio.get_running_loop()
        transport, protocol = await loop.create_datagram_endpoint(
            lambda: _ReplyProtocol(loop),
            remote_addr=(target.address, int(target.port)),
        )
        try:
            ctx.stop.check()
            transport.sendto(self._payload)
            data = await protocol.reply
            LOG.debug("udp.reply", extra={"extra": {"target": str(target), "bytes": len(data)}})
            return first_line(data) or f"{len(data)} bytes"
        finally:
            transport.close()

    async def close(self) -> None:
        return None
