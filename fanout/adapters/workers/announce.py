# /fanout/adapters/workers/announce.py
from __future__ import annotations

import logging

from fanout.domain.models import Target
from fanout.ports.worker import WorkContext

LOG = logging.getLogger("adapter.worker.announce")


class AnnounceWorker:
    """Reports each target without touching the network."""

    name = "announce"

    async def process(self, target: Target, ctx: WorkContext) -> str:
        if ctx.verbose:
            ctx.emit(f"{target}: address={target.address} port={target.port}")
        LOG.debug("announced", extra={"extra": {"target": str(target)}})
        return "announced"

    async def close(self) -> None:
        return None
