# /fanout/ports/worker.py
from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from fanout.domain.completion import StopSignal
from fanout.domain.models import Target


@dataclass(slots=True)
class WorkContext:
    verbose: bool
    stop: StopSignal
    emit: Callable[[str], None]


class TargetWorkerPort(Protocol):
    name: str

    async def process(self, target: Target, ctx: WorkContext) -> str:
        """Act on one target; return a detail string or raise WorkFailure."""

    async def close(self) -> None:
        """Release sockets or sessions held between runs."""
