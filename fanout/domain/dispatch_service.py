# /fanout/domain/dispatch_service.py
from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from fanout.config import Settings
from fanout.domain.dispatcher import Dispatcher
from fanout.domain.enumerator import count_targets
from fanout.domain.models import ConfigError, DispatchReport
from fanout.ports.output import OutputPort
from fanout.ports.target_lists import TargetListPort
from fanout.ports.worker import TargetWorkerPort

LOG = logging.getLogger("dispatch_service")

# ==== DTOs ====


@dataclass(slots=True)
class DispatchRequestDTO:
    addresses: str
    ports: str
    verbose: bool = False
    worker: str | None = None


@dataclass(slots=True)
class DispatchPlan:
    addresses: list[str]
    ports: list[str]
    verbose: bool
    worker: TargetWorkerPort
    dispatcher: Dispatcher


# ==== Service ====


class DispatchService:
    """Application service: validate input, then fan work out over the targets."""

    def __init__(
        self,
        target_lists: TargetListPort,
        worker_factory: Callable[[str], TargetWorkerPort],
        *,
        cfg: Settings,
    ) -> None:
        self.target_lists = target_lists
        self.worker_factory = worker_factory
        self.cfg = cfg

    def _validate_job_size(self, addresses: list[str], ports: list[str]) -> None:
        total = count_targets(addresses, ports)
        if total > self.cfg.MAX_TARGETS_PER_JOB:
            raise ConfigError(f"job too large: {total} > {self.cfg.MAX_TARGETS_PER_JOB}")

    def plan(self, req: DispatchRequestDTO, output: OutputPort) -> DispatchPlan:
        """Validate everything up front; raises ConfigError before any work starts."""
        ports = self.target_lists.ports(req.ports)
        addresses = self.target_lists.addresses(req.addresses)
        self._validate_job_size(addresses, ports)
        worker = self.worker_factory(req.worker or self.cfg.DEFAULT_WORKER)
        LOG.info(
            "dispatch.planned",
            extra={"extra": {"targets": count_targets(addresses, ports), "worker": worker.name}},
        )

        dispatcher = Dispatcher(
            worker,
            output,
            concurrency=self.cfg.CONCURRENCY,
            queue_size=self.cfg.QUEUE_SIZE,
            unit_timeout=self.cfg.UNIT_TIMEOUT_SECONDS,
            fail_fast=self.cfg.FAIL_FAST,
        )
        return DispatchPlan(addresses, ports, req.verbose, worker, dispatcher)

    async def run(self, plan: DispatchPlan) -> DispatchReport:
        try:
            return await plan.dispatcher.run(plan.addresses, plan.ports, verbose=plan.verbose)
        finally:
            await plan.worker.close()

    async def dispatch(self, req: DispatchRequestDTO, output: OutputPort) -> DispatchReport:
        return await self.run(self.plan(req, output))
