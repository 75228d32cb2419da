# /fanout/domain/dispatcher.py
from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Sequence

from fanout.domain.completion import CompletionCounter, StopSignal
from fanout.domain.enumerator import Handoff, enumerate_targets, produce
from fanout.domain.models import (
    DispatchReport,
    FailureCause,
    Outcome,
    Target,
    UnitResult,
    UnitStopped,
    WorkFailure,
)
from fanout.ports.output import OutputPort
from fanout.ports.worker import TargetWorkerPort, WorkContext

LOG = logging.getLogger("dispatcher")


def classify(exc: BaseException) -> tuple[FailureCause, str]:
    """Map a work-unit exception onto a failure cause and detail text."""
    if isinstance(exc, WorkFailure):
        return exc.cause, exc.detail
    if isinstance(exc, TimeoutError):
        return FailureCause.TIMEOUT, str(exc) or "timed out"
    if isinstance(exc, ConnectionRefusedError):
        return FailureCause.REFUSED, str(exc) or "connection refused"
    if isinstance(exc, OSError):
        return FailureCause.UNREACHABLE, str(exc) or type(exc).__name__
    return FailureCause.INTERNAL, f"{type(exc).__name__}: {exc}"


class Dispatcher:
    """
    Consumes enumerated targets and runs one work unit per target.

    At most `concurrency` units run at once and the enumerator can run at most
    `queue_size` targets ahead, so a large product never spawns unbounded work.
    The completion counter and stop signal belong to this instance; nothing is
    shared between dispatchers.
    """

    def __init__(
        self,
        worker: TargetWorkerPort,
        output: OutputPort,
        *,
        concurrency: int,
        queue_size: int,
        unit_timeout: float,
        fail_fast: bool = False,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self.worker = worker
        self.output = output
        self.concurrency = concurrency
        self.queue_size = queue_size
        self.unit_timeout = unit_timeout
        self.fail_fast = fail_fast
        self.counter = CompletionCounter()
        self.stop = StopSignal()
        self._running = False

    def request_stop(self, reason: str) -> None:
        """Stop dispatching new targets; in-flight units are drained."""
        if not self.stop.is_set():
            LOG.warning("dispatch.stop_requested", extra={"extra": {"reason": reason}})
        self.stop.set(reason)

    # --- work unit ---

    async def _run_unit(
        self,
        target: Target,
        counter: CompletionCounter,
        slots: asyncio.Semaphore,
        ctx: WorkContext,
        report: DispatchReport,
    ) -> None:
        started = time.monotonic()
        result = UnitResult(target=target, outcome=Outcome.CANCELLED)
        try:
            if ctx.verbose and ctx.stop.is_set():
                ctx.emit(f"{target}: not started")
            ctx.stop.check()
            async with asyncio.timeout(self.unit_timeout):
                detail = await self.worker.process(target, ctx)
            result.outcome = Outcome.OK
            result.detail = detail
        except UnitStopped as e:
            result.detail = str(e)
        except asyncio.CancelledError:
            result.detail = "cancelled while running"
            raise
        except Exception as e:
            result.outcome = Outcome.FAILED
            result.cause, result.detail = classify(e)
            if result.cause is FailureCause.INTERNAL:
                LOG.exception("unit.error", extra={"extra": {"target": str(target)}})
            if self.fail_fast:
                self.request_stop(f"first failure at {target}")
        finally:
            result.elapsed = time.monotonic() - started
            report.results.append(result)
            try:
                self.output.line(result.render())
            except OSError as e:
                LOG.warning(
                    "output.failed", extra={"extra": {"target": str(target), "error": str(e)}}
                )
                self.request_stop("output closed")
            finally:
                counter.done()
                slots.release()

    # --- primary entrypoint ---

    async def run(
        self,
        addresses: Sequence[str],
        ports: Sequence[str],
        *,
        verbose: bool = False,
    ) -> DispatchReport:
        if self._running:
            raise RuntimeError("dispatcher is single-use per run")
        self._running = True

        report = DispatchReport()
        handoff = Handoff(self.queue_size)
        slots = asyncio.Semaphore(self.concurrency)
        ctx = WorkContext(
            verbose=verbose,
            stop=self.stop,
            emit=self.output.line,
        )
        LOG.info(
            "dispatch.start",
            extra={
                "extra": {
                    "addresses": len(addresses),
                    "ports": len(ports),
                    "worker": self.worker.name,
                    "concurrency": self.concurrency,
                }
            },
        )

        async with asyncio.TaskGroup() as tg:
            producer = tg.create_task(
                produce(enumerate_targets(addresses, ports), handoff, self.stop)
            )
            async for target in handoff:
                await slots.acquire()
                if self.stop.is_set():
                    slots.release()
                    producer.cancel()
                    break
                self.counter.add()
                tg.create_task(self._run_unit(target, self.counter, slots, ctx, report))
            await self.counter.wait()

        report.produced = handoff.produced
        report.started = self.counter.started
        report.completed = self.counter.completed
        report.stopped = self.stop.is_set()
        report.stop_reason = self.stop.reason
        try:
            self.output.line(report.summary())
        except OSError as e:
            LOG.warning("output.failed", extra={"extra": {"error": str(e)}})
        LOG.info(
            "dispatch.done",
            extra={
                "extra": {
                    "produced": report.produced,
                    "failed": len(report.failed),
                    "stopped": report.stopped,
                }
            },
        )
        return report
