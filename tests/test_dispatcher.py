# tests/test_dispatcher.py
from __future__ import annotations

import asyncio

import pytest

from fanout.adapters.system.output import BufferedOutput
from fanout.domain.dispatcher import Dispatcher
from fanout.domain.models import DispatchReport, FailureCause, Outcome, Target
from fanout.ports.worker import WorkContext
from tests.fakes import FakeWorker, GatedWorker


def make_dispatcher(worker, out=None, **kw) -> Dispatcher:  # type: ignore[no-untyped-def]
    kw.setdefault("concurrency", 8)
    kw.setdefault("queue_size", 4)
    kw.setdefault("unit_timeout", 2.0)
    return Dispatcher(worker, out or BufferedOutput(), **kw)


async def wait_until(pred, timeout: float = 2.0) -> None:  # type: ignore[no-untyped-def]
    async with asyncio.timeout(timeout):
        while not pred():
            await asyncio.sleep(0.001)


@pytest.mark.asyncio
async def test_two_addresses_one_port() -> None:
    worker = FakeWorker()
    out = BufferedOutput()
    d = make_dispatcher(worker, out)
    report = await d.run(["10.0.0.1", "10.0.0.2"], ["80"])

    assert worker.seen == ["10.0.0.1:80", "10.0.0.2:80"]
    assert report.produced == report.started == report.completed == 2
    assert sorted(out.lines[:-1]) == ["10.0.0.1:80 ok: done", "10.0.0.2:80 ok: done"]
    assert out.lines[-1] == "all work finished: 2 of 2 targets, 2 ok, 0 failed"
    assert report.exit_code == 0


@pytest.mark.asyncio
async def test_empty_address_list_finishes_immediately() -> None:
    worker = FakeWorker()
    out = BufferedOutput()
    report = await make_dispatcher(worker, out).run([], ["80"])

    assert worker.seen == []
    assert (report.produced, report.started, report.completed) == (0, 0, 0)
    assert out.lines == ["all work finished: 0 of 0 targets, 0 ok, 0 failed"]


@pytest.mark.asyncio
async def test_every_target_started_once_under_bounded_concurrency() -> None:
    addresses = [f"10.0.1.{i}" for i in range(7)]
    ports = ["22", "80", "443"]
    worker = FakeWorker(delay=0.002)
    d = make_dispatcher(worker, concurrency=4, queue_size=2)
    report = await d.run(addresses, ports)

    expected = sorted(f"{a}:{p}" for a in addresses for p in ports)
    assert sorted(worker.seen) == expected
    assert len(set(worker.seen)) == len(worker.seen) == 21
    assert report.produced == report.started == report.completed == len(report.results) == 21
    assert worker.max_in_flight <= 4
    assert d.counter.value == 0


@pytest.mark.asyncio
async def test_counter_matches_started_minus_completed_while_running() -> None:
    observed: list[tuple[int, int, int]] = []
    d: Dispatcher

    def check_counter(target: Target) -> None:
        c = d.counter
        observed.append((c.value, c.started, c.completed))
        assert 1 <= c.value <= d.concurrency
        assert c.value == c.started - c.completed

    worker = FakeWorker(delay=0.001, on_process=check_counter)
    d = make_dispatcher(worker, concurrency=3)
    report = await d.run(["a", "b", "c", "d"], ["1", "2"])

    # a failed assertion inside check_counter would surface as an internal failure
    assert not report.failed
    assert len(observed) == 8
    assert all(value >= 1 for value, _, _ in observed)
    assert d.counter.value == 0
    assert d.counter.started == d.counter.completed == report.started == 8


@pytest.mark.asyncio
async def test_dispatch_order_follows_enumeration() -> None:
    worker = FakeWorker()
    await make_dispatcher(worker, concurrency=1, queue_size=1).run(["a", "b"], ["1", "2"])
    assert worker.seen == ["a:1", "a:2", "b:1", "b:2"]


@pytest.mark.asyncio
async def test_verbose_adds_one_line_per_target() -> None:
    out = BufferedOutput()
    await make_dispatcher(FakeWorker(), out).run(["a", "b"], ["1"], verbose=True)
    assert len(out.lines) == 2 * 2 + 1
    assert "a:1: verbose" in out.lines
    assert "b:1: verbose" in out.lines


@pytest.mark.asyncio
async def test_failures_are_collected_without_stopping_siblings() -> None:
    worker = FakeWorker(fail={"b:1"})
    out = BufferedOutput()
    report = await make_dispatcher(worker, out).run(["a", "b", "c"], ["1"])

    assert sorted(worker.seen) == ["a:1", "b:1", "c:1"]
    assert [str(r.target) for r in report.failed] == ["b:1"]
    assert report.failed[0].cause is FailureCause.REFUSED
    assert len(report.succeeded) == 2
    assert "b:1 failed (refused): nope" in out.lines
    assert out.lines[-1] == "all work finished: 3 of 3 targets, 2 ok, 1 failed"
    assert report.exit_code == 1
    assert not report.stopped


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "exc,cause",
    [
        (ConnectionRefusedError("refused"), FailureCause.REFUSED),
        (OSError("no route to host"), FailureCause.UNREACHABLE),
        (TimeoutError(), FailureCause.TIMEOUT),
        (RuntimeError("boom"), FailureCause.INTERNAL),
    ],
)
async def test_exceptions_are_classified(exc: BaseException, cause: FailureCause) -> None:
    worker = FakeWorker(errors={"a:1": exc})
    report = await make_dispatcher(worker).run(["a"], ["1"])
    assert report.results[0].outcome is Outcome.FAILED
    assert report.results[0].cause is cause


@pytest.mark.asyncio
async def test_unit_deadline_is_a_timeout_failure() -> None:
    worker = FakeWorker(delay=1.0)
    report = await make_dispatcher(worker, unit_timeout=0.05).run(["a"], ["1"])
    assert report.results[0].cause is FailureCause.TIMEOUT
    assert report.completed == 1


@pytest.mark.asyncio
async def test_fail_fast_stops_dispatching() -> None:
    worker = FakeWorker(fail={"a:1"})
    d = make_dispatcher(worker, concurrency=1, queue_size=1, fail_fast=True)
    report = await d.run(["a", "b", "c", "d"], ["1"])

    assert worker.seen == ["a:1"]
    assert report.started == report.completed == 1
    assert report.stopped
    assert report.stop_reason == "first failure at a:1"
    assert report.exit_code == 1


@pytest.mark.asyncio
async def test_stop_request_drains_in_flight_units() -> None:
    worker = GatedWorker()
    d = make_dispatcher(worker, concurrency=2, queue_size=1)
    run = asyncio.create_task(d.run(["a", "b", "c", "d"], ["1"]))
    await wait_until(lambda: worker.in_flight == 2)

    d.request_stop("interrupted")
    worker.gate.set()
    report = await run

    assert report.started == report.completed == 2
    assert [r.outcome for r in report.results] == [Outcome.OK, Outcome.OK]
    assert report.stopped
    assert report.exit_code == 130
    assert d.counter.value == 0


@pytest.mark.asyncio
async def test_units_observe_stop_at_blocking_steps() -> None:
    worker = GatedWorker(check=True)
    out = BufferedOutput()
    d = make_dispatcher(worker, out, concurrency=2, queue_size=1)
    run = asyncio.create_task(d.run(["a", "b", "c"], ["1"]))
    await wait_until(lambda: worker.in_flight == 2)

    d.request_stop("operator")
    worker.gate.set()
    report = await run

    assert len(report.cancelled) == 2
    assert "a:1 cancelled: operator" in out.lines
    assert out.lines[-1].endswith("2 cancelled (stopped: operator)")
    assert report.exit_code == 0


@pytest.mark.asyncio
async def test_dispatchers_do_not_share_state() -> None:
    slow = GatedWorker()
    fast = FakeWorker()
    d1 = make_dispatcher(slow)
    d2 = make_dispatcher(fast)

    run1 = asyncio.create_task(d1.run(["a", "b"], ["1"]))
    await wait_until(lambda: slow.in_flight == 2)
    report2 = await d2.run(["x"], ["1", "2"])

    assert report2.completed == 2
    assert d1.counter.value == 2
    d2.request_stop("done")
    assert not d1.stop.is_set()

    slow.gate.set()
    report1 = await run1
    assert report1.completed == 2 and not report1.stopped


@pytest.mark.asyncio
async def test_dispatcher_is_single_use() -> None:
    d = make_dispatcher(FakeWorker())
    await d.run(["a"], ["1"])
    with pytest.raises(RuntimeError):
        await d.run(["a"], ["1"])


def test_concurrency_must_be_positive() -> None:
    with pytest.raises(ValueError):
        make_dispatcher(FakeWorker(), concurrency=0)


class ClosedOutput:
    """Output whose reader went away, like stdout piped into `head`."""

    def __init__(self) -> None:
        self.calls = 0

    def line(self, text: str) -> None:
        self.calls += 1
        raise BrokenPipeError(32, "Broken pipe")


@pytest.mark.asyncio
async def test_closed_output_releases_counter_and_stops() -> None:
    worker = FakeWorker()
    d = make_dispatcher(worker, ClosedOutput(), concurrency=1, queue_size=1)
    report = await asyncio.wait_for(d.run(["a", "b"], ["1"]), timeout=2.0)

    assert worker.seen == ["a:1"]
    assert d.counter.value == 0
    assert report.started == report.completed == 1
    assert report.stopped
    assert report.stop_reason == "output closed"


@pytest.mark.asyncio
async def test_unit_stopped_at_entry_still_gets_a_verbose_line() -> None:
    worker = FakeWorker()
    out = BufferedOutput()
    d = make_dispatcher(worker, out)
    d.request_stop("operator")

    slots = asyncio.Semaphore(1)
    await slots.acquire()
    d.counter.add()
    ctx = WorkContext(verbose=True, stop=d.stop, emit=out.line)
    report = DispatchReport()
    await d._run_unit(Target("a", "1"), d.counter, slots, ctx, report)

    assert worker.seen == []
    assert out.lines == ["a:1: not started", "a:1 cancelled: operator"]
    assert d.counter.value == 0
    assert not slots.locked()
