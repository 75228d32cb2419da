# /fanout/adapters/cli/main.py
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
import sys
from collections.abc import Sequence

from fanout.adapters.system.logging_cfg import configure_logger
from fanout.adapters.system.output import ConsoleOutput
from fanout.adapters.system.target_lists import TargetLists
from fanout.adapters.workers.registry import WORKER_NAMES, build_worker
from fanout.config import Settings, settings
from fanout.domain.dispatch_service import DispatchPlan, DispatchRequestDTO, DispatchService
from fanout.domain.models import ConfigError, DispatchReport

LOG = logging.getLogger("adapter.cli")

EXIT_CONFIG_ERROR = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="target-fanout",
        description="Run one work unit per address:port combination, concurrently.",
    )
    parser.add_argument("-a", "--addresses", required=True, help="comma-separated addresses or CIDRs")
    parser.add_argument("-p", "--ports", required=True, help="comma-separated ports")
    parser.add_argument("-v", "--verbose", action="store_true", help="one extra line per target")
    parser.add_argument(
        "-w", "--worker", choices=WORKER_NAMES, default=None, help="action run against each target"
    )
    parser.add_argument("-c", "--concurrency", type=int, help="work units in flight")
    parser.add_argument("-t", "--timeout", type=float, help="seconds per work unit")
    parser.add_argument("--fail-fast", action="store_true", help="stop after the first failure")
    parser.add_argument("--no-cidr", action="store_true", help="do not expand a.b.c.d/n addresses")
    parser.add_argument("--payload", help="request written by the tcp and udp workers")
    parser.add_argument("--json", action="store_true", help="print the final report as JSON")
    parser.add_argument("--log-level", help="log level for stderr logs")
    return parser


def settings_from_args(args: argparse.Namespace, base: Settings) -> Settings:
    update: dict = {}
    if args.concurrency is not None:
        update["CONCURRENCY"] = args.concurrency
    if args.timeout is not None:
        update["UNIT_TIMEOUT_SECONDS"] = args.timeout
    if args.fail_fast:
        update["FAIL_FAST"] = True
    if args.no_cidr:
        update["EXPAND_CIDR"] = False
    if args.payload is not None:
        update["TCP_PAYLOAD"] = args.payload
        update["UDP_PAYLOAD"] = args.payload
    if args.log_level:
        update["LOG_LEVEL"] = args.log_level
    cfg = base.model_copy(update=update)
    if cfg.CONCURRENCY < 1:
        raise ConfigError("--concurrency must be >= 1")
    if cfg.UNIT_TIMEOUT_SECONDS <= 0:
        raise ConfigError("--timeout must be > 0")
    return cfg


async def _run(svc: DispatchService, plan: DispatchPlan) -> DispatchReport:
    loop = asyncio.get_running_loop()
    installed: list[signal.Signals] = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, plan.dispatcher.request_stop, "interrupted")
            installed.append(sig)
        except (NotImplementedError, RuntimeError):
            # no signal support on this platform/thread; Ctrl-C aborts instead of draining
            pass
    try:
        return await svc.run(plan)
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    output = ConsoleOutput()
    try:
        cfg = settings_from_args(args, settings)
        configure_logger(cfg.LOG_LEVEL, stream=sys.stderr)
        svc = DispatchService(
            TargetLists(expand_cidr=cfg.EXPAND_CIDR, max_addresses=cfg.MAX_ADDRESSES),
            lambda name: build_worker(name, cfg),
            cfg=cfg,
        )
        req = DispatchRequestDTO(
            addresses=args.addresses,
            ports=args.ports,
            verbose=args.verbose,
            worker=args.worker,
        )
        plan = svc.plan(req, output)
    except (ConfigError, ValueError) as e:
        print(f"target-fanout: error: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    report = asyncio.run(_run(svc, plan))
    if args.json:
        output.line(json.dumps(report.as_dict()))
    LOG.info("cli.exit", extra={"extra": {"code": report.exit_code}})
    return report.exit_code


if __name__ == "__main__":
    sys.exit(main())
