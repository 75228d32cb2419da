# /fanout/adapters/workers/registry.py
from __future__ import annotations

from fanout.adapters.http.aiohttp_worker import AiohttpWorker
from fanout.adapters.workers.announce import AnnounceWorker
from fanout.adapters.workers.tcp_worker import TcpWorker
from fanout.adapters.workers.udp_worker import UdpWorker
from fanout.config import Settings
from fanout.domain.models import ConfigError
from fanout.ports.worker import TargetWorkerPort

WORKER_NAMES = ("announce", "tcp", "udp", "http")


def build_worker(name: str, cfg: Settings) -> TargetWorkerPort:
    if name == "announce":
        return AnnounceWorker()
    if name == "tcp":
        return TcpWorker(cfg.TCP_PAYLOAD.encode(), cfg.MAX_BYTES)
    if name == "udp":
        return UdpWorker(cfg.UDP_PAYLOAD.encode())
    if name == "http":
        return AiohttpWorker(
            timeout=cfg.UNIT_TIMEOUT_SECONDS,
            concurrency=cfg.CONCURRENCY,
            per_host_limit=cfg.PER_HOST_LIMIT,
            max_bytes=cfg.MAX_BYTES,
            retries=cfg.RETRIES,
            backoff_ms=cfg.RETRY_BACKOFF_MS,
            verify_tls=cfg.VERIFY_TLS,
        )
    raise ConfigError(f"unknown worker {name!r}; choose one of {', '.join(WORKER_NAMES)}")
