# /fanout/adapters/system/celery_app.py
from __future__ import annotations
import asyncio
import logging
from collections.abc import Mapping
from typing import Any

import redis
from celery import Celery

from fanout.config import settings
from fanout.adapters.system.logging_cfg import configure_logger
from fanout.adapters.system.output import BufferedOutput
from fanout.adapters.system.redis_result_store import RedisResultStore
from fanout.adapters.system.target_lists import TargetLists
from fanout.adapters.workers.registry import build_worker
from fanout.domain.dispatch_service import DispatchRequestDTO, DispatchService
from fanout.ports.result_store import ResultStorePort

LOG = logging.getLogger("adapter.celery")
configure_logger(settings.LOG_LEVEL)

celery_app = Celery("target_fanout", broker=settings.REDIS_URL, backend=settings.REDIS_URL)
celery_app.conf.update(
    worker_prefetch_multiplier=1,
    worker_concurrency=settings.CELERY_WORKER_CONCURRENCY,
    task_acks_late=True,
    task_time_limit=300,
)

# Lightweight objects are fine to create at import-time:
_store: ResultStorePort = RedisResultStore(settings.REDIS_URL, ttl=settings.RESULT_TTL_SECONDS)

_service: DispatchService | None = None


class CeleryJobQueue:
    def __init__(self, app: Celery) -> None:
        self._app = app

    def enqueue(
        self,
        task_name: str,
        *,
        args: list[Any] | None = None,
        kwargs: Mapping[str, Any] | None = None,
    ) -> str:
        job = self._app.send_task(task_name, args=args or [], kwargs=dict(kwargs or {}))
        return job.id


def _get_service() -> DispatchService:
    global _service
    if _service is None:
        _service = DispatchService(
            TargetLists(expand_cidr=settings.EXPAND_CIDR, max_addresses=settings.MAX_ADDRESSES),
            lambda name: build_worker(name, settings),
            cfg=settings,
        )
    return _service


def request_from_payload(payload: Mapping[str, Any]) -> DispatchRequestDTO:
    return DispatchRequestDTO(
        addresses=payload["addresses"],
        ports=payload["ports"],
        verbose=bool(payload.get("verbose", False)),
        worker=payload.get("worker"),
    )


@celery_app.task(
    name="dispatch_job",
    bind=True,
    autoretry_for=(redis.exceptions.ConnectionError,),
    retry_backoff=True,
    retry_kwargs={"max_retries": 3},
)
def dispatch_job(self, job_id: str, payload: dict[str, Any]) -> str:
    """Run one dispatch and persist its report, or the error that stopped it."""
    try:
        LOG.info("dispatch.job.accepted", extra={"extra": {"job_id": job_id}})
        svc = _get_service()
        output = BufferedOutput()
        report = asyncio.run(svc.dispatch(request_from_payload(payload), output))

        result = report.as_dict()
        result["lines"] = output.lines
        _store.set_result(job_id, result)
        LOG.info("dispatch.job.done", extra={"extra": {"job_id": job_id, "exit_code": report.exit_code}})
        return "ok" if report.exit_code == 0 else "failed"

    except Exception as e:
        _store.set_error(job_id, str(e))
        LOG.exception("dispatch.job.error", extra={"extra": {"job_id": job_id}})
        raise
