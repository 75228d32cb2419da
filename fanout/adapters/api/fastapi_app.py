# /fanout/adapters/api/fastapi_app.py
from __future__ import annotations
import logging
import uuid
from typing import Optional

from fastapi import FastAPI, Header, HTTPException
from pydantic import BaseModel

from fanout.config import settings
from fanout.adapters.system.logging_cfg import configure_logger
from fanout.adapters.system.redis_result_store import RedisResultStore
from fanout.adapters.system.celery_app import CeleryJobQueue, celery_app
from fanout.adapters.system.target_lists import TargetLists
from fanout.adapters.workers.registry import WORKER_NAMES
from fanout.domain.enumerator import count_targets
from fanout.domain.models import ConfigError
from fanout.ports.job_queue import JobQueuePort
from fanout.ports.result_store import ResultStorePort

LOG = logging.getLogger("adapter.api")
app = FastAPI(title="target-fanout")
configure_logger(settings.LOG_LEVEL)

_store: ResultStorePort = RedisResultStore(settings.REDIS_URL, ttl=settings.RESULT_TTL_SECONDS)
_queue: JobQueuePort = CeleryJobQueue(celery_app)
_lists = TargetLists(expand_cidr=settings.EXPAND_CIDR, max_addresses=settings.MAX_ADDRESSES)

class DispatchRequestModel(BaseModel):
    addresses: str
    ports: str
    verbose: bool = False
    worker: Optional[str] = None

def _check_key(x_api_key: str | None) -> None:
    if settings.API_KEY and x_api_key != settings.API_KEY:
        raise HTTPException(status_code=401, detail="invalid api key")

@app.get("/health")
def health() -> dict:
    return {"status": "ok"}

@app.post("/dispatch")
async def dispatch_start(payload: DispatchRequestModel, x_api_key: str | None = Header(default=None)) -> dict:
    _check_key(x_api_key)
    if payload.worker is not None and payload.worker not in WORKER_NAMES:
        raise HTTPException(status_code=400, detail=f"unknown worker {payload.worker!r}")
    try:
        ports = _lists.ports(payload.ports)
        addresses = _lists.addresses(payload.addresses)
    except ConfigError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    if count_targets(addresses, ports) > settings.MAX_TARGETS_PER_JOB:
        raise HTTPException(status_code=400, detail="request too large (targets cap)")

    job_id = str(uuid.uuid4())
    _store.set_pending(job_id)

    task_id = _queue.enqueue("dispatch_job", args=[job_id, payload.model_dump()])
    LOG.info("dispatch.enqueued", extra={"extra": {"job_id": job_id, "task_id": task_id}})
    return {"job_id": job_id, "status": "pending", "task_id": task_id}

@app.get("/dispatch/{job_id}")
async def dispatch_result(job_id: str, x_api_key: str | None = Header(default=None)) -> dict:
    _check_key(x_api_key)
    entry = _store.get(job_id)
    if entry is None:
        raise HTTPException(status_code=404, detail="job_id not found")
    return entry
