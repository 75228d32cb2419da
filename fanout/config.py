# /fanout/config.py
from __future__ import annotations

import os

from pydantic import BaseModel


class Settings(BaseModel):
    API_KEY: str | None = os.getenv("API_KEY")
    VERIFY_TLS: bool = os.getenv("VERIFY_TLS", "false").lower() == "true"
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Fan-out / limits
    CONCURRENCY: int = int(os.getenv("CONCURRENCY", "100"))  # work units in flight
    QUEUE_SIZE: int = int(os.getenv("QUEUE_SIZE", "64"))  # enumerator -> dispatcher buffer
    PER_HOST_LIMIT: int = int(os.getenv("PER_HOST_LIMIT", "5"))  # http sockets per host
    UNIT_TIMEOUT_SECONDS: float = float(os.getenv("UNIT_TIMEOUT_SECONDS", "3.0"))
    MAX_ADDRESSES: int = int(os.getenv("MAX_ADDRESSES", "2048"))
    MAX_TARGETS_PER_JOB: int = int(os.getenv("MAX_TARGETS_PER_JOB", "10000"))
    FAIL_FAST: bool = os.getenv("FAIL_FAST", "false").lower() == "true"
    EXPAND_CIDR: bool = os.getenv("EXPAND_CIDR", "true").lower() == "true"

    # Workers
    DEFAULT_WORKER: str = os.getenv("DEFAULT_WORKER", "announce")
    TCP_PAYLOAD: str = os.getenv("TCP_PAYLOAD", "HEAD / HTTP/1.0\r\n\r\n")
    UDP_PAYLOAD: str = os.getenv("UDP_PAYLOAD", "\n")
    MAX_BYTES: int = int(os.getenv("MAX_BYTES", "65536"))
    RETRIES: int = int(os.getenv("RETRIES", "1"))
    RETRY_BACKOFF_MS: int = int(os.getenv("RETRY_BACKOFF_MS", "250"))

    # Celery / Redis
    REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    CELERY_WORKER_CONCURRENCY: int = int(os.getenv("CELERY_WORKER_CONCURRENCY", "4"))
    RESULT_TTL_SECONDS: int = int(os.getenv("RESULT_TTL_SECONDS", "86400"))


settings = Settings()
