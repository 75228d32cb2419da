# /fanout/adapters/http/aiohttp_worker.py
from __future__ import annotations

import asyncio
import logging

import aiohttp

from fanout.domain.models import FailureCause, Target, WorkFailure
from fanout.ports.worker import WorkContext

LOG = logging.getLogger("adapter.worker.http")


def _url_for(target: Target) -> str:
    port = int(target.port)
    scheme = "https" if port == 443 else "http"
    host = f"[{target.address}]" if ":" in target.address else target.address
    return f"{scheme}://{host}{'' if port in (80, 443) else f':{port}'}/"


def _classify(exc: Exception) -> FailureCause:
    if isinstance(exc, TimeoutError):
        return FailureCause.TIMEOUT
    if isinstance(exc, aiohttp.ClientConnectorError) and isinstance(
        exc.os_error, ConnectionRefusedError
    ):
        return FailureCause.REFUSED
    if isinstance(exc, aiohttp.ClientOSError):
        return FailureCause.UNREACHABLE
    return FailureCause.PROTOCOL


class AiohttpWorker:
    """
    Loop-aware aiohttp prober.
    Celery tasks use asyncio.run (new loop per task). We detect loop changes and
    rebuild the connector/session so we never hold a session tied to a closed loop.
    """

    name = "http"

    def __init__(
        self,
        *,
        timeout: float,
        concurrency: int,
        per_host_limit: int,
        max_bytes: int,
        retries: int,
        backoff_ms: int,
        verify_tls: bool,
    ) -> None:
        self._connector: aiohttp.TCPConnector | None = None
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: aiohttp.ClientSession | None = None
        self._limit = concurrency
        self._per_host_limit = per_host_limit
        self._max_bytes = max_bytes
        self._retries = retries
        self._backoff_ms = backoff_ms
        self._verify_tls = verify_tls
        self._loop: asyncio.AbstractEventLoop | None = None  # track owning loop

    async def _ensure_session(self) -> aiohttp.ClientSession:
        loop = asyncio.get_running_loop()
        loop_changed = self._loop is not None and self._loop is not loop

        if loop_changed:
            # old session belonged to a different (likely closed) loop -> drop it
            self._session = None
            self._connector = None
            self._loop = None

        if self._session is None or self._session.closed:
            self._connector = aiohttp.TCPConnector(
                limit=self._limit,
                limit_per_host=self._per_host_limit,
            )
            self._session = aiohttp.ClientSession(
                connector=self._connector,
                timeout=self._timeout,
                raise_for_status=False,
            )
            self._loop = loop

        return self._session

    async def _get(self, sess: aiohttp.ClientSession, url: str) -> tuple[int, int, str]:
        async with sess.get(url, ssl=self._verify_tls, allow_redirects=True) as resp:
            size = 0
            async for chunk in resp.content.iter_chunked(64 * 1024):
                size += len(chunk)
                if size > self._max_bytes:
                    LOG.warning(
                        "body_truncated", extra={"extra": {"url": url, "max": self._max_bytes}}
                    )
                    size = self._max_bytes
                    break
            return resp.status, size, str(resp.url)

    async def process(self, target: Target, ctx: WorkContext) -> str:
        """
        GET / on the target. Any HTTP status counts as a reachable service;
        connection and protocol errors are retried with exponential backoff.
        """
        url = _url_for(target)
        if ctx.verbose:
            ctx.emit(f"{target}: GET {url}")
        sess = await self._ensure_session()
        attempt = 0
        while True:
            ctx.stop.check()
            try:
                LOG.info("probing", extra={"extra": {"url": url, "verify_tls": self._verify_tls}})
                status, size, final_url = await self._get(sess, url)
            except (TimeoutError, aiohttp.ClientError) as e:
                if attempt >= self._retries:
                    raise WorkFailure(_classify(e), str(e) or type(e).__name__) from e
                await asyncio.sleep((self._backoff_ms / 1000.0) * (2**attempt))
                attempt += 1
                continue

            LOG.debug("http.response", extra={"extra": {"url": final_url, "status": status, "bytes": size}})
            return f"HTTP {status}"

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None
        self._connector = None
        self._loop = None
