"""Shared HTTP client with retry/backoff, 429 cooldown and optional proxy."""

from __future__ import annotations

import asyncio
import logging
import random
import time
from dataclasses import dataclass
from typing import Any

import aiohttp

import config

logger = logging.getLogger(__name__)


@dataclass
class HttpResult:
    ok: bool
    status: int
    data: Any | None
    error: str = ""


@dataclass
class HttpStats:
    ok: int = 0
    fail: int = 0
    rate_limited: int = 0
    retries: int = 0
    latency_total_ms: float = 0.0
    latency_max_ms: float = 0.0
    latency_count: int = 0

    def observe_latency(self, started: float) -> None:
        elapsed_ms = max(0.0, (time.perf_counter() - started) * 1000.0)
        self.latency_total_ms += elapsed_ms
        self.latency_count += 1
        self.latency_max_ms = max(self.latency_max_ms, elapsed_ms)


class ResilientHttpClient:
    def __init__(
        self,
        timeout_seconds: float,
        headers: dict[str, str] | None = None,
        proxy_url: str | None = None,
    ) -> None:
        self._timeout = aiohttp.ClientTimeout(total=max(1.0, float(timeout_seconds)))
        self._headers = dict(headers or {})
        self._proxy = (proxy_url or "").strip() or None
        self._session: aiohttp.ClientSession | None = None
        self._stats = HttpStats()
        self._cooldown_until = 0.0

    async def close(self) -> None:
        session = self._session
        self._session = None
        if session is not None and not session.closed:
            await session.close()

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(limit=max(1, int(config.HTTP_CONNECTOR_LIMIT)))
            self._session = aiohttp.ClientSession(timeout=self._timeout, connector=connector)
        return self._session

    def snapshot_stats(self, reset: bool = False) -> dict[str, int | float]:
        row = self._stats
        total = int(row.ok + row.fail)
        out: dict[str, int | float] = {
            "ok": int(row.ok),
            "fail": int(row.fail),
            "total": total,
            "rate_limited": int(row.rate_limited),
            "retries": int(row.retries),
            "error_percent": round((float(row.fail) / total * 100.0) if total > 0 else 0.0, 2),
            "latency_avg_ms": round(row.latency_total_ms / row.latency_count, 2) if row.latency_count > 0 else 0.0,
            "latency_max_ms": round(float(row.latency_max_ms), 2),
        }
        if reset:
            self._stats = HttpStats()
        return out

    def _start_cooldown(self, response: aiohttp.ClientResponse) -> None:
        retry_after = 0.0
        raw = (response.headers or {}).get("Retry-After", "")
        if raw:
            try:
                retry_after = max(0.0, float(raw))
            except ValueError:
                retry_after = 0.0
        seconds = max(float(config.HTTP_429_COOLDOWN_SECONDS), retry_after)
        self._cooldown_until = max(self._cooldown_until, time.monotonic() + seconds)

    async def _wait_cooldown(self, url: str) -> None:
        wait_for = self._cooldown_until - time.monotonic()
        if wait_for > 0:
            logger.debug("HTTP_COOLDOWN_WAIT wait=%.2fs url=%s", wait_for, url)
            await asyncio.sleep(wait_for)

    @staticmethod
    def _compute_delay(attempt: int, status: int) -> float:
        base = max(0.05, float(config.HTTP_BACKOFF_BASE_SECONDS))
        cap = max(base, float(config.HTTP_BACKOFF_MAX_SECONDS))
        jitter = max(0.0, float(config.HTTP_JITTER_SECONDS))
        delay = min(cap, base * (2 ** max(0, attempt - 1)))
        if status == 429:
            delay = min(cap, delay + float(config.HTTP_RATE_LIMIT_DELAY_SECONDS))
        return max(0.01, delay + random.uniform(0.0, jitter))

    async def get_json(
        self,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        max_attempts: int | None = None,
    ) -> HttpResult:
        attempts = max(1, int(max_attempts or config.HTTP_RETRY_ATTEMPTS))
        req_headers = dict(self._headers)
        if headers:
            req_headers.update(headers)

        stats = self._stats
        for attempt in range(1, attempts + 1):
            status = 0
            await self._wait_cooldown(url)
            started = time.perf_counter()
            try:
                session = await self._get_session()
                async with session.get(url, params=params, headers=req_headers, proxy=self._proxy) as response:
                    stats.observe_latency(started)
                    status = int(response.status or 0)
                    if status == 200:
                        payload = await response.json(content_type=None)
                        stats.ok += 1
                        return HttpResult(ok=True, status=status, data=payload)

                    if status == 429:
                        stats.rate_limited += 1
                        self._start_cooldown(response)
                    retryable = status == 429 or (500 <= status <= 599)
                    if not retryable or attempt >= attempts:
                        stats.fail += 1
                        return HttpResult(ok=False, status=status, data=None, error=f"http_status_{status}")
            except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
                stats.observe_latency(started)
                if attempt >= attempts:
                    stats.fail += 1
                    return HttpResult(ok=False, status=status, data=None, error=f"http_error:{exc}")

            stats.retries += 1
            delay = self._compute_delay(attempt=attempt, status=status)
            logger.debug(
                "HTTP_RETRY attempt=%s/%s status=%s delay=%.2fs url=%s",
                attempt,
                attempts,
                status,
                delay,
                url,
            )
            await asyncio.sleep(delay)

        return HttpResult(ok=False, status=0, data=None, error="http_exhausted")
