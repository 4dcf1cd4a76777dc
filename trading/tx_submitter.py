"""Nonce-aware transaction submission with bounded retries."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Protocol

import config
from trading.errors import RpcError, RpcUnavailable, SubmissionExhausted
from utils.addressing import normalize_address

logger = logging.getLogger(__name__)

NONCE_CONFLICT_MARKERS = (
    "replacement transaction underpriced",
    "nonce too low",
)

BuildTx = Callable[[int], Awaitable[str]]


class NonceSource(Protocol):
    async def get_transaction_count(self, account: str) -> int:
        ...


def is_nonce_conflict(exc: BaseException) -> bool:
    text = str(exc).lower()
    return any(marker in text for marker in NONCE_CONFLICT_MARKERS)


class NonceAwareSubmitter:
    """Drives a `build_tx(nonce) -> tx_hash` closure until it returns a hash.

    Nonce-conflict errors are retried on the same nonce; only every
    `conflict_bump_every`-th consecutive conflict moves the nonce forward, since
    the first conflicts are usually RPC nodes lagging behind each other.
    RPC unavailability drops the cached nonce so the next attempt refetches it.
    Any other failure is raised to the caller immediately.

    Sent nonces are remembered per account so a lagging node cannot hand out
    a nonce this process already used. That floor expires after
    `nonce_floor_ttl_seconds`; a transaction still unmined by then is treated
    as dropped and the node's count is trusted again.
    """

    def __init__(
        self,
        chain: NonceSource,
        *,
        max_attempts: int | None = None,
        retry_delay_seconds: float | None = None,
        conflict_bump_every: int | None = None,
        nonce_floor_ttl_seconds: float | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._chain = chain
        self.max_attempts = max(1, int(config.TX_SUBMIT_MAX_ATTEMPTS if max_attempts is None else max_attempts))
        self.retry_delay_seconds = max(
            0.0,
            float(config.TX_SUBMIT_RETRY_DELAY_SECONDS if retry_delay_seconds is None else retry_delay_seconds),
        )
        self.conflict_bump_every = max(
            1,
            int(config.NONCE_CONFLICT_BUMP_EVERY if conflict_bump_every is None else conflict_bump_every),
        )
        self.nonce_floor_ttl_seconds = max(
            0.0,
            float(config.TX_CONFIRM_TIMEOUT_SECONDS if nonce_floor_ttl_seconds is None else nonce_floor_ttl_seconds),
        )
        self._sleep = sleep
        self._clock = clock
        # account -> (nonce, clock reading when it was sent)
        self._last_used_nonce: dict[str, tuple[int, float]] = {}

    def last_used_nonce(self, account_address: str) -> int | None:
        entry = self._last_used_nonce.get(normalize_address(account_address))
        return entry[0] if entry is not None else None

    async def _fetch_nonce(self, account_address: str) -> int:
        fetched = int(await self._chain.get_transaction_count(account_address))
        key = normalize_address(account_address)
        entry = self._last_used_nonce.get(key)
        if entry is None or fetched > entry[0]:
            return fetched
        floor, sent_at = entry
        if self._clock() - sent_at > self.nonce_floor_ttl_seconds:
            del self._last_used_nonce[key]
            logger.warning(
                "TX_NONCE_FLOOR_EXPIRED account=%s fetched=%s last_used=%s",
                account_address,
                fetched,
                floor,
            )
            return fetched
        logger.info(
            "TX_NONCE_FLOOR account=%s fetched=%s last_used=%s",
            account_address,
            fetched,
            floor,
        )
        return floor + 1

    async def submit(self, build_tx: BuildTx, account_address: str, *, label: str = "tx") -> str:
        last_error: BaseException | None = None
        nonce: int | None = None
        conflicts = 0

        for attempt in range(1, self.max_attempts + 1):
            try:
                if nonce is None:
                    nonce = await self._fetch_nonce(account_address)
                    conflicts = 0

                logger.info(
                    "TX_SUBMIT label=%s account=%s nonce=%s attempt=%s/%s",
                    label,
                    account_address,
                    nonce,
                    attempt,
                    self.max_attempts,
                )
                try:
                    tx_hash = await build_tx(nonce)
                except Exception as exc:
                    if not is_nonce_conflict(exc):
                        raise
                    last_error = exc
                    conflicts += 1
                    logger.warning(
                        "TX_NONCE_CONFLICT label=%s account=%s nonce=%s attempt=%s/%s conflicts=%s err=%s",
                        label,
                        account_address,
                        nonce,
                        attempt,
                        self.max_attempts,
                        conflicts,
                        exc,
                    )
                    if conflicts >= self.conflict_bump_every:
                        nonce += 1
                        conflicts = 0
                        logger.info("TX_NONCE_BUMP label=%s account=%s nonce=%s", label, account_address, nonce)
                else:
                    self._last_used_nonce[normalize_address(account_address)] = (int(nonce), self._clock())
                    logger.info("TX_SENT label=%s account=%s nonce=%s hash=%s", label, account_address, nonce, tx_hash)
                    return tx_hash
            except RpcError as exc:
                # A failed nonce fetch or an unreachable node: start over from a fresh nonce.
                if nonce is not None and not isinstance(exc, RpcUnavailable):
                    raise
                last_error = exc
                nonce = None
                conflicts = 0
                logger.warning(
                    "TX_SUBMIT_FAILED label=%s account=%s attempt=%s/%s err=%s",
                    label,
                    account_address,
                    attempt,
                    self.max_attempts,
                    exc,
                )

            if attempt < self.max_attempts:
                await self._sleep(self.retry_delay_seconds)

        logger.error(
            "TX_SUBMIT_EXHAUSTED label=%s account=%s attempts=%s err=%s",
            label,
            account_address,
            self.max_attempts,
            last_error,
        )
        raise SubmissionExhausted(last_error, self.max_attempts)
