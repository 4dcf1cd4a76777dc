"""New-listing watch loop: alert once per token and optionally autobuy."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable

import config
from monitor.feed import ClankerFeed, TokenListing
from monitor.token_storage import TokenStorage

logger = logging.getLogger(__name__)


@dataclass
class WatcherSettings:
    autobuy_enabled: bool = False
    buy_amount_eth: str = "0.001"
    scan_interval_seconds: float = 1.0
    new_token_max_age_seconds: int = 60
    seen_max: int = 1000
    initial_fetch_limit: int = 30

    @classmethod
    def from_config(cls) -> "WatcherSettings":
        return cls(
            autobuy_enabled=bool(config.AUTOBUY_ENABLED),
            buy_amount_eth=str(config.BUY_AMOUNT_ETH),
            scan_interval_seconds=float(config.SCAN_INTERVAL_SECONDS),
            new_token_max_age_seconds=int(config.NEW_TOKEN_MAX_AGE_SECONDS),
            seen_max=int(config.SEEN_TOKENS_MAX),
            initial_fetch_limit=int(config.FEED_LIMIT),
        )


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TokenWatcher:
    def __init__(
        self,
        feed: ClankerFeed,
        storage: TokenStorage,
        alerter: Any,
        *,
        settings: WatcherSettings | None = None,
        buy_executor: Any | None = None,
        buyer_account: Any | None = None,
        chain: Any | None = None,
        clock: Callable[[], datetime] = _utc_now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._feed = feed
        self._storage = storage
        self._alerter = alerter
        self.settings = settings or WatcherSettings.from_config()
        self._buy_executor = buy_executor
        self._buyer = buyer_account
        self._chain = chain
        self._clock = clock
        self._sleep = sleep
        self.processed: set[str] = set()
        self.alerted: set[str] = set()

    def set_autobuy(self, enabled: bool) -> None:
        self.settings.autobuy_enabled = bool(enabled)
        logger.info("WATCHER autobuy=%s", "enabled" if enabled else "disabled")

    async def initialize(self) -> int:
        """Alert listings missed while offline and mark the recent window as processed."""
        stored = await self._storage.load()
        stored_keys = {t.key for t in stored}
        recent = await self._feed.fetch_new_tokens(self.settings.initial_fetch_limit)
        if not recent:
            logger.info("WATCHER_INIT recent=0 stored=%s", len(stored))
            return 0

        missed = [t for t in recent if t.key not in stored_keys and t.key not in self.alerted]
        for token in missed:
            await self._alerter.send_alert(token)
            self.alerted.add(token.key)

        for token in recent:
            self.processed.add(token.key)
            self.alerted.add(token.key)
        await self._storage.store(recent)
        logger.info("WATCHER_INIT recent=%s missed=%s stored=%s", len(recent), len(missed), len(stored))
        return len(missed)

    def is_new_token(self, token: TokenListing) -> bool:
        if token.key in self.processed:
            return False
        created = token.created_at_utc()
        if created is None:
            return False
        return created > self._clock() - timedelta(seconds=self.settings.new_token_max_age_seconds)

    async def process_token(self, token: TokenListing) -> str | None:
        logger.info(
            "WATCHER_NEW_TOKEN name=%s symbol=%s contract=%s pool=%s type=%s",
            token.name,
            token.symbol,
            token.contract_address,
            token.pool_address,
            token.type,
        )
        if token.key not in self.alerted:
            await self._alerter.send_alert(token)
            self.alerted.add(token.key)
        self.processed.add(token.key)

        if not self.settings.autobuy_enabled:
            return None
        return await self._autobuy(token)

    async def _autobuy(self, token: TokenListing) -> str | None:
        if self._buy_executor is None or self._buyer is None:
            logger.warning("WATCHER_AUTOBUY_SKIP token=%s reason=no_buyer", token.contract_address)
            return None
        amount = self.settings.buy_amount_eth
        try:
            if not await self._buy_executor.has_balance_for(self._buyer, amount):
                return None
            tx_hash = await self._buy_executor.buy(token.contract_address, amount, self._buyer)
            if self._chain is not None:
                receipt = await self._chain.wait_for_confirmation(tx_hash)
                logger.info("WATCHER_AUTOBUY_CONFIRMED token=%s block=%s", token.contract_address, receipt.block_number)
            return tx_hash
        except Exception as exc:
            logger.error("WATCHER_AUTOBUY_FAILED token=%s symbol=%s err=%s", token.contract_address, token.symbol, exc)
            return None

    def _trim_seen(self) -> None:
        if len(self.processed) > self.settings.seen_max:
            self.processed.clear()
        if len(self.alerted) > self.settings.seen_max:
            self.alerted.clear()

    async def run_once(self) -> int:
        handled = 0
        for token in await self._feed.fetch_new_tokens():
            if not self.is_new_token(token):
                continue
            await self.process_token(token)
            await self._storage.prepend(token)
            handled += 1
        self._trim_seen()
        return handled

    async def run(self) -> None:
        logger.info(
            "WATCHER_START autobuy=%s buy_amount_eth=%s interval=%ss",
            self.settings.autobuy_enabled,
            self.settings.buy_amount_eth,
            self.settings.scan_interval_seconds,
        )
        while True:
            try:
                await self.run_once()
                await self._sleep(self.settings.scan_interval_seconds)
            except Exception:
                logger.exception("Watch loop error")
                await self._sleep(self.settings.scan_interval_seconds * 2)
