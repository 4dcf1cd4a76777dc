"""Wires chain access, trading components and the listing watcher together."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import config
from bot.conversations import ConversationRegistry, OperationRunner
from bot.notifier import TelegramNotifier
from monitor.alerter import TokenAlerter
from monitor.feed import ClankerFeed
from monitor.token_storage import TokenStorage
from monitor.watcher import TokenWatcher, WatcherSettings
from trading.accounts import WalletAccount, load_accounts
from trading.buy_executor import BuyExecutor
from trading.chain_client import ChainClient
from trading.holdings import BalanceReporter
from trading.sell_executor import SellExecutor
from trading.sell_orchestrator import SellOrchestrator
from trading.tx_submitter import NonceAwareSubmitter

logger = logging.getLogger(__name__)


class TradingService:
    def __init__(self, bot: Any, *, chain: ChainClient | None = None, watch_enabled: bool = True) -> None:
        self.chain = chain or ChainClient()
        self.accounts = load_accounts(config.PRIVATE_KEYS, self.chain)
        if not self.accounts:
            logger.warning("SERVICE no PRIVATE_KEYS configured; sell and balance commands will report nothing held")
        if str(config.SNIPER_PRIVATE_KEY or "").strip():
            self.buyer: WalletAccount | None = WalletAccount(config.SNIPER_PRIVATE_KEY, self.chain)
        else:
            self.buyer = self.accounts[0] if self.accounts else None

        self.submitter = NonceAwareSubmitter(self.chain)
        self.notifier = TelegramNotifier(bot)
        self.reporter = BalanceReporter(self.chain, self.accounts)
        self.sell_executor = SellExecutor(self.chain, self.submitter)
        self.orchestrator = SellOrchestrator(
            self.chain,
            self.sell_executor,
            self.accounts,
            notifier=self.notifier,
            reporter=self.reporter,
        )
        self.buy_executor = BuyExecutor(self.chain, self.submitter)

        self.registry = ConversationRegistry()
        self.runner = OperationRunner(self.registry)

        self.watch_enabled = bool(watch_enabled)
        self.feed = ClankerFeed()
        self.watcher = TokenWatcher(
            self.feed,
            TokenStorage(),
            TokenAlerter(bot),
            settings=WatcherSettings.from_config(),
            buy_executor=self.buy_executor,
            buyer_account=self.buyer,
            chain=self.chain,
        )
        self._watch_task: asyncio.Task | None = None

    async def start(self) -> None:
        logger.info(
            "SERVICE_START chain_id=%s accounts=%s buyer=%s watch=%s",
            self.chain.chain_id,
            len(self.accounts),
            self.buyer.address if self.buyer else "-",
            self.watch_enabled,
        )
        if not self.watch_enabled:
            return
        await self.watcher.initialize()
        self._watch_task = asyncio.create_task(self.watcher.run(), name="token-watcher")

    async def stop(self) -> None:
        await self.runner.shutdown()
        if self._watch_task is not None:
            self._watch_task.cancel()
            try:
                await self._watch_task
            except asyncio.CancelledError:
                pass
            self._watch_task = None
        logger.info("SERVICE_STOP feed_http=%s", self.feed.runtime_stats())
        await self.feed.close()
