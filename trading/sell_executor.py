"""Single-account sell: balance checks, allowance self-healing and swap submission."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

import config
from trading.accounts import SigningAccount
from trading.chain_client import MAX_UINT256
from trading.errors import (
    ApprovalFailed,
    InsufficientNativeBalance,
    InsufficientTokenBalance,
)
from trading.tx_submitter import NonceAwareSubmitter

logger = logging.getLogger(__name__)


class SellExecutor:
    def __init__(
        self,
        chain: Any,
        submitter: NonceAwareSubmitter,
        *,
        router_address: str | None = None,
        weth_address: str | None = None,
        deadline_seconds: int | None = None,
        amount_out_min: int | None = None,
        gas_bump_percent: int | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._chain = chain
        self._submitter = submitter
        self.router_address = str(router_address or config.UNISWAP_V2_ROUTER_ADDRESS)
        self.weth_address = str(weth_address or config.WETH_ADDRESS)
        self.deadline_seconds = int(deadline_seconds or config.SWAP_DEADLINE_SECONDS)
        self.amount_out_min = int(config.SELL_AMOUNT_OUT_MIN if amount_out_min is None else amount_out_min)
        self.gas_bump_percent = int(config.GAS_PRICE_BUMP_PERCENT if gas_bump_percent is None else gas_bump_percent)
        self._clock = clock

    def bumped_gas_price(self, base_gas_price: int, attempt: int) -> int:
        """Linear bump: +gas_bump_percent of the base price per previous attempt."""
        return int(base_gas_price) * (100 + max(0, int(attempt)) * self.gas_bump_percent) // 100

    async def approve(self, token_address: str, account: SigningAccount, amount: int) -> str:
        """Submit an approval of `amount` to the sell router; returns the tx hash unconfirmed."""

        async def _send(nonce: int) -> str:
            gas_price = await self._chain.get_gas_price()
            tx = self._chain.build_approve_tx(
                token_address,
                account.address,
                self.router_address,
                int(amount),
                nonce=nonce,
                gas_price=gas_price,
            )
            return await account.sign_and_submit(tx)

        return await self._submitter.submit(_send, account.address, label="approve")

    async def _ensure_allowance(self, token_address: str, account: SigningAccount, amount: int) -> None:
        allowance = await self._chain.get_allowance(token_address, account.address, self.router_address)
        if allowance >= amount:
            return

        approve_hash = await self.approve(token_address, account, MAX_UINT256)
        logger.info("SELL_APPROVE_SENT token=%s account=%s hash=%s", token_address, account.address, approve_hash)
        receipt = await self._chain.wait_for_confirmation(approve_hash)
        if not receipt.succeeded:
            logger.warning("SELL_APPROVE_REVERTED token=%s account=%s hash=%s", token_address, account.address, approve_hash)
        else:
            logger.info(
                "SELL_APPROVE_CONFIRMED token=%s account=%s block=%s",
                token_address,
                account.address,
                receipt.block_number,
            )

        # Another process may spend the fresh allowance before we get to use it.
        allowance = await self._chain.get_allowance(token_address, account.address, self.router_address)
        if allowance < amount:
            raise ApprovalFailed(account.address, allowance, amount)

    async def sell_from_account(
        self,
        token_address: str,
        amount: int,
        account: SigningAccount,
        *,
        attempt: int = 0,
    ) -> str:
        """Submit a token->ETH swap of `amount`; the caller waits for confirmation."""
        amount = int(amount)
        native = await self._chain.get_balance(account.address)
        if native <= 0:
            raise InsufficientNativeBalance(account.address, native)

        token_balance = await self._chain.get_token_balance(token_address, account.address)
        if token_balance < amount:
            raise InsufficientTokenBalance(account.address, token_balance, amount)

        await self._ensure_allowance(token_address, account, amount)

        deadline = int(self._clock()) + self.deadline_seconds
        gas_price = self.bumped_gas_price(await self._chain.get_gas_price(), attempt)

        async def _send(nonce: int) -> str:
            tx = self._chain.build_sell_tx(
                self.router_address,
                token_address,
                self.weth_address,
                account.address,
                amount,
                self.amount_out_min,
                deadline,
                nonce=nonce,
                gas_price=gas_price,
            )
            return await account.sign_and_submit(tx)

        tx_hash = await self._submitter.submit(_send, account.address, label="sell")
        logger.info(
            "SELL_SUBMITTED token=%s account=%s amount=%s attempt=%s hash=%s",
            token_address,
            account.address,
            amount,
            attempt + 1,
            tx_hash,
        )
        return tx_hash
