"""ETH -> token buys through the Uniswap V3 router."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any

from web3 import Web3

import config
from trading.accounts import SigningAccount
from trading.errors import InsufficientNativeBalance
from trading.tx_submitter import NonceAwareSubmitter

logger = logging.getLogger(__name__)


def eth_to_wei(amount_eth: float | str | Decimal) -> int:
    return int(Web3.to_wei(Decimal(str(amount_eth)), "ether"))


class BuyExecutor:
    def __init__(
        self,
        chain: Any,
        submitter: NonceAwareSubmitter,
        *,
        router_address: str | None = None,
        weth_address: str | None = None,
        pool_fee: int | None = None,
    ) -> None:
        self._chain = chain
        self._submitter = submitter
        self.router_address = str(router_address or config.UNISWAP_V3_ROUTER_ADDRESS)
        self.weth_address = str(weth_address or config.WETH_ADDRESS)
        self.pool_fee = int(pool_fee or config.BUY_POOL_FEE)

    async def has_balance_for(self, account: SigningAccount, amount_eth: float | str) -> bool:
        balance = await self._chain.get_balance(account.address)
        needed = eth_to_wei(amount_eth)
        if balance < needed:
            logger.warning("BUY_BALANCE_LOW account=%s have_wei=%s need_wei=%s", account.address, balance, needed)
            return False
        return True

    async def buy(self, token_address: str, amount_eth: float | str, account: SigningAccount) -> str:
        amount_in = eth_to_wei(amount_eth)
        if amount_in <= 0:
            raise ValueError("amount_in is zero")
        balance = await self._chain.get_balance(account.address)
        if balance < amount_in:
            raise InsufficientNativeBalance(account.address, balance, amount_in)

        logger.info(
            "BUY_START token=%s account=%s amount_eth=%s fee=%s",
            token_address,
            account.address,
            amount_eth,
            self.pool_fee,
        )

        async def _send(nonce: int) -> str:
            gas_price = await self._chain.get_gas_price()
            tx = self._chain.build_buy_tx(
                self.router_address,
                token_address,
                self.weth_address,
                account.address,
                amount_in,
                self.pool_fee,
                nonce=nonce,
                gas_price=gas_price,
            )
            return await account.sign_and_submit(tx)

        tx_hash = await self._submitter.submit(_send, account.address, label="buy")
        logger.info("BUY_SUBMITTED token=%s account=%s hash=%s", token_address, account.address, tx_hash)
        return tx_hash
