"""Chain access for Base: reads, transaction building and submission over web3."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, TypeVar

from web3 import HTTPProvider, Web3
from web3.contract import Contract

import config
from trading.errors import RpcError, RpcUnavailable
from trading.models import Receipt

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_UINT256 = (2**256) - 1

ERC20_ABI: list[dict[str, Any]] = [
    {
        "name": "name",
        "type": "function",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "string"}],
    },
    {
        "name": "balanceOf",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "owner", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "name": "allowance",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "owner", "type": "address"}, {"name": "spender", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "name": "approve",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [{"name": "spender", "type": "address"}, {"name": "value", "type": "uint256"}],
        "outputs": [{"name": "", "type": "bool"}],
    },
]


ROUTER_V2_ABI: list[dict[str, Any]] = [
    {
        "name": "swapExactTokensForETHSupportingFeeOnTransferTokens",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "amountIn", "type": "uint256"},
            {"name": "amountOutMin", "type": "uint256"},
            {"name": "path", "type": "address[]"},
            {"name": "to", "type": "address"},
            {"name": "deadline", "type": "uint256"},
        ],
        "outputs": [],
    },
]


ROUTER_V3_ABI: list[dict[str, Any]] = [
    {
        "name": "exactInputSingle",
        "type": "function",
        "stateMutability": "payable",
        "inputs": [
            {
                "name": "params",
                "type": "tuple",
                "components": [
                    {"name": "tokenIn", "type": "address"},
                    {"name": "tokenOut", "type": "address"},
                    {"name": "fee", "type": "uint24"},
                    {"name": "recipient", "type": "address"},
                    {"name": "amountIn", "type": "uint256"},
                    {"name": "amountOutMinimum", "type": "uint256"},
                    {"name": "sqrtPriceLimitX96", "type": "uint160"},
                ],
            }
        ],
        "outputs": [{"name": "amountOut", "type": "uint256"}],
    },
]


class ChainClient:
    """Async facade over a blocking web3 client.

    Every network call runs in a worker thread and any library failure is
    re-raised as `RpcError` (`RpcUnavailable` for transport failures).
    """

    def __init__(
        self,
        rpc_url: str | None = None,
        *,
        chain_id: int | None = None,
        timeout_seconds: int | None = None,
        confirm_timeout_seconds: int | None = None,
        gas_limit: int | None = None,
        w3: Web3 | None = None,
    ) -> None:
        rpc = (rpc_url or config.RPC_PRIMARY or "").strip()
        if w3 is None and not rpc:
            raise ValueError("RPC_PRIMARY is empty")
        timeout = int(timeout_seconds or config.RPC_TIMEOUT_SECONDS)
        self.w3 = w3 or Web3(HTTPProvider(rpc, request_kwargs={"timeout": timeout}))
        self.chain_id = int(chain_id or config.LIVE_CHAIN_ID)
        self.confirm_timeout_seconds = int(confirm_timeout_seconds or config.TX_CONFIRM_TIMEOUT_SECONDS)
        self.gas_limit = int(gas_limit or config.GAS_LIMIT)
        self._token_contracts: dict[str, Contract] = {}

    async def _run(self, label: str, fn: Callable[[], T]) -> T:
        try:
            return await asyncio.to_thread(fn)
        except (OSError, TimeoutError) as exc:
            logger.warning("RPC_UNAVAILABLE call=%s err=%s", label, exc)
            raise RpcUnavailable(f"{label}: {exc}") from exc
        except Exception as exc:
            raise RpcError(f"{label}: {exc}") from exc

    def checksum(self, address: str) -> str:
        return self.w3.to_checksum_address(address)

    def _token(self, token_address: str) -> Contract:
        key = str(token_address).lower()
        contract = self._token_contracts.get(key)
        if contract is None:
            contract = self.w3.eth.contract(address=self.checksum(token_address), abi=ERC20_ABI)
            self._token_contracts[key] = contract
        return contract

    async def get_balance(self, account: str) -> int:
        address = self.checksum(account)
        return int(await self._run("get_balance", lambda: self.w3.eth.get_balance(address)))

    async def get_token_balance(self, token_address: str, account: str) -> int:
        contract = self._token(token_address)
        owner = self.checksum(account)
        return int(await self._run("balanceOf", lambda: contract.functions.balanceOf(owner).call()))

    async def get_allowance(self, token_address: str, owner: str, spender: str) -> int:
        contract = self._token(token_address)
        owner_cs = self.checksum(owner)
        spender_cs = self.checksum(spender)
        return int(
            await self._run("allowance", lambda: contract.functions.allowance(owner_cs, spender_cs).call())
        )

    async def get_token_name(self, token_address: str) -> str:
        contract = self._token(token_address)
        return str(await self._run("name", lambda: contract.functions.name().call()))

    async def get_transaction_count(self, account: str) -> int:
        # "pending" so a refetch never goes below a nonce already accepted by the node.
        address = self.checksum(account)
        return int(await self._run("get_transaction_count", lambda: self.w3.eth.get_transaction_count(address, "pending")))

    async def get_gas_price(self) -> int:
        return int(await self._run("gas_price", lambda: self.w3.eth.gas_price))

    async def send_raw_transaction(self, raw_tx: bytes) -> str:
        tx_hash = await self._run("send_raw_transaction", lambda: self.w3.eth.send_raw_transaction(raw_tx))
        return Web3.to_hex(tx_hash)

    async def wait_for_confirmation(self, tx_hash: str) -> Receipt:
        timeout = self.confirm_timeout_seconds
        receipt = await self._run(
            "wait_for_transaction_receipt",
            lambda: self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=timeout),
        )
        block_number = int(receipt["blockNumber"] or 0)
        status = int(receipt.get("status", 1))
        logger.info("TX_CONFIRMED hash=%s block=%s status=%s", tx_hash, block_number, status)
        return Receipt(tx_hash=tx_hash, block_number=block_number, status=status)

    def _tx_params(self, sender: str, *, nonce: int, gas_price: int, value_wei: int = 0) -> dict[str, Any]:
        return {
            "from": self.checksum(sender),
            "chainId": self.chain_id,
            "nonce": int(nonce),
            "gas": self.gas_limit,
            "gasPrice": int(gas_price),
            "value": int(value_wei),
        }

    def build_approve_tx(
        self,
        token_address: str,
        owner: str,
        spender: str,
        amount: int,
        *,
        nonce: int,
        gas_price: int,
    ) -> dict[str, Any]:
        contract = self._token(token_address)
        return contract.functions.approve(self.checksum(spender), int(amount)).build_transaction(
            self._tx_params(owner, nonce=nonce, gas_price=gas_price)
        )

    def build_sell_tx(
        self,
        router_address: str,
        token_address: str,
        weth_address: str,
        owner: str,
        amount: int,
        amount_out_min: int,
        deadline: int,
        *,
        nonce: int,
        gas_price: int,
    ) -> dict[str, Any]:
        router = self.w3.eth.contract(address=self.checksum(router_address), abi=ROUTER_V2_ABI)
        path = [self.checksum(token_address), self.checksum(weth_address)]
        return router.functions.swapExactTokensForETHSupportingFeeOnTransferTokens(
            int(amount),
            int(amount_out_min),
            path,
            self.checksum(owner),
            int(deadline),
        ).build_transaction(self._tx_params(owner, nonce=nonce, gas_price=gas_price))

    def build_buy_tx(
        self,
        router_address: str,
        token_address: str,
        weth_address: str,
        recipient: str,
        amount_in_wei: int,
        pool_fee: int,
        *,
        nonce: int,
        gas_price: int,
    ) -> dict[str, Any]:
        router = self.w3.eth.contract(address=self.checksum(router_address), abi=ROUTER_V3_ABI)
        params = (
            self.checksum(weth_address),
            self.checksum(token_address),
            int(pool_fee),
            self.checksum(recipient),
            int(amount_in_wei),
            0,
            0,
        )
        return router.functions.exactInputSingle(params).build_transaction(
            self._tx_params(recipient, nonce=nonce, gas_price=gas_price, value_wei=amount_in_wei)
        )
