"""Signing identities used by the submitter and executors."""

from __future__ import annotations

import logging
from typing import Any, Iterable, Protocol

from eth_account import Account

from trading.errors import RpcError
from utils.addressing import normalize_address

logger = logging.getLogger(__name__)


class SigningAccount(Protocol):
    address: str

    async def sign_and_submit(self, tx_request: dict[str, Any]) -> str:
        ...


class RawTransactionSink(Protocol):
    async def send_raw_transaction(self, raw_tx: bytes) -> str:
        ...


class WalletAccount:
    """Local private-key account; signs in-process and submits via the chain client."""

    def __init__(self, private_key: str, chain: RawTransactionSink) -> None:
        self._signer = Account.from_key(private_key)
        self._chain = chain
        self.address: str = self._signer.address

    def __repr__(self) -> str:
        return f"WalletAccount({self.address})"

    async def sign_and_submit(self, tx_request: dict[str, Any]) -> str:
        signed = self._signer.sign_transaction(tx_request)
        raw_tx = getattr(signed, "raw_transaction", None)
        if raw_tx is None:
            raw_tx = getattr(signed, "rawTransaction", None)
        if raw_tx is None:
            raise RpcError("signed_tx_missing_raw_bytes")
        return await self._chain.send_raw_transaction(raw_tx)


def load_accounts(private_keys: Iterable[str], chain: RawTransactionSink) -> list[WalletAccount]:
    """Build the account pool in configuration order, skipping blanks and duplicates."""
    accounts: list[WalletAccount] = []
    seen: set[str] = set()
    for index, raw in enumerate(private_keys):
        key = str(raw or "").strip()
        if not key:
            continue
        try:
            account = WalletAccount(key, chain)
        except Exception as exc:
            raise ValueError(f"PRIVATE_KEYS entry #{index + 1} is not a valid private key") from exc
        addr_key = normalize_address(account.address)
        if addr_key in seen:
            logger.warning("ACCOUNTS duplicate key skipped address=%s", account.address)
            continue
        seen.add(addr_key)
        accounts.append(account)
    logger.info("ACCOUNTS loaded count=%s", len(accounts))
    return accounts
