from __future__ import annotations

import unittest
from unittest.mock import MagicMock, patch

from web3 import Web3

import config
from trading.chain_client import ChainClient
from trading.errors import RpcError, RpcUnavailable

OWNER = "0x70997970c51812dc3a010c7d01b50e0d17dc79c8"


def _client() -> tuple[ChainClient, MagicMock]:
    w3 = MagicMock()
    w3.to_checksum_address.side_effect = Web3.to_checksum_address
    client = ChainClient(w3=w3, chain_id=8453, timeout_seconds=5, confirm_timeout_seconds=30, gas_limit=500_000)
    return client, w3


class ChainClientTests(unittest.IsolatedAsyncioTestCase):
    async def test_nonce_is_read_from_pending_state(self) -> None:
        client, w3 = _client()
        w3.eth.get_transaction_count.return_value = 12

        nonce = await client.get_transaction_count(OWNER)

        self.assertEqual(nonce, 12)
        w3.eth.get_transaction_count.assert_called_once_with(Web3.to_checksum_address(OWNER), "pending")

    async def test_transport_errors_become_rpc_unavailable(self) -> None:
        client, w3 = _client()
        w3.eth.get_balance.side_effect = ConnectionError("connection refused")

        with self.assertRaises(RpcUnavailable):
            await client.get_balance(OWNER)

    async def test_other_errors_become_rpc_error(self) -> None:
        client, w3 = _client()
        w3.eth.send_raw_transaction.side_effect = ValueError({"code": -32000, "message": "nonce too low"})

        with self.assertRaises(RpcError) as ctx:
            await client.send_raw_transaction(b"\x01")

        self.assertNotIsInstance(ctx.exception, RpcUnavailable)
        self.assertIn("nonce too low", str(ctx.exception))

    async def test_send_raw_transaction_returns_hex_hash(self) -> None:
        client, w3 = _client()
        w3.eth.send_raw_transaction.return_value = bytes.fromhex("ab" * 32)

        self.assertEqual(await client.send_raw_transaction(b"\x01"), "0x" + "ab" * 32)

    async def test_reverted_receipt_is_returned_with_status(self) -> None:
        client, w3 = _client()
        w3.eth.wait_for_transaction_receipt.return_value = {"blockNumber": 321, "status": 0}

        receipt = await client.wait_for_confirmation("0x" + "cd" * 32)

        self.assertEqual(receipt.block_number, 321)
        self.assertFalse(receipt.succeeded)
        w3.eth.wait_for_transaction_receipt.assert_called_once_with("0x" + "cd" * 32, timeout=30)

    def test_missing_rpc_url_is_rejected(self) -> None:
        with patch.object(config, "RPC_PRIMARY", ""):
            with self.assertRaises(ValueError):
                ChainClient("", chain_id=8453)


if __name__ == "__main__":
    unittest.main()
