from __future__ import annotations

import unittest

from chain_fakes import GAS_PRICE, ROUTER_V2, TOKEN, WETH, FakeAccount, FakeChain, addr, no_sleep
from trading.chain_client import MAX_UINT256
from trading.errors import ApprovalFailed, InsufficientNativeBalance, InsufficientTokenBalance
from trading.sell_executor import SellExecutor
from trading.tx_submitter import NonceAwareSubmitter

NOW = 1_700_000_000


def _executor(chain: FakeChain) -> SellExecutor:
    submitter = NonceAwareSubmitter(chain, max_attempts=10, retry_delay_seconds=0, sleep=no_sleep)
    return SellExecutor(
        chain,
        submitter,
        router_address=ROUTER_V2,
        weth_address=WETH,
        deadline_seconds=1200,
        amount_out_min=1,
        gas_bump_percent=10,
        clock=lambda: NOW,
    )


class SellExecutorTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.chain = FakeChain()
        self.account = FakeAccount(addr(1), self.chain)

    async def test_sell_with_existing_allowance_submits_swap_only(self) -> None:
        self.chain.fund(self.account.address, token=1_000, allowance=1_000)

        tx_hash = await _executor(self.chain).sell_from_account(TOKEN, 400, self.account)

        self.assertTrue(tx_hash.startswith("0x"))
        self.assertEqual(self.chain.approvals(), [])
        [(_, tx)] = self.chain.sells()
        self.assertEqual(tx["amount"], 400)
        self.assertEqual(tx["amount_out_min"], 1)
        self.assertEqual(tx["deadline"], NOW + 1200)
        self.assertEqual(tx["router"], ROUTER_V2)
        self.assertEqual(tx["weth"], WETH)
        self.assertEqual(tx["gasPrice"], GAS_PRICE)

    async def test_missing_allowance_is_approved_unlimited_before_selling(self) -> None:
        self.chain.fund(self.account.address, token=1_000, allowance=0)

        await _executor(self.chain).sell_from_account(TOKEN, 1_000, self.account)

        kinds = [tx["kind"] for _, tx in self.chain.sent]
        self.assertEqual(kinds, ["approve", "sell"])
        [(_, approval)] = self.chain.approvals()
        self.assertEqual(approval["amount"], MAX_UINT256)
        self.assertEqual(approval["spender"], ROUTER_V2)

    async def test_allowance_spent_before_recheck_fails_without_selling(self) -> None:
        self.chain.fund(self.account.address, token=1_000, allowance=0)

        def _spend_elsewhere(token: str, account: str) -> None:
            self.chain.allowances[(token, account)] = 0

        self.chain.after_approval = _spend_elsewhere

        with self.assertRaises(ApprovalFailed) as ctx:
            await _executor(self.chain).sell_from_account(TOKEN, 500, self.account)

        self.assertEqual(ctx.exception.allowance, 0)
        self.assertEqual(ctx.exception.required, 500)
        self.assertEqual(self.chain.sells(), [])

    async def test_reverted_approval_surfaces_as_approval_failed(self) -> None:
        self.chain.fund(self.account.address, token=1_000, allowance=0)
        # the first hash the fake chain hands out belongs to the approval
        self.chain.receipt_status["0x" + f"{1:064x}"] = 0

        with self.assertRaises(ApprovalFailed):
            await _executor(self.chain).sell_from_account(TOKEN, 500, self.account)
        self.assertEqual(self.chain.sells(), [])

    async def test_zero_native_balance_fails_fast(self) -> None:
        self.chain.fund(self.account.address, native=0, token=1_000, allowance=1_000)

        with self.assertRaises(InsufficientNativeBalance) as ctx:
            await _executor(self.chain).sell_from_account(TOKEN, 100, self.account)

        self.assertEqual(ctx.exception.available_wei, 0)
        self.assertEqual(self.chain.sent, [])

    async def test_token_balance_below_request_fails_fast(self) -> None:
        self.chain.fund(self.account.address, token=99, allowance=1_000)

        with self.assertRaises(InsufficientTokenBalance) as ctx:
            await _executor(self.chain).sell_from_account(TOKEN, 100, self.account)

        self.assertEqual(ctx.exception.available, 99)
        self.assertEqual(ctx.exception.requested, 100)
        self.assertIn("Insufficient token balance", str(ctx.exception))
        self.assertEqual(self.chain.sent, [])

    async def test_gas_price_is_bumped_per_retry(self) -> None:
        self.chain.fund(self.account.address, token=1_000, allowance=1_000)
        executor = _executor(self.chain)

        await executor.sell_from_account(TOKEN, 10, self.account, attempt=2)

        [(_, tx)] = self.chain.sells()
        self.assertEqual(tx["gasPrice"], GAS_PRICE * 120 // 100)
        self.assertEqual(executor.bumped_gas_price(1_000, 0), 1_000)
        self.assertEqual(executor.bumped_gas_price(1_000, 1), 1_100)


if __name__ == "__main__":
    unittest.main()
