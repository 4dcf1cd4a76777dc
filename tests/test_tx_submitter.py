from __future__ import annotations

import unittest

from chain_fakes import FakeChain, addr
from trading.errors import RpcError, RpcUnavailable, SubmissionExhausted
from trading.tx_submitter import NonceAwareSubmitter, is_nonce_conflict

ACCOUNT = addr(1)


class RecordingSleep:
    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class ScriptedBuild:
    """build_tx closure that replays a list of outcomes and records the nonces it saw."""

    def __init__(self, outcomes: list[object]) -> None:
        self.outcomes = list(outcomes)
        self.nonces: list[int] = []

    async def __call__(self, nonce: int) -> str:
        self.nonces.append(nonce)
        outcome = self.outcomes.pop(0) if self.outcomes else RuntimeError("replacement transaction underpriced")
        if isinstance(outcome, BaseException):
            raise outcome
        return str(outcome)


class FlakyNonceChain:
    def __init__(self, failures: int, nonce: int) -> None:
        self.failures = failures
        self.nonce = nonce
        self.reads = 0

    async def get_transaction_count(self, account: str) -> int:  # noqa: ARG002
        self.reads += 1
        if self.reads <= self.failures:
            raise RpcError("connection reset while reading nonce")
        return self.nonce


def _submitter(chain, sleep=None, **kwargs) -> NonceAwareSubmitter:
    return NonceAwareSubmitter(
        chain,
        max_attempts=kwargs.pop("max_attempts", 10),
        retry_delay_seconds=2.0,
        conflict_bump_every=3,
        sleep=sleep or RecordingSleep(),
        **kwargs,
    )


class NonceConflictClassificationTests(unittest.TestCase):
    def test_known_conflict_messages(self) -> None:
        self.assertTrue(is_nonce_conflict(ValueError("{'code': -32000, 'message': 'nonce too low'}")))
        self.assertTrue(is_nonce_conflict(RuntimeError("Replacement transaction underpriced")))
        self.assertFalse(is_nonce_conflict(RuntimeError("execution reverted: TRANSFER_FAILED")))


class NonceAwareSubmitterTests(unittest.IsolatedAsyncioTestCase):
    async def test_first_success_returns_hash_without_sleeping(self) -> None:
        chain = FakeChain()
        chain.nonces[ACCOUNT] = 7
        sleep = RecordingSleep()
        build = ScriptedBuild(["0xabc"])

        tx_hash = await _submitter(chain, sleep).submit(build, ACCOUNT)

        self.assertEqual(tx_hash, "0xabc")
        self.assertEqual(build.nonces, [7])
        self.assertEqual(sleep.calls, [])

    async def test_always_conflicting_node_terminates_at_attempt_bound(self) -> None:
        chain = FakeChain()
        sleep = RecordingSleep()
        build = ScriptedBuild([])
        submitter = _submitter(chain, sleep)

        with self.assertRaises(SubmissionExhausted) as ctx:
            await submitter.submit(build, ACCOUNT)

        self.assertEqual(len(build.nonces), 10)
        self.assertEqual(ctx.exception.attempts, 10)
        self.assertIn("replacement transaction underpriced", str(ctx.exception))
        self.assertEqual(sleep.calls, [2.0] * 9)

    async def test_nonce_moves_forward_only_every_third_conflict(self) -> None:
        chain = FakeChain()
        chain.nonces[ACCOUNT] = 4
        build = ScriptedBuild([])

        with self.assertRaises(SubmissionExhausted):
            await _submitter(chain).submit(build, ACCOUNT)

        self.assertEqual(build.nonces, [4, 4, 4, 5, 5, 5, 6, 6, 6, 7])
        self.assertEqual(chain.nonce_reads, 1)

    async def test_conflicts_then_success_uses_bumped_nonce(self) -> None:
        chain = FakeChain()
        chain.nonces[ACCOUNT] = 10
        conflict = ValueError("nonce too low")
        build = ScriptedBuild([conflict, conflict, conflict, "0xdone"])
        submitter = _submitter(chain)

        tx_hash = await submitter.submit(build, ACCOUNT)

        self.assertEqual(tx_hash, "0xdone")
        self.assertEqual(build.nonces, [10, 10, 10, 11])
        self.assertEqual(submitter.last_used_nonce(ACCOUNT), 11)

    async def test_other_errors_fail_fast(self) -> None:
        chain = FakeChain()
        sleep = RecordingSleep()
        build = ScriptedBuild([ValueError("execution reverted: TRANSFER_FROM_FAILED")])

        with self.assertRaises(ValueError):
            await _submitter(chain, sleep).submit(build, ACCOUNT)

        self.assertEqual(len(build.nonces), 1)
        self.assertEqual(sleep.calls, [])

    async def test_generic_rpc_error_from_build_is_not_retried(self) -> None:
        chain = FakeChain()
        build = ScriptedBuild([RpcError("eth_sendRawTransaction: insufficient funds for gas")])

        with self.assertRaises(RpcError):
            await _submitter(chain).submit(build, ACCOUNT)

        self.assertEqual(len(build.nonces), 1)

    async def test_unreachable_node_discards_nonce_and_refetches(self) -> None:
        chain = FakeChain()
        chain.nonces[ACCOUNT] = 3
        build = ScriptedBuild([RpcUnavailable("read timed out"), "0xok"])

        async def _advance_nonce(nonce: int) -> str:
            # another process consumed nonce 3 while the node was unreachable
            chain.nonces[ACCOUNT] = 4
            return await build(nonce)

        tx_hash = await _submitter(chain).submit(_advance_nonce, ACCOUNT)

        self.assertEqual(tx_hash, "0xok")
        self.assertEqual(build.nonces, [3, 4])
        self.assertEqual(chain.nonce_reads, 2)

    async def test_failed_nonce_fetch_is_retried(self) -> None:
        chain = FlakyNonceChain(failures=2, nonce=9)
        sleep = RecordingSleep()
        build = ScriptedBuild(["0xfine"])

        tx_hash = await _submitter(chain, sleep).submit(build, ACCOUNT)

        self.assertEqual(tx_hash, "0xfine")
        self.assertEqual(chain.reads, 3)
        self.assertEqual(build.nonces, [9])
        self.assertEqual(len(sleep.calls), 2)

    async def test_refetched_nonce_never_below_last_used(self) -> None:
        chain = FakeChain()
        chain.nonces[ACCOUNT] = 5
        submitter = _submitter(chain)
        await submitter.submit(ScriptedBuild(["0x1"]), ACCOUNT)

        # a lagging node reports an older transaction count
        chain.nonces[ACCOUNT] = 2
        build = ScriptedBuild([RpcUnavailable("502 bad gateway"), "0x2"])
        await submitter.submit(build, ACCOUNT)

        self.assertEqual(build.nonces, [6, 6])
        self.assertEqual(submitter.last_used_nonce(ACCOUNT), 6)

    async def test_nonce_floor_expires_for_dropped_transaction(self) -> None:
        chain = FakeChain()
        chain.nonces[ACCOUNT] = 5
        now = [1_000.0]
        submitter = _submitter(chain, nonce_floor_ttl_seconds=120, clock=lambda: now[0])
        await submitter.submit(ScriptedBuild(["0x1"]), ACCOUNT)

        # the tx at nonce 5 never made it into a block
        within_ttl = ScriptedBuild(["0x2"])
        await submitter.submit(within_ttl, ACCOUNT)
        now[0] += 121
        after_ttl = ScriptedBuild(["0x3"])
        await submitter.submit(after_ttl, ACCOUNT)

        self.assertEqual(within_ttl.nonces, [6])
        self.assertEqual(after_ttl.nonces, [5])
        self.assertEqual(submitter.last_used_nonce(ACCOUNT), 5)

    def test_explicit_zero_limits_are_clamped_not_defaulted(self) -> None:
        submitter = NonceAwareSubmitter(FakeChain(), max_attempts=0, conflict_bump_every=0)

        self.assertEqual(submitter.max_attempts, 1)
        self.assertEqual(submitter.conflict_bump_every, 1)

    async def test_exhaustion_reports_last_error(self) -> None:
        chain = FlakyNonceChain(failures=100, nonce=0)

        with self.assertRaises(SubmissionExhausted) as ctx:
            await _submitter(chain, max_attempts=3).submit(ScriptedBuild([]), ACCOUNT)

        self.assertEqual(chain.reads, 3)
        self.assertIsInstance(ctx.exception.last_error, RpcError)


if __name__ == "__main__":
    unittest.main()
