"""Multi-account sell run: snapshot, approve, then sell account by account."""

from __future__ import annotations

import asyncio
import logging
from decimal import ROUND_FLOOR, Decimal
from typing import Any, Awaitable, Callable, Protocol, Sequence

import config
from trading.cancellation import CancelToken, checkpoint
from trading.errors import InsufficientHoldings, SellValidationError, SnapshotFailed
from trading.holdings import BalanceReporter, percentage_of_supply
from trading.models import AccountOutcome, AccountSnapshot, Requester, SellPhase, SellProgress, SellTarget
from trading.sell_executor import SellExecutor

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    async def notify(self, requester: Requester | None, text: str) -> None:
        ...


class LogNotifier:
    """Fallback notifier used when no chat front end is attached."""

    async def notify(self, requester: Requester | None, text: str) -> None:
        logger.info("NOTIFY requester=%s text=%s", requester.mention if requester else "-", text)


def percentage_to_bps(percentage: float) -> int:
    return int((Decimal(str(percentage)) * 100).to_integral_value(rounding=ROUND_FLOOR))


def compute_sell_amount(percentage: float, total_held: int, total_supply: int) -> int:
    """Raw amount to sell for a percentage of total supply.

    A full liquidation sells exactly what is held so no rounding dust is left.
    """
    if float(percentage) == 100.0:
        return int(total_held)
    return int(total_supply) * percentage_to_bps(percentage) // 10_000


class SellOrchestrator:
    def __init__(
        self,
        chain: Any,
        executor: SellExecutor,
        accounts: Sequence[Any],
        *,
        notifier: Notifier | None = None,
        reporter: BalanceReporter | None = None,
        total_supply: int | None = None,
        max_attempts: int | None = None,
        retry_delay_seconds: float | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._chain = chain
        self._executor = executor
        self._accounts = list(accounts)
        self._notifier: Notifier = notifier or LogNotifier()
        self.total_supply = int(total_supply or config.TOKEN_TOTAL_SUPPLY_RAW)
        self._reporter = reporter or BalanceReporter(chain, self._accounts, total_supply=self.total_supply)
        self.max_attempts = max(1, int(config.SELL_MAX_ATTEMPTS if max_attempts is None else max_attempts))
        self.retry_delay_seconds = max(
            0.0,
            float(config.SELL_RETRY_DELAY_SECONDS if retry_delay_seconds is None else retry_delay_seconds),
        )
        self._sleep = sleep

    async def _notify(self, requester: Requester | None, text: str) -> None:
        try:
            await self._notifier.notify(requester, text)
        except Exception as exc:
            logger.warning("SELL_NOTIFY_FAILED requester=%s err=%s", requester.mention if requester else "-", exc)

    async def execute_sell(
        self,
        token_address: str,
        percentage: float,
        *,
        requester: Requester | None = None,
        cancel: CancelToken | None = None,
    ) -> SellProgress:
        return await self.execute(
            SellTarget(token_address=token_address, percentage=float(percentage)),
            requester=requester,
            cancel=cancel,
        )

    async def execute(
        self,
        target: SellTarget,
        *,
        requester: Requester | None = None,
        cancel: CancelToken | None = None,
    ) -> SellProgress:
        token = target.token_address
        progress = SellProgress(token_address=token)
        logger.info(
            "SELL_RUN_START token=%s pct=%s amount=%s accounts=%s",
            token,
            target.percentage,
            target.absolute_amount,
            len(self._accounts),
        )

        checkpoint(cancel)
        snapshots = await self._snapshot(token)
        progress.total_held = sum(s.token_balance for s in snapshots)

        total_sell = self._target_amount(target, progress.total_held)
        if total_sell > progress.total_held:
            held_pct = percentage_of_supply(progress.total_held, self.total_supply)
            requested_pct = (
                float(target.percentage)
                if target.percentage is not None
                else percentage_of_supply(total_sell, self.total_supply)
            )
            logger.warning(
                "SELL_RUN_REJECTED token=%s target=%s held=%s held_pct=%.4f",
                token,
                total_sell,
                progress.total_held,
                held_pct,
            )
            raise InsufficientHoldings(requested_pct, held_pct, progress.total_held)
        progress.total_sell_amount = total_sell
        progress.remaining_amount_to_sell = total_sell

        checkpoint(cancel)
        progress.phase = SellPhase.APPROVAL
        await self._approval_phase(token, snapshots, progress, requester)

        checkpoint(cancel)
        progress.phase = SellPhase.SELLING
        await self._selling_phase(token, snapshots, progress, requester, cancel)

        progress.phase = SellPhase.COMPLETED
        await self._complete(token, progress, requester)
        return progress

    def _target_amount(self, target: SellTarget, total_held: int) -> int:
        if target.absolute_amount is not None:
            return int(target.absolute_amount)
        return compute_sell_amount(float(target.percentage or 0.0), total_held, self.total_supply)

    async def _snapshot(self, token: str) -> list[AccountSnapshot]:
        router = self._executor.router_address

        async def _read(account: Any) -> AccountSnapshot:
            balance = int(await self._chain.get_token_balance(token, account.address))
            allowance = 0
            if balance > 0:
                allowance = int(await self._chain.get_allowance(token, account.address, router))
            return AccountSnapshot(account=account, token_balance=balance, allowance=allowance)

        try:
            results = await asyncio.gather(*[_read(a) for a in self._accounts])
        except Exception as exc:
            logger.error("SELL_SNAPSHOT_FAILED token=%s err=%s", token, exc)
            raise SnapshotFailed(f"Could not read balances for {token}: {exc}") from exc

        snapshots = [s for s in results if s.token_balance > 0]
        logger.info(
            "SELL_SNAPSHOT token=%s accounts=%s holding=%s total=%s",
            token,
            len(results),
            len(snapshots),
            sum(s.token_balance for s in snapshots),
        )
        return snapshots

    async def _approval_phase(
        self,
        token: str,
        snapshots: Sequence[AccountSnapshot],
        progress: SellProgress,
        requester: Requester | None,
    ) -> None:
        pending = [s for s in snapshots if s.allowance < s.token_balance]
        if not pending:
            return

        async def _approve(snapshot: AccountSnapshot) -> None:
            try:
                tx_hash = await self._executor.approve(token, snapshot.account, snapshot.token_balance)
                await self._notify(requester, f"Approval transaction hash: {tx_hash}")
                await self._chain.wait_for_confirmation(tx_hash)
            except Exception as exc:
                # The per-account sell re-checks allowance and approves again if needed.
                progress.approval_errors[snapshot.address] = str(exc)
                logger.warning("SELL_APPROVAL_FAILED token=%s account=%s err=%s", token, snapshot.address, exc)

        await asyncio.gather(*[_approve(s) for s in pending])
        logger.info(
            "SELL_APPROVALS token=%s submitted=%s failed=%s",
            token,
            len(pending),
            len(progress.approval_errors),
        )

    async def _selling_phase(
        self,
        token: str,
        snapshots: Sequence[AccountSnapshot],
        progress: SellProgress,
        requester: Requester | None,
        cancel: CancelToken | None,
    ) -> None:
        for snapshot in snapshots:
            if cancel is not None and cancel.cancelled:
                progress.cancelled = True
            if progress.cancelled or progress.remaining_amount_to_sell <= 0:
                progress.outcomes.append(AccountOutcome(account=snapshot.address, attempted=False))
                continue

            amount = min(snapshot.token_balance, progress.remaining_amount_to_sell)
            outcome = AccountOutcome(account=snapshot.address, requested_amount=amount)
            progress.outcomes.append(outcome)
            await self._sell_account(token, snapshot, amount, outcome, progress, requester)

            if not outcome.success:
                await self._notify(
                    requester,
                    f"Failed to sell tokens from wallet {snapshot.address} after {outcome.attempts} attempts.",
                )

    async def _sell_account(
        self,
        token: str,
        snapshot: AccountSnapshot,
        amount: int,
        outcome: AccountOutcome,
        progress: SellProgress,
        requester: Requester | None,
    ) -> None:
        for attempt in range(1, self.max_attempts + 1):
            # An earlier attempt may have landed even though its confirmation or balance read failed.
            if attempt > 1 and await self._settle_from_balance(token, snapshot, amount, outcome, progress, requester):
                return

            outcome.attempts = attempt
            logger.info(
                "SELL_ATTEMPT token=%s account=%s amount=%s attempt=%s/%s",
                token,
                snapshot.address,
                amount,
                attempt,
                self.max_attempts,
            )
            try:
                tx_hash = await self._executor.sell_from_account(token, amount, snapshot.account, attempt=attempt - 1)
                outcome.tx_hash = tx_hash
                await self._chain.wait_for_confirmation(tx_hash)
                new_balance = int(await self._chain.get_token_balance(token, snapshot.address))
            except SellValidationError as exc:
                if await self._settle_from_balance(token, snapshot, amount, outcome, progress, requester):
                    return
                outcome.error = str(exc)
                logger.warning(
                    "SELL_ATTEMPT_REJECTED token=%s account=%s attempt=%s/%s err=%s",
                    token,
                    snapshot.address,
                    attempt,
                    self.max_attempts,
                    exc,
                )
                return
            except Exception as exc:
                outcome.error = str(exc)
                logger.warning(
                    "SELL_ATTEMPT_FAILED token=%s account=%s attempt=%s/%s err=%s",
                    token,
                    snapshot.address,
                    attempt,
                    self.max_attempts,
                    exc,
                )
            else:
                if new_balance < snapshot.token_balance:
                    await self._record_sale(token, snapshot, amount, new_balance, outcome, progress, requester)
                    return
                outcome.error = f"no balance decrease observed after {outcome.tx_hash}"
                logger.warning(
                    "SELL_NO_EFFECT token=%s account=%s attempt=%s/%s balance=%s hash=%s",
                    token,
                    snapshot.address,
                    attempt,
                    self.max_attempts,
                    new_balance,
                    outcome.tx_hash,
                )

            if attempt < self.max_attempts:
                await self._sleep(self.retry_delay_seconds)

        await self._settle_from_balance(token, snapshot, amount, outcome, progress, requester)

    async def _settle_from_balance(
        self,
        token: str,
        snapshot: AccountSnapshot,
        amount: int,
        outcome: AccountOutcome,
        progress: SellProgress,
        requester: Requester | None,
    ) -> bool:
        """Count a balance decrease that no attempt has accounted for yet."""
        try:
            balance = int(await self._chain.get_token_balance(token, snapshot.address))
        except Exception as exc:
            logger.warning("SELL_BALANCE_RECHECK_FAILED token=%s account=%s err=%s", token, snapshot.address, exc)
            return False
        if balance >= snapshot.token_balance:
            return False
        await self._record_sale(token, snapshot, amount, balance, outcome, progress, requester)
        return True

    async def _record_sale(
        self,
        token: str,
        snapshot: AccountSnapshot,
        amount: int,
        new_balance: int,
        outcome: AccountOutcome,
        progress: SellProgress,
        requester: Requester | None,
    ) -> None:
        observed = snapshot.token_balance - new_balance
        outcome.amount_sold = progress.decrement(observed)
        outcome.success = True
        outcome.error = ""
        if observed > amount:
            logger.warning(
                "SELL_OVERDRAWN token=%s account=%s requested=%s observed=%s",
                token,
                snapshot.address,
                amount,
                observed,
            )
        logger.info(
            "SELL_CONFIRMED token=%s account=%s sold=%s remaining=%s hash=%s",
            token,
            snapshot.address,
            outcome.amount_sold,
            progress.remaining_amount_to_sell,
            outcome.tx_hash,
        )
        await self._notify(requester, f"Sell transaction hash: {outcome.tx_hash}")

    async def _complete(self, token: str, progress: SellProgress, requester: Requester | None) -> None:
        head = "Sale process cancelled." if progress.cancelled else "Sale process completed."
        try:
            final_total = await self._reporter.total_held(token)
        except Exception as exc:
            logger.warning("SELL_FINAL_BALANCE_FAILED token=%s err=%s", token, exc)
            tail = "New holdings could not be read."
        else:
            progress.new_percentage_held = percentage_of_supply(final_total, self.total_supply)
            tail = f"New holdings: {progress.new_percentage_held:.4f}% of total supply."
        summary = f"{head} {tail}"
        logger.info(
            "SELL_RUN_DONE token=%s target=%s sold=%s remaining=%s failed=%s cancelled=%s",
            token,
            progress.total_sell_amount,
            progress.amount_sold,
            progress.remaining_amount_to_sell,
            len(progress.failed_accounts),
            progress.cancelled,
        )
        await self._notify(requester, summary)
