"""Read-only aggregation of token holdings across the account pool."""

from __future__ import annotations

import logging
from typing import Any, Sequence

import config
from trading.models import HoldingsReport

logger = logging.getLogger(__name__)

UNKNOWN_TOKEN_NAME = "Unknown Token"


def percentage_of_supply(amount: int, total_supply: int) -> float:
    if int(total_supply) <= 0:
        return 0.0
    return (int(amount) * 100) / int(total_supply)


class BalanceReporter:
    def __init__(self, chain: Any, accounts: Sequence[Any], *, total_supply: int | None = None) -> None:
        self._chain = chain
        self._accounts = list(accounts)
        self.total_supply = int(total_supply or config.TOKEN_TOTAL_SUPPLY_RAW)

    async def total_held(self, token_address: str) -> int:
        total = 0
        for account in self._accounts:
            total += int(await self._chain.get_token_balance(token_address, account.address))
        return total

    async def token_name(self, token_address: str) -> str:
        try:
            name = str(await self._chain.get_token_name(token_address) or "").strip()
        except Exception as exc:
            logger.info("HOLDINGS name_lookup_failed token=%s err=%s", token_address, exc)
            return UNKNOWN_TOKEN_NAME
        return name or UNKNOWN_TOKEN_NAME

    async def report_holdings(self, token_address: str) -> HoldingsReport:
        total = await self.total_held(token_address)
        name = await self.token_name(token_address)
        report = HoldingsReport(
            token_address=token_address,
            token_name=name,
            total_held=total,
            percentage_held=percentage_of_supply(total, self.total_supply),
        )
        logger.info(
            "HOLDINGS token=%s name=%s accounts=%s total=%s pct=%.4f",
            token_address,
            name,
            len(self._accounts),
            total,
            report.percentage_held,
        )
        return report


def format_holdings(report: HoldingsReport) -> str:
    return f"Token: {report.token_name} \nPercentage of Total Supply Held: {report.percentage_held:.4f}%"
