"""Data carried between the submitter, executors and the sell orchestrator."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class SellPhase(str, Enum):
    SNAPSHOTTING = "snapshotting"
    APPROVAL = "approval"
    SELLING = "selling"
    COMPLETED = "completed"


@dataclass(frozen=True)
class Requester:
    """Who asked for an operation and where progress should be reported."""

    chat_id: int
    user_id: int
    username: str | None = None

    @property
    def mention(self) -> str:
        return f"@{self.username or self.user_id}"


@dataclass(frozen=True)
class SellTarget:
    token_address: str
    percentage: float | None = None
    absolute_amount: int | None = None

    def __post_init__(self) -> None:
        if (self.percentage is None) == (self.absolute_amount is None):
            raise ValueError("exactly one of percentage or absolute_amount is required")
        if self.percentage is not None and not (0 < float(self.percentage) <= 100):
            raise ValueError(f"percentage out of range: {self.percentage}")
        if self.absolute_amount is not None and int(self.absolute_amount) <= 0:
            raise ValueError(f"absolute_amount must be positive: {self.absolute_amount}")

    @property
    def is_full_liquidation(self) -> bool:
        return self.percentage is not None and float(self.percentage) == 100.0


@dataclass(frozen=True)
class AccountSnapshot:
    account: Any
    token_balance: int
    allowance: int

    @property
    def address(self) -> str:
        return str(self.account.address)


@dataclass
class AccountOutcome:
    account: str
    requested_amount: int = 0
    amount_sold: int = 0
    success: bool = False
    attempted: bool = True
    attempts: int = 0
    tx_hash: str = ""
    error: str = ""


@dataclass
class SellProgress:
    token_address: str
    total_sell_amount: int = 0
    remaining_amount_to_sell: int = 0
    total_held: int = 0
    phase: SellPhase = SellPhase.SNAPSHOTTING
    outcomes: list[AccountOutcome] = field(default_factory=list)
    approval_errors: dict[str, str] = field(default_factory=dict)
    new_percentage_held: float | None = None
    cancelled: bool = False

    @property
    def amount_sold(self) -> int:
        return sum(int(o.amount_sold) for o in self.outcomes)

    @property
    def failed_accounts(self) -> list[str]:
        return [o.account for o in self.outcomes if o.attempted and not o.success]

    def decrement(self, observed_delta: int) -> int:
        """Apply a confirmed balance decrease; returns the portion counted against the target."""
        counted = max(0, min(int(observed_delta), int(self.remaining_amount_to_sell)))
        self.remaining_amount_to_sell -= counted
        return counted


@dataclass(frozen=True)
class Receipt:
    tx_hash: str
    block_number: int
    status: int = 1

    @property
    def succeeded(self) -> bool:
        return int(self.status) == 1


@dataclass(frozen=True)
class HoldingsReport:
    token_address: str
    token_name: str
    total_held: int
    percentage_held: float
