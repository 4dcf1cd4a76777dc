"""Exception taxonomy for chain access, submission and sell orchestration."""

from __future__ import annotations


class TradingError(RuntimeError):
    """Base class for every failure raised below the chat boundary."""


class RpcError(TradingError):
    """Raised when a chain RPC call fails."""


class RpcUnavailable(RpcError):
    """Raised when the RPC endpoint cannot be reached or times out."""


class SubmissionExhausted(TradingError):
    def __init__(self, last_error: BaseException | None, attempts: int) -> None:
        self.last_error = last_error
        self.attempts = int(attempts)
        detail = str(last_error) if last_error is not None else "unknown error"
        super().__init__(f"Failed to send transaction after {self.attempts} attempts: {detail}")


class SellValidationError(TradingError):
    """Fail-fast input/state problems; never retried."""


class InsufficientNativeBalance(SellValidationError):
    def __init__(self, account: str, available_wei: int, required_wei: int = 1) -> None:
        self.account = account
        self.available_wei = int(available_wei)
        self.required_wei = int(required_wei)
        super().__init__(
            f"Insufficient ETH balance for wallet {account}. "
            f"Available: {self.available_wei} wei, required: {self.required_wei} wei."
        )


class InsufficientTokenBalance(SellValidationError):
    def __init__(self, account: str, available: int, requested: int) -> None:
        self.account = account
        self.available = int(available)
        self.requested = int(requested)
        super().__init__(
            f"Insufficient token balance for wallet {account}. "
            f"Available: {format_token_amount(self.available)}, "
            f"Trying to sell: {format_token_amount(self.requested)}"
        )


class InsufficientHoldings(SellValidationError):
    def __init__(self, requested_percentage: float, held_percentage: float, total_held: int) -> None:
        self.requested_percentage = float(requested_percentage)
        self.held_percentage = float(held_percentage)
        self.total_held = int(total_held)
        super().__init__(
            f"Not enough tokens to sell {self.requested_percentage:g}% of total supply. "
            f"You only have {self.held_percentage:.4f}%"
        )


class ApprovalFailed(TradingError):
    def __init__(self, account: str, allowance: int, required: int) -> None:
        self.account = account
        self.allowance = int(allowance)
        self.required = int(required)
        super().__init__(
            f"Approval failed for wallet {account}. Current allowance: "
            f"{format_token_amount(self.allowance)}, Required: {format_token_amount(self.required)}"
        )


class SnapshotFailed(TradingError):
    """Raised when account balances cannot be read; a sell run cannot start without them."""


class OperationCancelled(TradingError):
    """Raised at a cancellation checkpoint once the operation's token is cancelled."""


def format_token_amount(raw: int, decimals: int = 18) -> str:
    """Render a raw integer amount in whole-token units without float rounding."""
    value = int(raw)
    sign = "-" if value < 0 else ""
    whole, frac = divmod(abs(value), 10**decimals)
    if frac == 0:
        return f"{sign}{whole}"
    frac_text = str(frac).rjust(decimals, "0").rstrip("0")
    return f"{sign}{whole}.{frac_text}"
