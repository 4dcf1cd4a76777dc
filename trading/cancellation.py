"""Cooperative cancellation shared by chat prompts and sell runs."""

from __future__ import annotations

import asyncio

from trading.errors import OperationCancelled


class CancelToken:
    """A one-shot flag checked at well-defined checkpoints.

    Cancelling never interrupts an in-flight chain call; the owner observes the
    flag at the next `raise_if_cancelled()` or wakes up from `wait()`.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason = ""

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self.reason = str(reason)
            self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelled(self.reason or "cancelled")

    async def wait(self) -> None:
        await self._event.wait()


def checkpoint(token: CancelToken | None) -> None:
    if token is not None:
        token.raise_if_cancelled()
