"""Per-chat prompt state and the one-operation-per-chat runner."""

from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

import config
from trading.cancellation import CancelToken
from trading.errors import OperationCancelled
from utils.addressing import parse_token_address

logger = logging.getLogger(__name__)

PROMPT_EXPIRED_REASON = "prompt expired"


class PromptKind(str, enum.Enum):
    TOKEN_ADDRESS = "token_address"
    PERCENTAGE = "percentage"
    CONFIRMATION = "confirmation"


class FeedOutcome(str, enum.Enum):
    NO_PROMPT = "no_prompt"
    RESOLVED = "resolved"
    INVALID = "invalid"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


def parse_percentage(text: str) -> float | None:
    try:
        value = float(str(text).strip().rstrip("%"))
    except (TypeError, ValueError):
        return None
    if value != value or value <= 0 or value > 100:
        return None
    return value


def parse_confirmation(text: str) -> bool | None:
    answer = str(text).strip().lower()
    if answer == "yes":
        return True
    if answer == "no":
        return False
    return None


_PARSERS: dict[PromptKind, Callable[[str], Any]] = {
    PromptKind.TOKEN_ADDRESS: parse_token_address,
    PromptKind.PERCENTAGE: parse_percentage,
    PromptKind.CONFIRMATION: parse_confirmation,
}


@dataclass
class PendingPrompt:
    kind: PromptKind
    deadline: float
    cancel_token: CancelToken
    future: asyncio.Future = field(repr=False)


class ConversationRegistry:
    """Open prompts keyed by chat id; at most one per chat."""

    def __init__(
        self,
        *,
        timeout_seconds: float | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self.timeout_seconds = float(config.PROMPT_TIMEOUT_SECONDS if timeout_seconds is None else timeout_seconds)
        self._clock = clock
        self._prompts: dict[int, PendingPrompt] = {}

    def _now(self) -> float:
        if self._clock is not None:
            return self._clock()
        return asyncio.get_running_loop().time()

    def pending(self, chat_id: int) -> PendingPrompt | None:
        return self._prompts.get(int(chat_id))

    def open_prompt(self, chat_id: int, kind: PromptKind, cancel_token: CancelToken) -> PendingPrompt:
        chat_id = int(chat_id)
        previous = self._prompts.pop(chat_id, None)
        if previous is not None and not previous.future.done():
            previous.future.cancel()
        prompt = PendingPrompt(
            kind=kind,
            deadline=self._now() + self.timeout_seconds,
            cancel_token=cancel_token,
            future=asyncio.get_running_loop().create_future(),
        )
        self._prompts[chat_id] = prompt
        return prompt

    def _close(self, chat_id: int, prompt: PendingPrompt) -> None:
        if self._prompts.get(chat_id) is prompt:
            del self._prompts[chat_id]

    async def ask(self, chat_id: int, kind: PromptKind, cancel_token: CancelToken) -> Any:
        """Wait for a valid answer to `kind`.

        Raises OperationCancelled when the token is cancelled or the prompt expires.
        """
        cancel_token.raise_if_cancelled()
        chat_id = int(chat_id)
        prompt = self.open_prompt(chat_id, kind, cancel_token)
        cancel_waiter = asyncio.ensure_future(cancel_token.wait())
        try:
            done, _ = await asyncio.wait(
                {prompt.future, cancel_waiter},
                timeout=self.timeout_seconds,
                return_when=asyncio.FIRST_COMPLETED,
            )
            if prompt.future in done and not prompt.future.cancelled():
                return prompt.future.result()
            if cancel_token.cancelled:
                raise OperationCancelled(cancel_token.reason or "cancelled")
            if prompt.future.cancelled():
                raise OperationCancelled("prompt replaced")
            cancel_token.cancel(PROMPT_EXPIRED_REASON)
            logger.info("PROMPT_EXPIRED chat_id=%s kind=%s", chat_id, kind.value)
            raise OperationCancelled(PROMPT_EXPIRED_REASON)
        finally:
            cancel_waiter.cancel()
            if not prompt.future.done():
                prompt.future.cancel()
            self._close(chat_id, prompt)

    def feed(self, chat_id: int, text: str) -> tuple[FeedOutcome, PromptKind | None]:
        chat_id = int(chat_id)
        prompt = self._prompts.get(chat_id)
        if prompt is None or prompt.future.done():
            return FeedOutcome.NO_PROMPT, None

        if self._now() > prompt.deadline:
            self._close(chat_id, prompt)
            prompt.cancel_token.cancel(PROMPT_EXPIRED_REASON)
            return FeedOutcome.EXPIRED, prompt.kind

        text = str(text or "").strip()
        if text.startswith("/"):
            self._close(chat_id, prompt)
            prompt.cancel_token.cancel(f"command {text.split()[0]} received")
            return FeedOutcome.CANCELLED, prompt.kind

        value = _PARSERS[prompt.kind](text)
        if value is None:
            return FeedOutcome.INVALID, prompt.kind
        prompt.future.set_result(value)
        self._close(chat_id, prompt)
        return FeedOutcome.RESOLVED, prompt.kind

    def cancel(self, chat_id: int, reason: str = "cancelled") -> bool:
        prompt = self._prompts.pop(int(chat_id), None)
        if prompt is None:
            return False
        prompt.cancel_token.cancel(reason)
        return True

    def cancel_all(self, reason: str = "shutdown") -> None:
        for chat_id in list(self._prompts):
            self.cancel(chat_id, reason)


class OperationRunner:
    """Runs at most one operation per chat."""

    def __init__(self, registry: ConversationRegistry | None = None) -> None:
        self._registry = registry
        self._operations: dict[int, tuple[CancelToken, asyncio.Task]] = {}

    def active(self, chat_id: int) -> CancelToken | None:
        entry = self._operations.get(int(chat_id))
        return entry[0] if entry else None

    def cancel(self, chat_id: int, reason: str = "cancelled") -> bool:
        chat_id = int(chat_id)
        if self._registry is not None:
            self._registry.cancel(chat_id, reason)
        entry = self._operations.pop(chat_id, None)
        if entry is None:
            return False
        token, _ = entry
        token.cancel(reason)
        logger.info("OPERATION_CANCEL chat_id=%s reason=%s", chat_id, reason)
        return True

    def start(
        self,
        chat_id: int,
        operation: Callable[[CancelToken], Awaitable[Any]],
        *,
        name: str = "operation",
    ) -> asyncio.Task:
        chat_id = int(chat_id)
        self.cancel(chat_id, f"superseded by {name}")
        token = CancelToken()
        task = asyncio.create_task(operation(token), name=f"{name}:{chat_id}")
        self._operations[chat_id] = (token, task)
        task.add_done_callback(lambda t, c=chat_id: self._finished(c, t))
        logger.info("OPERATION_START chat_id=%s name=%s", chat_id, name)
        return task

    def _finished(self, chat_id: int, task: asyncio.Task) -> None:
        entry = self._operations.get(chat_id)
        if entry is not None and entry[1] is task:
            del self._operations[chat_id]
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None and not isinstance(exc, OperationCancelled):
            logger.error("OPERATION_FAILED chat_id=%s task=%s err=%s", chat_id, task.get_name(), exc)

    async def shutdown(self) -> None:
        tasks = []
        for chat_id in list(self._operations):
            entry = self._operations.get(chat_id)
            self.cancel(chat_id, "shutdown")
            if entry is not None:
                entry[1].cancel()
                tasks.append(entry[1])
        if self._registry is not None:
            self._registry.cancel_all()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
