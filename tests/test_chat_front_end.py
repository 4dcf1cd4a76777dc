from __future__ import annotations

import asyncio
import unittest
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import config
from bot import handlers
from bot.conversations import ConversationRegistry, PromptKind
from bot.keyboards import token_actions_keyboard
from bot.messages import NOT_AUTHORIZED, SELL_ALL_CANCELLED
from bot.notifier import TelegramNotifier, linkify_tx_hashes
from monitor.alerter import TokenAlerter
from monitor.feed import TokenListing
from trading.cancellation import CancelToken
from trading.errors import InsufficientHoldings
from trading.models import HoldingsReport, Requester

CHAT = -1001
TOKEN = "0x" + "ab" * 20
TX = "0x" + "12" * 32
REQUESTER = Requester(chat_id=CHAT, user_id=42, username="trader")


class FakeBot:
    def __init__(self, *, photo_error: Exception | None = None) -> None:
        self.messages: list[dict] = []
        self.photos: list[dict] = []
        self.deleted: list[int] = []
        self.photo_error = photo_error

    async def send_message(self, **kwargs):
        self.messages.append(kwargs)
        return SimpleNamespace(message_id=len(self.messages))

    async def send_photo(self, **kwargs):
        if self.photo_error is not None:
            raise self.photo_error
        self.photos.append(kwargs)

    async def delete_message(self, chat_id: int, message_id: int) -> None:  # noqa: ARG002
        self.deleted.append(message_id)

    def texts(self) -> list[str]:
        return [m["text"] for m in self.messages]


class StubReporter:
    async def report_holdings(self, token_address: str) -> HoldingsReport:
        return HoldingsReport(token_address=token_address, token_name="Frog", total_held=10, percentage_held=1.5)


class StubOrchestrator:
    def __init__(self, error: Exception | None = None) -> None:
        self.calls: list[tuple[str, float]] = []
        self.error = error

    async def execute_sell(self, token_address, percentage, *, requester=None, cancel=None):  # noqa: ARG002
        if self.error is not None:
            raise self.error
        self.calls.append((token_address, percentage))


def _service(orchestrator=None) -> SimpleNamespace:
    return SimpleNamespace(
        registry=ConversationRegistry(timeout_seconds=5),
        reporter=StubReporter(),
        orchestrator=orchestrator or StubOrchestrator(),
        buyer=None,
        buy_executor=None,
    )


async def wait_for_prompt(registry: ConversationRegistry, kind: PromptKind) -> None:
    for _ in range(100):
        prompt = registry.pending(CHAT)
        if prompt is not None and prompt.kind == kind:
            return
        await asyncio.sleep(0)
    raise AssertionError(f"prompt {kind} never opened")


class KeyboardAndFormattingTests(unittest.TestCase):
    def test_alert_keyboard_callbacks(self) -> None:
        markup = token_actions_keyboard(TOKEN)
        data = [button.callback_data for row in markup.inline_keyboard for button in row]
        self.assertEqual(
            data,
            [
                f"buy_0.001_{TOKEN}",
                f"buy_0.1_{TOKEN}",
                f"buy_0.3_{TOKEN}",
                f"buy_0.5_{TOKEN}",
                f"sell_25_{TOKEN}",
                f"sell_50_{TOKEN}",
                f"sell_100_{TOKEN}",
                f"balance_0_{TOKEN}",
            ],
        )

    def test_tx_hashes_become_explorer_links(self) -> None:
        with patch.object(config, "EXPLORER_TX_URL_TEMPLATE", "https://basescan.org/tx/{tx_hash}"):
            html = linkify_tx_hashes(f"Sell transaction hash: {TX} <ok>")
        self.assertIn(f'<a href="https://basescan.org/tx/{TX}">{TX}</a>', html)
        self.assertIn("&lt;ok&gt;", html)


class NotifierAndAlerterTests(unittest.IsolatedAsyncioTestCase):
    async def test_notifier_mentions_requester(self) -> None:
        bot = FakeBot()
        notifier = TelegramNotifier(bot)

        await notifier.notify(REQUESTER, "Sale process completed.")
        await notifier.notify(Requester(chat_id=CHAT, user_id=42), "hello")

        self.assertEqual(bot.texts(), ["@trader, Sale process completed.", "@42, hello"])
        self.assertEqual(bot.messages[0]["parse_mode"], "HTML")
        self.assertEqual(bot.messages[0]["chat_id"], CHAT)

    async def test_alert_falls_back_to_logo_link(self) -> None:
        bot = FakeBot(photo_error=RuntimeError("wrong file identifier"))
        token = TokenListing(
            contract_address=TOKEN,
            name="Frog <Coin>",
            symbol="FROG",
            created_at="",
            img_url="https://img.example/frog.png",
        )

        sent = await TokenAlerter(bot, [CHAT, CHAT - 1], send_delay_seconds=0).send_alert(token)

        self.assertEqual(sent, 2)
        self.assertIn("Frog &lt;Coin&gt;", bot.messages[0]["text"])
        self.assertIsNotNone(bot.messages[0]["reply_markup"])
        self.assertIn("Logo: https://img.example/frog.png", bot.texts())


class SellFlowTests(unittest.IsolatedAsyncioTestCase):
    async def test_percentage_flow_reaches_orchestrator(self) -> None:
        bot, service = FakeBot(), _service()
        task = asyncio.create_task(handlers.run_sell_flow(service, bot, REQUESTER, CancelToken(), sell_all=False))

        await wait_for_prompt(service.registry, PromptKind.TOKEN_ADDRESS)
        service.registry.feed(CHAT, TOKEN.upper().replace("0X", "0x"))
        await wait_for_prompt(service.registry, PromptKind.PERCENTAGE)
        service.registry.feed(CHAT, "12.5")
        await task

        self.assertEqual(service.orchestrator.calls, [(TOKEN, 12.5)])
        self.assertTrue(any("Percentage of Total Supply Held: 1.5000%" in t for t in bot.texts()))

    async def test_sell_all_declined(self) -> None:
        bot, service = FakeBot(), _service()
        task = asyncio.create_task(handlers.run_sell_flow(service, bot, REQUESTER, CancelToken(), sell_all=True))

        await wait_for_prompt(service.registry, PromptKind.TOKEN_ADDRESS)
        service.registry.feed(CHAT, TOKEN)
        await wait_for_prompt(service.registry, PromptKind.CONFIRMATION)
        service.registry.feed(CHAT, "no")
        await task

        self.assertEqual(service.orchestrator.calls, [])
        self.assertEqual(bot.texts()[-1], SELL_ALL_CANCELLED)

    async def test_sell_all_confirmed_sells_everything(self) -> None:
        bot, service = FakeBot(), _service()
        task = asyncio.create_task(handlers.run_sell_flow(service, bot, REQUESTER, CancelToken(), sell_all=True))

        await wait_for_prompt(service.registry, PromptKind.TOKEN_ADDRESS)
        service.registry.feed(CHAT, TOKEN)
        await wait_for_prompt(service.registry, PromptKind.CONFIRMATION)
        service.registry.feed(CHAT, "YES")
        await task

        self.assertEqual(service.orchestrator.calls, [(TOKEN, 100.0)])

    async def test_validation_failure_is_reported_verbatim(self) -> None:
        error = InsufficientHoldings(50, 1.5, 10)
        bot, service = FakeBot(), _service(StubOrchestrator(error))
        task = asyncio.create_task(handlers.run_sell_flow(service, bot, REQUESTER, CancelToken(), sell_all=False))

        await wait_for_prompt(service.registry, PromptKind.TOKEN_ADDRESS)
        service.registry.feed(CHAT, TOKEN)
        await wait_for_prompt(service.registry, PromptKind.PERCENTAGE)
        service.registry.feed(CHAT, "50")
        await task

        self.assertIn("You only have 1.5000%", bot.texts()[-1])

    async def test_buy_without_wallet_reports_failure(self) -> None:
        bot, service = FakeBot(), _service()

        await handlers.run_buy_action(service, bot, REQUESTER, TOKEN, "0.1")

        self.assertIn("buy transaction failed", bot.texts()[-1])
        self.assertEqual(bot.deleted, [1])


class AuthorizationTests(unittest.IsolatedAsyncioTestCase):
    async def test_unknown_chat_is_refused(self) -> None:
        reply = AsyncMock()
        update = SimpleNamespace(
            effective_chat=SimpleNamespace(id=555),
            effective_user=SimpleNamespace(id=7, username="stranger"),
            effective_message=SimpleNamespace(reply_text=reply),
        )
        with patch.object(config, "ALLOWED_CHAT_IDS", [CHAT]):
            self.assertIsNone(await handlers._authorize(update))
        reply.assert_awaited_once_with(NOT_AUTHORIZED)

    async def test_allowed_chat_yields_requester(self) -> None:
        update = SimpleNamespace(
            effective_chat=SimpleNamespace(id=CHAT),
            effective_user=SimpleNamespace(id=42, username="trader"),
            effective_message=None,
        )
        with patch.object(config, "ALLOWED_CHAT_IDS", [CHAT]):
            self.assertEqual(await handlers._authorize(update), REQUESTER)


if __name__ == "__main__":
    unittest.main()
