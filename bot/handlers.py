"""Telegram handlers."""

from __future__ import annotations

import logging
from typing import Any

import config

from telegram import Update
from telegram.ext import ContextTypes

from bot.conversations import PROMPT_EXPIRED_REASON, FeedOutcome, PromptKind
from bot.keyboards import confirmation_keyboard, remove_keyboard
from bot.messages import (
    ASK_CONFIRMATION,
    ASK_PERCENTAGE,
    ASK_TOKEN_ADDRESS,
    AUTOBUY_STATUS,
    AUTOBUY_USAGE,
    BALANCE_FAILED,
    BUY_DONE,
    BUY_FAILED,
    BUY_PENDING,
    CONFIRMATION_RECEIVED,
    CURRENT_HOLDINGS,
    INVALID_CONFIRMATION,
    INVALID_PERCENTAGE,
    INVALID_TOKEN_ADDRESS,
    NOT_AUTHORIZED,
    OPERATION_ERROR,
    PROMPT_EXPIRED,
    SELL_ALL_CANCELLED,
    SELL_FAILED,
    SELL_PENDING,
    WELCOME_MESSAGE,
)
from bot.notifier import tx_link
from trading.cancellation import CancelToken
from trading.errors import OperationCancelled, TradingError
from trading.holdings import format_holdings
from trading.models import Requester
from utils.addressing import parse_token_address

logger = logging.getLogger(__name__)

SERVICE_KEY = "service"

_INVALID_REPLIES = {
    PromptKind.TOKEN_ADDRESS: INVALID_TOKEN_ADDRESS,
    PromptKind.PERCENTAGE: INVALID_PERCENTAGE,
    PromptKind.CONFIRMATION: INVALID_CONFIRMATION,
}


def _service(context: ContextTypes.DEFAULT_TYPE) -> Any:
    return context.application.bot_data[SERVICE_KEY]


def _is_allowed(chat_id: int | None) -> bool:
    return bool(chat_id is not None and int(chat_id) in set(config.ALLOWED_CHAT_IDS))


def _requester(update: Update) -> Requester | None:
    chat = update.effective_chat
    user = update.effective_user
    if not chat or not user:
        return None
    return Requester(chat_id=chat.id, user_id=user.id, username=user.username)


async def _authorize(update: Update) -> Requester | None:
    requester = _requester(update)
    if requester is None:
        return None
    if _is_allowed(requester.chat_id):
        return requester
    logger.warning("AUTH_DENIED chat_id=%s user_id=%s", requester.chat_id, requester.user_id)
    target = update.effective_message
    if target:
        await target.reply_text(NOT_AUTHORIZED)
    return None


async def start_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    requester = await _authorize(update)
    if requester is None:
        return
    _service(context).runner.cancel(requester.chat_id, "command /start received")
    await update.message.reply_text(WELCOME_MESSAGE, parse_mode="HTML")


async def sell_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    requester = await _authorize(update)
    if requester is None:
        return
    bot = context.bot
    service = _service(context)
    service.runner.start(
        requester.chat_id,
        lambda token: run_sell_flow(service, bot, requester, token, sell_all=False),
        name="sell",
    )


async def sellall_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    requester = await _authorize(update)
    if requester is None:
        return
    bot = context.bot
    service = _service(context)
    service.runner.start(
        requester.chat_id,
        lambda token: run_sell_flow(service, bot, requester, token, sell_all=True),
        name="sellall",
    )


async def balance_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    requester = await _authorize(update)
    if requester is None:
        return
    bot = context.bot
    service = _service(context)
    service.runner.start(
        requester.chat_id,
        lambda token: run_balance_flow(service, bot, requester, token),
        name="balance",
    )


async def autobuy_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    requester = await _authorize(update)
    if requester is None:
        return
    service = _service(context)
    service.runner.cancel(requester.chat_id, "command /autobuy received")
    args = [a.strip().lower() for a in (context.args or [])]
    if args:
        if args[0] not in {"on", "off"}:
            await update.message.reply_text(AUTOBUY_USAGE)
            return
        service.watcher.set_autobuy(args[0] == "on")
    settings = service.watcher.settings
    await update.message.reply_text(
        AUTOBUY_STATUS.format(state="ON" if settings.autobuy_enabled else "OFF", amount=settings.buy_amount_eth),
        parse_mode="HTML",
    )


async def handle_text(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    message = update.message
    if not message or message.text is None or not update.effective_chat:
        return
    chat_id = update.effective_chat.id
    if not _is_allowed(chat_id):
        return

    # expired and cancelled prompts are reported by the waiting flow
    outcome, kind = _service(context).registry.feed(chat_id, message.text)
    if outcome == FeedOutcome.INVALID and kind is not None:
        await message.reply_text(_INVALID_REPLIES[kind])


async def handle_token_callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    if not query or not query.data:
        return

    await query.answer()
    requester = await _authorize(update)
    if requester is None:
        return

    parts = query.data.split("_", 2)
    if len(parts) != 3:
        return
    action, amount, raw_address = parts
    token_address = parse_token_address(raw_address)
    if token_address is None:
        await context.bot.send_message(chat_id=requester.chat_id, text=INVALID_TOKEN_ADDRESS)
        return

    service = _service(context)
    bot = context.bot
    if action == "buy":
        service.runner.start(
            requester.chat_id,
            lambda token: run_buy_action(service, bot, requester, token_address, amount),
            name="buy",
        )
    elif action == "sell":
        service.runner.start(
            requester.chat_id,
            lambda token: run_sell_action(service, bot, requester, token_address, amount, token),
            name="sell",
        )
    elif action == "balance":
        await send_holdings(service, bot, requester, token_address)


async def send_holdings(service: Any, bot: Any, requester: Requester, token_address: str) -> None:
    try:
        report = await service.reporter.report_holdings(token_address)
    except TradingError as exc:
        logger.warning("BALANCE_FAILED chat_id=%s token=%s err=%s", requester.chat_id, token_address, exc)
        await bot.send_message(chat_id=requester.chat_id, text=BALANCE_FAILED.format(error=exc))
        return
    await bot.send_message(chat_id=requester.chat_id, text=format_holdings(report))


async def run_balance_flow(service: Any, bot: Any, requester: Requester, cancel: CancelToken) -> None:
    chat_id = requester.chat_id
    try:
        await bot.send_message(chat_id=chat_id, text=ASK_TOKEN_ADDRESS)
        token_address = await service.registry.ask(chat_id, PromptKind.TOKEN_ADDRESS, cancel)
    except OperationCancelled as exc:
        await _on_cancelled(bot, requester, exc)
        return
    await send_holdings(service, bot, requester, token_address)


async def run_sell_flow(
    service: Any,
    bot: Any,
    requester: Requester,
    cancel: CancelToken,
    *,
    sell_all: bool,
) -> None:
    chat_id = requester.chat_id
    try:
        await bot.send_message(chat_id=chat_id, text=ASK_TOKEN_ADDRESS)
        token_address = await service.registry.ask(chat_id, PromptKind.TOKEN_ADDRESS, cancel)

        report = await service.reporter.report_holdings(token_address)
        await bot.send_message(chat_id=chat_id, text=CURRENT_HOLDINGS.format(holdings=format_holdings(report)))

        if sell_all:
            await bot.send_message(chat_id=chat_id, text=ASK_CONFIRMATION, reply_markup=confirmation_keyboard())
            confirmed = await service.registry.ask(chat_id, PromptKind.CONFIRMATION, cancel)
            await bot.send_message(chat_id=chat_id, text=CONFIRMATION_RECEIVED, reply_markup=remove_keyboard())
            if not confirmed:
                await bot.send_message(chat_id=chat_id, text=SELL_ALL_CANCELLED)
                return
            percentage = 100.0
        else:
            await bot.send_message(chat_id=chat_id, text=ASK_PERCENTAGE)
            percentage = await service.registry.ask(chat_id, PromptKind.PERCENTAGE, cancel)

        await service.orchestrator.execute_sell(token_address, percentage, requester=requester, cancel=cancel)
    except OperationCancelled as exc:
        await _on_cancelled(bot, requester, exc)
    except TradingError as exc:
        logger.warning("SELL_FLOW_FAILED chat_id=%s err=%s", chat_id, exc)
        await bot.send_message(chat_id=chat_id, text=OPERATION_ERROR.format(error=exc))


async def run_sell_action(
    service: Any,
    bot: Any,
    requester: Requester,
    token_address: str,
    percentage: str,
    cancel: CancelToken,
) -> None:
    chat_id = requester.chat_id
    try:
        value = float(percentage)
    except ValueError:
        await bot.send_message(chat_id=chat_id, text=INVALID_PERCENTAGE)
        return
    await bot.send_message(chat_id=chat_id, text=SELL_PENDING.format(mention=requester.mention, percentage=percentage))
    try:
        await service.orchestrator.execute_sell(token_address, value, requester=requester, cancel=cancel)
    except OperationCancelled as exc:
        await _on_cancelled(bot, requester, exc)
    except (TradingError, ValueError) as exc:
        logger.warning("SELL_ACTION_FAILED chat_id=%s token=%s err=%s", chat_id, token_address, exc)
        await bot.send_message(chat_id=chat_id, text=SELL_FAILED.format(mention=requester.mention, error=exc))


async def run_buy_action(service: Any, bot: Any, requester: Requester, token_address: str, amount: str) -> None:
    chat_id = requester.chat_id
    pending = await bot.send_message(chat_id=chat_id, text=BUY_PENDING.format(mention=requester.mention, amount=amount))
    try:
        if service.buyer is None:
            raise TradingError("no buyer wallet configured")
        tx_hash = await service.buy_executor.buy(token_address, amount, service.buyer)
    except (TradingError, ValueError, ArithmeticError) as exc:
        logger.warning("BUY_ACTION_FAILED chat_id=%s token=%s amount=%s err=%s", chat_id, token_address, amount, exc)
        await _delete_quietly(bot, chat_id, pending)
        await bot.send_message(chat_id=chat_id, text=BUY_FAILED.format(mention=requester.mention, error=exc))
        return
    await _delete_quietly(bot, chat_id, pending)
    await bot.send_message(
        chat_id=chat_id,
        text=BUY_DONE.format(mention=requester.mention, amount=amount, tx=tx_link(tx_hash)),
        parse_mode="HTML",
        disable_web_page_preview=True,
    )


async def _delete_quietly(bot: Any, chat_id: int, message: Any) -> None:
    message_id = getattr(message, "message_id", None)
    if message_id is None:
        return
    try:
        await bot.delete_message(chat_id=chat_id, message_id=message_id)
    except Exception as exc:
        logger.debug("MESSAGE_DELETE_FAILED chat_id=%s message_id=%s err=%s", chat_id, message_id, exc)


async def _on_cancelled(bot: Any, requester: Requester, exc: OperationCancelled) -> None:
    logger.info("OPERATION_CANCELLED chat_id=%s reason=%s", requester.chat_id, exc)
    if str(exc) == PROMPT_EXPIRED_REASON:
        await bot.send_message(chat_id=requester.chat_id, text=PROMPT_EXPIRED, reply_markup=remove_keyboard())
