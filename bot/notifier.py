"""Deliver sell/buy progress to the requesting chat."""

from __future__ import annotations

import logging
from html import escape
from typing import Any

import config
from trading.models import Requester
from utils.addressing import find_tx_hashes

logger = logging.getLogger(__name__)


def tx_link(tx_hash: str) -> str:
    url = config.EXPLORER_TX_URL_TEMPLATE.format(tx_hash=tx_hash)
    return f'<a href="{escape(url)}">{escape(tx_hash)}</a>'


def linkify_tx_hashes(text: str) -> str:
    """HTML-escape `text` and turn every tx hash into an explorer link."""
    escaped = escape(str(text or ""))
    for tx_hash in dict.fromkeys(find_tx_hashes(escaped)):
        escaped = escaped.replace(tx_hash, tx_link(tx_hash))
    return escaped


class TelegramNotifier:
    def __init__(self, bot: Any) -> None:
        self._bot = bot

    async def notify(self, requester: Requester | None, text: str) -> None:
        if requester is None:
            logger.info("NOTIFY_SKIP reason=no_requester text=%s", text)
            return
        body = f"{escape(requester.mention)}, {linkify_tx_hashes(text)}"
        await self._bot.send_message(
            chat_id=requester.chat_id,
            text=body,
            parse_mode="HTML",
            disable_web_page_preview=True,
        )
