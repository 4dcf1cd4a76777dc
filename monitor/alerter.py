"""Alert delivery for newly listed tokens."""

from __future__ import annotations

import asyncio
import logging
from html import escape
from typing import Any, Iterable

import config
from bot.keyboards import token_actions_keyboard
from monitor.feed import TokenListing

logger = logging.getLogger(__name__)


def format_token_message(token: TokenListing) -> str:
    explorer = config.EXPLORER_TOKEN_URL_TEMPLATE.format(token_address=token.contract_address)
    return (
        "━━━━━━━━━━━━━━━━━━━━━━━\n"
        f"<b>{escape(token.name)}</b> #{escape(token.symbol)}\n"
        f"<code>{escape(token.contract_address)}</code>\n\n"
        "🌐 Pool Address:\n"
        f"<code>{escape(token.pool_address)}</code>\n\n"
        "📊 Token Info:\n"
        f"  - Type: {escape(token.type)}\n"
        f'  - Chart: <a href="{escape(explorer)}">View on Basescan</a>\n'
        "━━━━━━━━━━━━━━━━━━━━━━━"
    )


class TokenAlerter:
    def __init__(
        self,
        bot: Any,
        chat_ids: Iterable[int] | None = None,
        *,
        send_delay_seconds: float | None = None,
    ) -> None:
        self._bot = bot
        self.chat_ids = [int(c) for c in (config.ALLOWED_CHAT_IDS if chat_ids is None else chat_ids)]
        self.send_delay_seconds = float(
            config.ALERT_SEND_DELAY_SECONDS if send_delay_seconds is None else send_delay_seconds
        )

    async def send_alert(self, token: TokenListing) -> int:
        """Send one listing to every allowed chat; returns the number of chats reached."""
        message = format_token_message(token)
        keyboard = token_actions_keyboard(token.contract_address)
        sent = 0
        for chat_id in self.chat_ids:
            try:
                await self._bot.send_message(
                    chat_id=chat_id,
                    text=message,
                    parse_mode="HTML",
                    reply_markup=keyboard,
                    disable_web_page_preview=True,
                )
                sent += 1
            except Exception as exc:
                logger.warning("ALERT_SEND_FAILED chat_id=%s token=%s err=%s", chat_id, token.symbol, exc)
                continue
            await self._send_image(chat_id, token)
        logger.info("ALERT token=%s symbol=%s chats=%s sent=%s", token.contract_address, token.symbol, len(self.chat_ids), sent)
        if self.send_delay_seconds > 0:
            await asyncio.sleep(self.send_delay_seconds)
        return sent

    async def _send_image(self, chat_id: int, token: TokenListing) -> None:
        url = token.img_url.strip()
        if not url or url == "no image":
            return
        try:
            await self._bot.send_photo(chat_id=chat_id, photo=url)
        except Exception as exc:
            logger.info("ALERT_IMAGE_FALLBACK chat_id=%s url=%s err=%s", chat_id, url, exc)
            try:
                await self._bot.send_message(chat_id=chat_id, text=f"Logo: {url}")
            except Exception as inner:
                logger.warning("ALERT_LOGO_SEND_FAILED chat_id=%s err=%s", chat_id, inner)
