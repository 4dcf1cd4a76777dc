"""Entry point for the Clanker sniper bot."""

import logging
import os
from logging.handlers import RotatingFileHandler

from telegram.ext import Application, CallbackQueryHandler, CommandHandler, MessageHandler, filters

from bot.handlers import (
    SERVICE_KEY,
    autobuy_command,
    balance_command,
    handle_text,
    handle_token_callback,
    sell_command,
    sellall_command,
    start_command,
)
from config import APP_LOG_FILE, LOG_DIR, LOG_LEVEL, TELEGRAM_BOT_TOKEN
from trading.service import TradingService


def configure_logging() -> None:
    os.makedirs(LOG_DIR, exist_ok=True)
    formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    file_handler = RotatingFileHandler(APP_LOG_FILE, maxBytes=1_000_000, backupCount=5, encoding="utf-8")
    file_handler.setFormatter(formatter)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)

    root = logging.getLogger()
    root.setLevel(getattr(logging, LOG_LEVEL.upper(), logging.INFO))
    root.handlers.clear()
    root.addHandler(file_handler)
    root.addHandler(console_handler)

    # Avoid leaking bot token in verbose transport logs.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("telegram").setLevel(logging.INFO)


logger = logging.getLogger(__name__)


async def post_init(application: Application) -> None:
    service = TradingService(application.bot)
    application.bot_data[SERVICE_KEY] = service
    await service.start()


async def post_shutdown(application: Application) -> None:
    service: TradingService | None = application.bot_data.get(SERVICE_KEY)
    if service:
        await service.stop()


def build_application() -> Application:
    app = Application.builder().token(TELEGRAM_BOT_TOKEN).post_init(post_init).post_shutdown(post_shutdown).build()

    app.add_handler(CommandHandler("start", start_command))
    app.add_handler(CommandHandler("sell", sell_command))
    app.add_handler(CommandHandler("sellall", sellall_command))
    app.add_handler(CommandHandler("balance", balance_command))
    app.add_handler(CommandHandler("autobuy", autobuy_command))
    # Unknown commands fall through here and cancel any open prompt.
    app.add_handler(MessageHandler(filters.TEXT, handle_text))
    app.add_handler(CallbackQueryHandler(handle_token_callback, pattern=r"^(buy|sell|balance)_"))
    return app


def main() -> None:
    configure_logging()

    if not TELEGRAM_BOT_TOKEN:
        raise RuntimeError("TELEGRAM_BOT_TOKEN is not set")

    logger.info("Starting bot")
    build_application().run_polling()


if __name__ == "__main__":
    main()
