"""Keyboards for alerts and prompts."""

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, KeyboardButton, ReplyKeyboardMarkup, ReplyKeyboardRemove

BUY_AMOUNTS_ETH = ("0.001", "0.1", "0.3", "0.5")


def token_actions_keyboard(token_address: str) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        [
            [
                InlineKeyboardButton("💵 Buy 0.001 ETH", callback_data=f"buy_0.001_{token_address}"),
                InlineKeyboardButton("💵 Buy 0.1 ETH", callback_data=f"buy_0.1_{token_address}"),
            ],
            [
                InlineKeyboardButton("💵 Buy .3 ETH", callback_data=f"buy_0.3_{token_address}"),
                InlineKeyboardButton("💵 Buy .5 ETH", callback_data=f"buy_0.5_{token_address}"),
            ],
            [
                InlineKeyboardButton("🛑 Sell 25%", callback_data=f"sell_25_{token_address}"),
                InlineKeyboardButton("🛑 Sell 50%", callback_data=f"sell_50_{token_address}"),
            ],
            [InlineKeyboardButton("🛑 Sell All", callback_data=f"sell_100_{token_address}")],
            [InlineKeyboardButton("🏦 Get Balance", callback_data=f"balance_0_{token_address}")],
        ]
    )


def confirmation_keyboard() -> ReplyKeyboardMarkup:
    return ReplyKeyboardMarkup(
        [[KeyboardButton("yes")], [KeyboardButton("no")]],
        one_time_keyboard=True,
        resize_keyboard=True,
    )


def remove_keyboard() -> ReplyKeyboardRemove:
    return ReplyKeyboardRemove()
