"""Application configuration."""

import os
from pathlib import Path

from dotenv import load_dotenv


def _load_dotenv_safe(dotenv_path: str | None = None, *, override: bool = False) -> None:
    """Load dotenv using UTF-8-SIG so BOM-prefixed files don't break first key parsing."""
    load_dotenv(dotenv_path=dotenv_path, override=override, encoding="utf-8-sig")


# Load base environment first, then optional per-instance override env file.
_load_dotenv_safe()
_BOT_ENV_FILE = os.getenv("BOT_ENV_FILE", "").strip()
if _BOT_ENV_FILE:
    _bot_env_path = Path(_BOT_ENV_FILE).expanduser()
    if not _bot_env_path.is_absolute():
        _bot_env_path = (Path.cwd() / _bot_env_path).resolve()
    if not _bot_env_path.exists():
        raise FileNotFoundError(f"BOT_ENV_FILE does not exist: {_bot_env_path}")
    if not _bot_env_path.is_file():
        raise IsADirectoryError(f"BOT_ENV_FILE is not a file: {_bot_env_path}")
    try:
        _load_dotenv_safe(str(_bot_env_path), override=True)
    except (OSError, UnicodeError, ValueError) as exc:
        raise RuntimeError(f"Failed to load BOT_ENV_FILE '{_bot_env_path}': {exc}") from exc


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "y", "on")


def _parse_int_list(raw: str) -> list[int]:
    out: list[int] = []
    for chunk in str(raw or "").split(","):
        item = chunk.strip()
        if item.lstrip("-").isdigit():
            out.append(int(item))
    return out


def _parse_str_list(raw: str) -> list[str]:
    return [x.strip() for x in str(raw or "").split(",") if x.strip()]


TELEGRAM_BOT_TOKEN = os.getenv("TELEGRAM_BOT_TOKEN", "")
# Group chat ids are negative.
ALLOWED_CHAT_IDS = _parse_int_list(os.getenv("ALLOWED_CHAT_IDS", ""))
PROMPT_TIMEOUT_SECONDS = max(10, int(os.getenv("PROMPT_TIMEOUT_SECONDS", "300")))

# Chain
RPC_TIMEOUT_SECONDS = max(3, int(os.getenv("RPC_TIMEOUT_SECONDS", "10")))
RPC_PRIMARY = (
    os.getenv("RPC_PRIMARY", "").strip()
    or os.getenv("RPC_URL", "").strip()
    or os.getenv("HTTPS_ENDPOINT", "").strip()
)
LIVE_CHAIN_ID = int(os.getenv("LIVE_CHAIN_ID", "8453"))
PRIVATE_KEYS = _parse_str_list(os.getenv("PRIVATE_KEYS", ""))
SNIPER_PRIVATE_KEY = os.getenv("SNIPER_PRIVATE_KEY", "").strip()
EXPLORER_TX_URL_TEMPLATE = os.getenv("EXPLORER_TX_URL_TEMPLATE", "https://basescan.org/tx/{tx_hash}")
EXPLORER_TOKEN_URL_TEMPLATE = os.getenv(
    "EXPLORER_TOKEN_URL_TEMPLATE",
    "https://basescan.org/token/{token_address}",
)

# Contracts
UNISWAP_V2_ROUTER_ADDRESS = os.getenv(
    "UNISWAP_V2_ROUTER_ADDRESS",
    "0x4752ba5DBc23f44D87826276BF6Fd6b1C372aD24",
).strip()
UNISWAP_V3_ROUTER_ADDRESS = os.getenv(
    "UNISWAP_V3_ROUTER_ADDRESS",
    "0x2626664c2603336E57B271c5C0b26F421741e481",
).strip()
WETH_ADDRESS = os.getenv("WETH_ADDRESS", "0x4200000000000000000000000000000000000006").strip()
BUY_POOL_FEE = max(100, int(os.getenv("BUY_POOL_FEE", "10000")))

# Submission and sell policy
TOKEN_TOTAL_SUPPLY_RAW = max(1, int(os.getenv("TOKEN_TOTAL_SUPPLY_RAW", str(10**9 * 10**18))))
TX_SUBMIT_MAX_ATTEMPTS = max(1, int(os.getenv("TX_SUBMIT_MAX_ATTEMPTS", "10")))
TX_SUBMIT_RETRY_DELAY_SECONDS = max(0.0, float(os.getenv("TX_SUBMIT_RETRY_DELAY_SECONDS", "2")))
NONCE_CONFLICT_BUMP_EVERY = max(1, int(os.getenv("NONCE_CONFLICT_BUMP_EVERY", "3")))
SELL_MAX_ATTEMPTS = max(1, int(os.getenv("SELL_MAX_ATTEMPTS", "3")))
SELL_RETRY_DELAY_SECONDS = max(0.0, float(os.getenv("SELL_RETRY_DELAY_SECONDS", "5")))
SWAP_DEADLINE_SECONDS = max(30, int(os.getenv("SWAP_DEADLINE_SECONDS", "1200")))
SELL_AMOUNT_OUT_MIN = max(0, int(os.getenv("SELL_AMOUNT_OUT_MIN", "1")))
GAS_LIMIT = max(21000, int(os.getenv("GAS_LIMIT", "500000")))
GAS_PRICE_BUMP_PERCENT = max(0, int(os.getenv("GAS_PRICE_BUMP_PERCENT", "10")))
TX_CONFIRM_TIMEOUT_SECONDS = max(10, int(os.getenv("TX_CONFIRM_TIMEOUT_SECONDS", "120")))

# Listing feed and watcher
FEED_URL = os.getenv("FEED_URL", "https://www.clanker.world/api/tokens").strip()
FEED_LIMIT = max(1, int(os.getenv("FEED_LIMIT", "30")))
FEED_PROXY_URL = os.getenv("FEED_PROXY_URL", "").strip()
FEED_TIMEOUT_SECONDS = max(1, int(os.getenv("FEED_TIMEOUT_SECONDS", "10")))
SCAN_INTERVAL_SECONDS = max(0.2, float(os.getenv("SCAN_INTERVAL_SECONDS", "1")))
NEW_TOKEN_MAX_AGE_SECONDS = max(1, int(os.getenv("NEW_TOKEN_MAX_AGE_SECONDS", "60")))
SEEN_TOKENS_MAX = max(10, int(os.getenv("SEEN_TOKENS_MAX", "1000")))
TOKEN_STORAGE_FILE = os.getenv("TOKEN_STORAGE_FILE", os.path.join("data", "tokens.json"))
TOKEN_STORAGE_MAX_ENTRIES = max(1, int(os.getenv("TOKEN_STORAGE_MAX_ENTRIES", "500")))
AUTOBUY_ENABLED = _env_flag("AUTOBUY_ENABLED", "false")
BUY_AMOUNT_ETH = os.getenv("BUY_AMOUNT_ETH", "0.001").strip()
ALERT_SEND_DELAY_SECONDS = max(0.0, float(os.getenv("ALERT_SEND_DELAY_SECONDS", "0.5")))

# Shared HTTP client
HTTP_CONNECTOR_LIMIT = max(1, int(os.getenv("HTTP_CONNECTOR_LIMIT", "30")))
HTTP_RETRY_ATTEMPTS = max(1, int(os.getenv("HTTP_RETRY_ATTEMPTS", "3")))
HTTP_BACKOFF_BASE_SECONDS = max(0.05, float(os.getenv("HTTP_BACKOFF_BASE_SECONDS", "0.50")))
HTTP_BACKOFF_MAX_SECONDS = max(0.10, float(os.getenv("HTTP_BACKOFF_MAX_SECONDS", "8.00")))
HTTP_JITTER_SECONDS = max(0.0, float(os.getenv("HTTP_JITTER_SECONDS", "0.25")))
HTTP_RATE_LIMIT_DELAY_SECONDS = max(0.0, float(os.getenv("HTTP_RATE_LIMIT_DELAY_SECONDS", "2.00")))
HTTP_429_COOLDOWN_SECONDS = max(1.0, float(os.getenv("HTTP_429_COOLDOWN_SECONDS", "90")))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_DIR = os.getenv("LOG_DIR", "logs")
APP_LOG_FILE = os.path.join(LOG_DIR, "app.log")
