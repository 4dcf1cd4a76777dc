"""Address normalization and validation helpers."""

from __future__ import annotations

import re

_EVM_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
_TX_HASH_RE = re.compile(r"0x[0-9a-fA-F]{64}")


def normalize_address(value: str | None) -> str:
    """Normalize on-chain address keys for internal maps/dedup."""
    return str(value or "").strip().lower()


def is_evm_address(value: str | None) -> bool:
    return bool(_EVM_ADDRESS_RE.match(str(value or "").strip()))


def parse_token_address(value: str | None) -> str | None:
    """Return the lower-cased address for `0x` + 40 hex input, else None."""
    text = str(value or "").strip()
    if not _EVM_ADDRESS_RE.match(text):
        return None
    return text.lower()


def find_tx_hashes(text: str) -> list[str]:
    return _TX_HASH_RE.findall(str(text or ""))
