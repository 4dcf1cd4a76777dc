"""Clanker token-listing feed poller."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any

import config
from utils.addressing import normalize_address
from utils.http_client import ResilientHttpClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenListing:
    contract_address: str
    name: str
    symbol: str
    created_at: str
    pool_address: str = ""
    img_url: str = ""
    type: str = ""
    id: int = 0
    tx_hash: str = ""
    requestor_fid: int = 0
    cast_hash: str = ""

    @property
    def key(self) -> str:
        return normalize_address(self.contract_address)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "TokenListing":
        return cls(
            contract_address=str(row.get("contract_address") or ""),
            name=str(row.get("name") or ""),
            symbol=str(row.get("symbol") or ""),
            created_at=str(row.get("created_at") or ""),
            pool_address=str(row.get("pool_address") or ""),
            img_url=str(row.get("img_url") or ""),
            type=str(row.get("type") or ""),
            id=int(row.get("id") or 0),
            tx_hash=str(row.get("tx_hash") or ""),
            requestor_fid=int(row.get("requestor_fid") or 0),
            cast_hash=str(row.get("cast_hash") or ""),
        )

    def to_row(self) -> dict[str, Any]:
        return asdict(self)

    def created_at_utc(self) -> datetime | None:
        raw = self.created_at.strip()
        if not raw:
            return None
        try:
            ts = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError:
            return None
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        return ts


class ClankerFeed:
    def __init__(self, url: str | None = None, *, proxy_url: str | None = None, http: ResilientHttpClient | None = None) -> None:
        self.url = url or config.FEED_URL
        self._http = http or ResilientHttpClient(
            timeout_seconds=float(config.FEED_TIMEOUT_SECONDS),
            headers={
                "accept": "*/*",
                "accept-language": "en-US,en;q=0.9",
                "referer": "https://www.clanker.world/clanker",
                "user-agent": (
                    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
                    "AppleWebKit/537.36 (KHTML, like Gecko) "
                    "Chrome/130.0.0.0 Safari/537.36"
                ),
            },
            proxy_url=config.FEED_PROXY_URL if proxy_url is None else proxy_url,
        )

    async def close(self) -> None:
        await self._http.close()

    def runtime_stats(self, reset: bool = False) -> dict[str, int | float]:
        return self._http.snapshot_stats(reset=reset)

    async def fetch_new_tokens(self, limit: int | None = None) -> list[TokenListing]:
        """Newest listings first; an unreachable feed yields an empty list."""
        limit = max(1, int(limit or config.FEED_LIMIT))
        result = await self._http.get_json(
            self.url,
            params={"sort": "desc", "page": 1, "type": "all", "limit": limit},
        )
        if not result.ok:
            logger.warning("FEED_FETCH_FAILED status=%s err=%s", result.status, result.error)
            return []
        rows = (result.data or {}).get("data") if isinstance(result.data, dict) else None
        if not isinstance(rows, list):
            logger.warning("FEED_PAYLOAD_INVALID type=%s", type(result.data).__name__)
            return []
        listings: list[TokenListing] = []
        for row in rows[:limit]:
            if not isinstance(row, dict) or not row.get("contract_address"):
                continue
            listings.append(TokenListing.from_row(row))
        return listings
